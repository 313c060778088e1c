"""Connection configuration for the UniFi controller client."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import voluptuous as vol

from .const import (
    API_CLOUD_BASE_URL,
    CONF_API_KEY,
    CONF_MODE,
    CONF_PASSWORD,
    CONF_SITE,
    CONF_TIMEOUT,
    CONF_URL,
    CONF_USERNAME,
    CONF_VERIFY_SSL,
    DEFAULT_SITE,
    DEFAULT_TIMEOUT,
    DEFAULT_VERIFY_SSL,
)
from .errors import ConfigurationError
from .utils import is_cloud_url, normalize_base_url


class Mode(str, Enum):
    """Which upstream API a configuration targets."""

    LOCAL = "local"
    CLOUD = "cloud"


_MODE_ALIASES = {
    "local": Mode.LOCAL,
    "controller": Mode.LOCAL,
    "cloud": Mode.CLOUD,
    "site-manager": Mode.CLOUD,
    "site_manager": Mode.CLOUD,
}


def _coerce_mode(value: Any) -> Mode:
    if isinstance(value, Mode):
        return value
    if isinstance(value, str):
        mode = _MODE_ALIASES.get(value.strip().lower())
        if mode is not None:
            return mode
    raise vol.Invalid(f"unsupported mode {value!r}; use 'local' or 'cloud'")


def _stripped(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


CONNECTION_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_MODE): _coerce_mode,
        vol.Optional(CONF_URL): vol.Any(None, _stripped),
        vol.Optional(CONF_USERNAME): vol.Any(None, _stripped),
        # Passwords may legitimately carry surrounding whitespace.
        vol.Optional(CONF_PASSWORD): vol.Any(None, str),
        vol.Optional(CONF_API_KEY): vol.Any(None, _stripped),
        vol.Optional(CONF_SITE, default=DEFAULT_SITE): vol.Any(None, _stripped),
        vol.Optional(CONF_VERIFY_SSL, default=DEFAULT_VERIFY_SSL): vol.Boolean(),
        vol.Optional(CONF_TIMEOUT, default=DEFAULT_TIMEOUT): vol.All(
            vol.Coerce(int), vol.Clamp(min=1)
        ),
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """Immutable settings for one controller connection.

    Local mode needs ``base_url``, ``username`` and ``password``; cloud mode
    needs ``api_key``. Use :meth:`from_mapping` to build one from untrusted
    input, or construct directly and call :meth:`validate`.
    """

    mode: Mode = Mode.LOCAL
    base_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = None
    site: str = DEFAULT_SITE
    verify_ssl: bool = DEFAULT_VERIFY_SSL
    timeout: int = DEFAULT_TIMEOUT

    @classmethod
    def local(
        cls,
        base_url: str,
        username: str,
        password: str,
        site: str = DEFAULT_SITE,
        **kwargs: Any,
    ) -> "ConnectionConfig":
        return cls(
            mode=Mode.LOCAL,
            base_url=normalize_base_url(base_url),
            username=username,
            password=password,
            site=site or DEFAULT_SITE,
            **kwargs,
        )

    @classmethod
    def cloud(cls, api_key: str, **kwargs: Any) -> "ConnectionConfig":
        return cls(mode=Mode.CLOUD, api_key=api_key, **kwargs)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ConnectionConfig":
        """Validate ``data`` and build a configuration from it."""

        try:
            validated = CONNECTION_SCHEMA(dict(data))
        except vol.Invalid as err:
            field = ".".join(str(part) for part in err.path) or None
            if field:
                message = f"Invalid controller setting '{field}': {err.msg}"
            else:
                message = f"Invalid controller settings: {err.msg}"
            raise ConfigurationError(message, field=field) from err

        base_url = normalize_base_url(validated.get(CONF_URL))
        mode = validated.get(CONF_MODE)
        if mode is None:
            mode = Mode.CLOUD if is_cloud_url(base_url) or (
                base_url is None and validated.get(CONF_API_KEY)
            ) else Mode.LOCAL
        elif mode is Mode.LOCAL and is_cloud_url(base_url):
            mode = Mode.CLOUD
        if mode is Mode.CLOUD:
            # The Site Manager API lives at one fixed address.
            base_url = None

        config = cls(
            mode=mode,
            base_url=base_url,
            username=validated.get(CONF_USERNAME),
            password=validated.get(CONF_PASSWORD),
            api_key=validated.get(CONF_API_KEY),
            site=validated.get(CONF_SITE) or DEFAULT_SITE,
            verify_ssl=validated[CONF_VERIFY_SSL],
            timeout=validated[CONF_TIMEOUT],
        )
        config.validate()
        return config

    @property
    def is_cloud(self) -> bool:
        return self.mode is Mode.CLOUD

    @property
    def is_complete(self) -> bool:
        """Return True when all fields required by the mode are present."""

        try:
            self.validate()
        except ConfigurationError:
            return False
        return True

    @property
    def api_base_url(self) -> str:
        """Return the URL every request path is joined onto."""

        if self.is_cloud:
            return API_CLOUD_BASE_URL
        if not self.base_url:
            raise ConfigurationError("UniFi controller URL not set", field=CONF_URL)
        return self.base_url.rstrip("/")

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` when required fields are missing."""

        if self.is_cloud:
            if not self.api_key:
                raise ConfigurationError(
                    "UniFi Site Manager API key not set", field=CONF_API_KEY
                )
            return
        missing = [
            name
            for name, value in (
                (CONF_URL, self.base_url),
                (CONF_USERNAME, self.username),
                (CONF_PASSWORD, self.password),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                "Missing connection details: " + ", ".join(missing),
                field=missing[0],
            )
        if not self.site:
            raise ConfigurationError("Site name is required", field=CONF_SITE)


__all__ = ["CONNECTION_SCHEMA", "ConnectionConfig", "Mode"]
