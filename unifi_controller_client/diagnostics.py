from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from .const import CONF_API_KEY, CONF_PASSWORD, CONF_USERNAME
from .errors import (
    AuthenticationError,
    ControllerError,
    TransportError,
    UpstreamStatusError,
)

if TYPE_CHECKING:  # pragma: no cover - for typing only
    from .client import ControllerClient

REDACTED = "**REDACTED**"

REDACT_KEYS: set[str] = {
    CONF_PASSWORD,
    CONF_USERNAME,
    CONF_API_KEY,
    "token",
    "csrf_token",
}


def redact_data(data: Any, to_redact: Iterable[str]) -> Any:
    """Return a copy of ``data`` with the values of ``to_redact`` keys masked."""

    keys = set(to_redact)
    if isinstance(data, Mapping):
        redacted: dict[Any, Any] = {}
        for key, value in data.items():
            if key in keys and value is not None:
                redacted[key] = REDACTED
            else:
                redacted[key] = redact_data(value, keys)
        return redacted
    if isinstance(data, list):
        return [redact_data(item, keys) for item in data]
    return data


def _summarize_error(err: Exception) -> dict[str, Any]:
    """Return a compact, sanitized representation of ``err``."""

    summary: dict[str, Any] = {"type": err.__class__.__name__}
    if isinstance(err, (AuthenticationError, UpstreamStatusError)):
        if err.status_code is not None:
            summary["status"] = err.status_code
        if err.status_code == 404:
            summary["reason"] = "not_found"
        elif err.status_code == 400:
            summary["reason"] = "bad_request"
    elif isinstance(err, TransportError):
        summary["kind"] = err.kind.value
    return summary


def _session_payload(client: "ControllerClient") -> dict[str, Any]:
    sessions = client.sessions
    session = sessions.session
    if session is None:
        return {"authenticated": False}
    return {
        "authenticated": client.is_authenticated(),
        "age": round(session.age(sessions.now()), 1),
        "ttl": session.ttl,
        "token": session.token,
        "csrf_token": session.csrf_token,
    }


async def async_get_diagnostics(
    client: "ControllerClient", *, probe: bool = True
) -> dict[str, Any]:
    """Collect a redacted snapshot of the client's runtime state.

    With ``probe`` the controller's system information is fetched as a
    health check; failures are summarized instead of raised.
    """

    config = client.config
    payload: dict[str, Any] = {
        "config": {**asdict(config), "mode": config.mode.value},
        "mode": config.mode.value,
        "deployment": client.deployment.value,
        "session": _session_payload(client),
    }

    if probe:
        try:
            info = await client.get_system_info()
        except ControllerError as err:
            payload["errors"] = {"health": _summarize_error(err)}
        else:
            payload["health"] = {
                "name": info.name,
                "version": info.version,
                "uptime": info.uptime,
                "host_count": info.host_count,
            }
            # The probe may have logged in.
            payload["deployment"] = client.deployment.value
            payload["session"] = _session_payload(client)

    return redact_data(payload, REDACT_KEYS)


__all__ = ["REDACTED", "REDACT_KEYS", "async_get_diagnostics", "redact_data"]
