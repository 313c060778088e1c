"""Session management for UniFi controllers.

The :class:`SessionManager` owns the credential state for one connection:
the configuration, the detected deployment, and the current
:class:`Session`. Concurrent logins are coalesced into a single in-flight
attempt, and every write to the session state happens under one lock.
"""
from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .config import ConnectionConfig
from .const import DEFAULT_SESSION_TTL, HEADER_API_KEY, HEADER_CSRF
from .detector import Deployment, DeploymentDetector, login_payload
from .errors import AuthenticationError, ControllerError, UpstreamProtocolError
from .transport import RawResponse, Request, Transport
from .utils import endpoint_label, shorten

_LOGGER = logging.getLogger(__name__)

# A folded Set-Cookie header separates cookies with commas, but so do
# Expires dates ("Wed, 21 Oct 2015"); only split before a ``name=`` token.
_COOKIE_SPLIT = re.compile(r",\s*(?=[^;,=\s]+=)")


def normalize_cookies(set_cookies: Iterable[str]) -> Optional[str]:
    """Collapse Set-Cookie values into one ``Cookie`` request header value.

    ``"a=1; Path=/; HttpOnly"`` and ``"b=2; Secure"`` become ``"a=1; b=2"``.
    Cookies with empty values (deletions) are dropped.
    """

    pairs: dict[str, str] = {}
    for header in set_cookies:
        if not header:
            continue
        for raw in _COOKIE_SPLIT.split(header):
            first = raw.split(";", 1)[0].strip()
            name, sep, value = first.partition("=")
            name = name.strip()
            value = value.strip()
            if sep and name and value:
                pairs[name] = value
    if not pairs:
        return None
    return "; ".join(f"{name}={value}" for name, value in pairs.items())


@dataclass(frozen=True, slots=True)
class Session:
    """An established credential for one controller."""

    token: str
    obtained_at: float
    ttl: Optional[float]
    deployment: Deployment
    csrf_token: Optional[str] = None

    def age(self, now: float) -> float:
        return max(0.0, now - self.obtained_at)

    def expired(self, now: float) -> bool:
        return self.ttl is not None and self.age(now) >= self.ttl

    def headers(self) -> dict[str, str]:
        """Return the headers that authenticate a request."""

        if self.deployment is Deployment.CLOUD:
            return {HEADER_API_KEY: self.token, "Accept": "application/json"}
        headers = {"Cookie": self.token, "Accept": "application/json"}
        if self.csrf_token:
            headers[HEADER_CSRF] = self.csrf_token
        return headers


def _login_error(
    response: RawResponse, deployment: Deployment, url: str
) -> AuthenticationError:
    status = response.status
    retry_after: Optional[float] = None
    if status == 400:
        message = (
            "The controller rejected the login request as malformed (HTTP 400); "
            "check that the username and password are filled in"
        )
    elif status == 401:
        message = "Invalid UniFi controller credentials (HTTP 401)"
    elif status == 403:
        message = (
            "Login forbidden (HTTP 403); the account may be locked, lack admin rights, "
            "or require two-factor authentication (use a local account)"
        )
    elif status == 404:
        if deployment is Deployment.GATEWAY:
            message = (
                f"Login endpoint {deployment.login_path} not found (HTTP 404); "
                "the controller looks like a classic Network application, check the port"
            )
        else:
            message = (
                f"Login endpoint {deployment.login_path} not found (HTTP 404); "
                "if this is a UniFi OS console, verify the credentials and use https on port 443"
            )
    elif status == 429:
        retry_after = response.retry_after
        message = "Too many login attempts (HTTP 429)"
        if retry_after is not None:
            message = f"{message}; retry in {retry_after:.0f}s"
    else:
        message = f"UniFi login failed with HTTP {status}"
    return AuthenticationError(
        message,
        status_code=status,
        deployment=deployment,
        retry_after=retry_after,
        url=url,
    )


class SessionManager:
    """Own and renew the authenticated session for one controller."""

    def __init__(
        self,
        config: ConnectionConfig,
        transport: Transport,
        *,
        ttl: float = DEFAULT_SESSION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._transport = transport
        self._detector = DeploymentDetector(transport)
        self._ttl = ttl
        self._clock = clock
        self._session: Optional[Session] = None
        self._deployment = self._initial_deployment(config)
        self._lock = asyncio.Lock()
        self._login_task: Optional[asyncio.Future[bool]] = None
        self._generation = 0

    @staticmethod
    def _initial_deployment(config: ConnectionConfig) -> Deployment:
        return Deployment.CLOUD if config.is_cloud else Deployment.UNKNOWN

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def deployment(self) -> Deployment:
        return self._deployment

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def login_in_progress(self) -> bool:
        return self._login_task is not None and not self._login_task.done()

    def now(self) -> float:
        return self._clock()

    def is_authenticated(self) -> bool:
        session = self._session
        if session is None or not session.token:
            return False
        return not session.expired(self._clock())

    def build_url(self, path: str, deployment: Optional[Deployment] = None) -> str:
        """Join ``path`` onto the controller base, adding the UniFi OS prefix."""

        deployment = deployment or self._deployment
        cleaned = "/" + str(path or "").lstrip("/")
        prefix = deployment.path_prefix
        if prefix and not cleaned.startswith(f"{prefix}/"):
            cleaned = f"{prefix}{cleaned}"
        return f"{self._config.api_base_url}{cleaned}"

    async def configure(
        self, config: ConnectionConfig, *, transport: Optional[Transport] = None
    ) -> None:
        """Replace the configuration; the session and deployment are discarded."""

        async with self._lock:
            self._config = config
            if transport is not None:
                self._transport = transport
                self._detector = DeploymentDetector(transport)
            self._generation += 1
            self._session = None
            self._deployment = self._initial_deployment(config)
            # An in-flight login for the old settings finishes but is not stored.
            self._login_task = None

    async def login(self) -> bool:
        """Authenticate, sharing one attempt between concurrent callers.

        Returns True once a session is stored, False when the configuration
        was replaced while the attempt was running. Failures raise
        :class:`AuthenticationError`, :class:`TransportError`,
        :class:`ConfigurationError` or :class:`UpstreamProtocolError`; every
        waiting caller receives the same exception.
        """

        task = self._login_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._async_login(self._generation))
            self._login_task = task
            task.add_done_callback(self._login_done)
        else:
            _LOGGER.debug("Login already in progress; waiting for it")
        return await asyncio.shield(task)

    def _login_done(self, task: "asyncio.Future[bool]") -> None:
        if self._login_task is task:
            self._login_task = None
        if not task.cancelled():
            # Mark the exception as retrieved even if every waiter went away.
            task.exception()

    async def _async_login(self, generation: int) -> bool:
        config = self._config
        config.validate()

        if config.is_cloud:
            session = Session(
                token=config.api_key or "",
                obtained_at=self._clock(),
                ttl=None,
                deployment=Deployment.CLOUD,
            )
            # The first real request validates the key.
            return await self._store(session, generation)

        deployment = self._deployment
        response: Optional[RawResponse] = None
        if deployment is Deployment.UNKNOWN:
            detection = await self._detector.probe(config)
            deployment = detection.deployment
            response = detection.response
            async with self._lock:
                if generation == self._generation:
                    self._deployment = deployment
            _LOGGER.debug("Detected %s deployment for %s", deployment.value, config.base_url)

        if response is None:
            response = await self._post_login(config, deployment)

        token = normalize_cookies(response.set_cookies)
        if not token:
            raise UpstreamProtocolError(
                "UniFi login did not return a usable session cookie",
                url=response.url,
                body=shorten(response.text, 200),
            )
        csrf = response.header(HEADER_CSRF) or response.header("X-Updated-CSRF-Token")
        session = Session(
            token=token,
            obtained_at=self._clock(),
            ttl=self._ttl,
            deployment=deployment,
            csrf_token=csrf,
        )
        stored = await self._store(session, generation)
        if stored:
            _LOGGER.debug("Authenticated with UniFi controller (%s)", deployment.value)
        return stored

    async def _post_login(
        self, config: ConnectionConfig, deployment: Deployment
    ) -> RawResponse:
        url = f"{config.api_base_url}{deployment.login_path}"
        # Do not log credentials; the label only carries host and path.
        _LOGGER.debug("Attempting UniFi login at %s", endpoint_label(url))
        response = await self._transport.send(
            Request(
                "POST",
                url,
                headers={"Accept": "application/json", "Content-Type": "application/json"},
                json=login_payload(config, deployment),
                timeout=config.timeout,
            )
        )
        if not response.ok:
            error = _login_error(response, deployment, url)
            _LOGGER.debug("UniFi login rejected: %s", error)
            raise error
        return response

    async def _store(self, session: Session, generation: int) -> bool:
        async with self._lock:
            if generation != self._generation:
                _LOGGER.debug("Discarding session obtained for replaced settings")
                return False
            self._session = session
            return True

    async def ensure_authenticated(self) -> Session:
        """Return a valid session, logging in when missing or past its TTL."""

        session = self._session
        if session is not None and self.is_authenticated():
            return session
        if session is not None:
            _LOGGER.debug("Session older than %ss; re-authenticating", self._ttl)
        if not await self.login():
            raise AuthenticationError("Connection settings changed during login")
        session = self._session
        if session is None:
            raise AuthenticationError("Login did not establish a session")
        return session

    async def reauthenticate(self, stale: Optional[Session]) -> Session:
        """Replace ``stale`` with a fresh session.

        If another caller already renewed it, the newer session is returned
        without a second login.
        """

        current = self._session
        if current is not None and current is not stale and self.is_authenticated():
            return current
        await self.invalidate(stale)
        return await self.ensure_authenticated()

    async def invalidate(self, session: Optional[Session] = None) -> None:
        """Forget the current session, or only ``session`` if it is still current."""

        async with self._lock:
            if session is None or self._session is session:
                self._session = None

    async def logout(self) -> None:
        """Best-effort remote logout; local state is always cleared."""

        async with self._lock:
            session = self._session
            self._session = None
        if session is None or session.deployment is Deployment.CLOUD:
            return

        url = f"{self._config.api_base_url}{session.deployment.logout_path}"
        try:
            response = await self._transport.send(
                Request(
                    "POST",
                    url,
                    headers=session.headers(),
                    json={},
                    timeout=self._config.timeout,
                )
            )
        except ControllerError as err:
            _LOGGER.debug("UniFi logout failed: %s", err)
            return
        except Exception as err:  # pragma: no cover - defensive network guard
            _LOGGER.debug("UniFi logout failed unexpectedly: %s", err)
            return
        _LOGGER.debug("UniFi logout returned HTTP %s", response.status)


__all__ = ["Session", "SessionManager", "normalize_cookies"]
