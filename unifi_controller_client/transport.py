"""HTTP transports for local controllers and the UniFi cloud API.

Both transports expose ``async send(request) -> RawResponse`` and raise a
classified :class:`~.errors.TransportError` when the request never produced
an HTTP response. HTTP error statuses are returned, not raised; interpreting
them is the job of the session manager and the request executor.
"""
from __future__ import annotations

import asyncio
import logging
import socket
import ssl
import time
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional, Protocol

import aiohttp
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .const import DEFAULT_TIMEOUT, HEADER_RETRY_AFTER
from .errors import (
    ConnectionRefused,
    DnsResolutionFailed,
    TlsError,
    TransportError,
    TransportTimeout,
)
from .utils import endpoint_label, parse_retry_after, shorten

_LOGGER = logging.getLogger(__name__)

MAX_BACKOFF = 30.0
MAX_ATTEMPTS = 4

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "failed to resolve",
    "no address associated",
)
_REFUSED_MARKERS = ("connection refused", "econnrefused", "actively refused")
_TLS_MARKERS = ("certificate", "ssl", "tls", "wrong version number", "eproto")
_TIMEOUT_MARKERS = ("timed out", "timeout", "etimedout")


class _RetryingLogFilter(logging.Filter):
    """Suppress noisy urllib3 retry warnings that we handle ourselves."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - logging guard
        message = record.getMessage()
        return not (isinstance(message, str) and message.startswith("Retrying (Retry("))


def _configure_retry_logging() -> None:
    """Install retry log filters for both urllib3 and Requests vendored loggers."""

    for name in ("urllib3.connectionpool", "requests.packages.urllib3.connectionpool"):
        logger = logging.getLogger(name)
        for existing in logger.filters:
            if isinstance(existing, _RetryingLogFilter):
                break
        else:
            logger.addFilter(_RetryingLogFilter())


@dataclass(frozen=True, slots=True)
class Request:
    """One outbound HTTP request."""

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    json: Any = None
    params: Optional[Mapping[str, Any]] = None
    timeout: Optional[float] = None


@dataclass(frozen=True, slots=True)
class RawResponse:
    """Transport-neutral view of an HTTP response."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    set_cookies: tuple[str, ...] = ()
    text: str = ""
    url: str = ""
    elapsed_ms: int = 0

    def __post_init__(self) -> None:
        lowered = {str(key).lower(): value for key, value in dict(self.headers).items()}
        object.__setattr__(self, "headers", lowered)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    @property
    def retry_after(self) -> Optional[float]:
        return parse_retry_after(self.header(HEADER_RETRY_AFTER))


class Transport(Protocol):
    async def send(self, request: Request) -> RawResponse:
        ...

    async def close(self) -> None:
        ...


def _iter_causes(err: BaseException) -> Iterator[BaseException]:
    """Yield ``err`` and every exception reachable through its cause chain."""

    pending: list[BaseException] = [err]
    seen: set[int] = set()
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        for attr in ("__cause__", "__context__", "reason", "os_error", "certificate_error"):
            nested = getattr(current, attr, None)
            if isinstance(nested, BaseException):
                pending.append(nested)
        for arg in getattr(current, "args", ()):
            if isinstance(arg, BaseException):
                pending.append(arg)


def classify_transport_error(err: BaseException, url: str) -> TransportError:
    """Map a low-level failure onto the transport error taxonomy."""

    reason = shorten(str(err) or err.__class__.__name__, 300)
    for cause in _iter_causes(err):
        if isinstance(cause, socket.gaierror):
            return DnsResolutionFailed(url, reason)
        if isinstance(
            cause,
            (
                ssl.SSLError,
                ssl.CertificateError,
                requests.exceptions.SSLError,
                aiohttp.ClientSSLError,
            ),
        ):
            return TlsError(url, reason)
        if isinstance(cause, ConnectionRefusedError):
            return ConnectionRefused(url, reason)
        if isinstance(
            cause,
            (
                TimeoutError,
                asyncio.TimeoutError,
                requests.exceptions.Timeout,
                aiohttp.ServerTimeoutError,
            ),
        ):
            return TransportTimeout(url, reason)

    # Some platforms only expose the failure through the message text.
    text = " ".join(str(cause) for cause in _iter_causes(err)).lower()
    if any(marker in text for marker in _DNS_MARKERS):
        return DnsResolutionFailed(url, reason)
    if any(marker in text for marker in _REFUSED_MARKERS):
        return ConnectionRefused(url, reason)
    if any(marker in text for marker in _TLS_MARKERS):
        return TlsError(url, reason)
    if any(marker in text for marker in _TIMEOUT_MARKERS):
        return TransportTimeout(url, reason)
    return TransportError(url, reason)


def _header_values(headers: Any, name: str) -> tuple[str, ...]:
    getall = getattr(headers, "getall", None)
    if callable(getall):
        return tuple(getall(name, []))
    getlist = getattr(headers, "getlist", None)
    if callable(getlist):
        return tuple(getlist(name))
    value = headers.get(name) if headers is not None else None
    return (value,) if value else ()


class LocalTransport:
    """requests-based transport for an on-premises controller.

    The requests session is owned by this transport and its ``verify`` flag
    only affects calls made through it. Blocking I/O runs in a worker thread.
    """

    def __init__(
        self,
        *,
        verify_ssl: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        _configure_retry_logging()
        self._verify_ssl = verify_ssl
        self._timeout = timeout
        self._session = session if session is not None else self._build_session()
        if not verify_ssl:
            _LOGGER.debug(
                "Certificate verification disabled for this controller connection only"
            )

    @staticmethod
    def _build_session() -> requests.Session:
        session = requests.Session()
        retries = Retry(
            total=3,
            connect=1,
            read=2,
            backoff_factor=0.4,
            status_forcelist=(502, 503, 504),
            allowed_methods=("GET",),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        session.headers.update({"Accept": "application/json"})
        return session

    @property
    def verify_ssl(self) -> bool:
        return self._verify_ssl

    async def send(self, request: Request) -> RawResponse:
        return await asyncio.to_thread(self._send_blocking, request)

    def _send_blocking(self, request: Request) -> RawResponse:
        kwargs: dict[str, Any] = {
            "headers": dict(request.headers),
            "timeout": request.timeout or self._timeout,
            "allow_redirects": False,
            "verify": self._verify_ssl,
        }
        if request.params:
            kwargs["params"] = dict(request.params)
        if request.json is not None:
            kwargs["json"] = request.json

        start = time.perf_counter()
        try:
            response = self._session.request(request.method, request.url, **kwargs)
        except requests.exceptions.RequestException as err:
            error = classify_transport_error(err, request.url)
            _LOGGER.debug(
                "Request %s %s failed (%s): %s",
                request.method,
                endpoint_label(request.url),
                error.kind.value,
                shorten(str(err), 300),
            )
            raise error from err
        finally:
            # Credentials live in the session manager, never in the cookie jar.
            self._session.cookies.clear()

        raw_headers = getattr(response.raw, "headers", None)
        set_cookies = _header_values(raw_headers, "Set-Cookie") if raw_headers is not None else ()
        if not set_cookies:
            set_cookies = _header_values(response.headers, "Set-Cookie")
        return RawResponse(
            status=response.status_code,
            headers=dict(response.headers),
            set_cookies=set_cookies,
            text=response.text or "",
            url=response.url or request.url,
            elapsed_ms=int((time.perf_counter() - start) * 1000),
        )

    async def close(self) -> None:
        self._session.close()


class CloudTransport:
    """aiohttp-based transport for the UniFi cloud API."""

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        verify_ssl: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self._verify_ssl = verify_ssl
        self._timeout = timeout

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def send(self, request: Request) -> RawResponse:
        session = self._get_session()
        timeout_config = aiohttp.ClientTimeout(total=request.timeout or self._timeout)
        ssl_option: Any = None if self._verify_ssl else False
        backoff = 0.5
        delay = 0.0
        last_response: RawResponse | None = None
        last_error: TransportError | None = None

        for attempt in range(1, MAX_ATTEMPTS + 1):
            if delay:
                await asyncio.sleep(delay)
            delay = backoff
            backoff = min(backoff * 2, MAX_BACKOFF)
            start = time.perf_counter()
            try:
                async with session.request(
                    request.method,
                    request.url,
                    headers=dict(request.headers),
                    json=request.json,
                    params=dict(request.params) if request.params else None,
                    timeout=timeout_config,
                    ssl=ssl_option,
                    allow_redirects=False,
                ) as resp:
                    text = await resp.text()
                    response = RawResponse(
                        status=resp.status,
                        headers=dict(resp.headers),
                        set_cookies=_header_values(resp.headers, "Set-Cookie"),
                        text=text or "",
                        url=str(resp.url),
                        elapsed_ms=int((time.perf_counter() - start) * 1000),
                    )
            except (aiohttp.ClientError, asyncio.TimeoutError) as err:
                last_error = classify_transport_error(err, request.url)
                _LOGGER.debug(
                    "Cloud request %s %s attempt %d/%d failed: %s",
                    request.method,
                    endpoint_label(request.url),
                    attempt,
                    MAX_ATTEMPTS,
                    err,
                )
                continue

            last_response = response
            last_error = None
            if response.status == 429:
                retry_after = response.retry_after
                if retry_after is not None:
                    delay = min(retry_after, MAX_BACKOFF)
                if attempt < MAX_ATTEMPTS:
                    _LOGGER.debug("Cloud API rate limited; retrying in %.1fs", delay)
                continue
            if response.status >= 500:
                continue
            return response

        if last_error is not None:
            raise last_error
        if last_response is not None:
            return last_response
        raise TransportError(request.url, "no response received")

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()


__all__ = [
    "CloudTransport",
    "LocalTransport",
    "RawResponse",
    "Request",
    "Transport",
    "classify_transport_error",
]
