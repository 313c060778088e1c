"""Error taxonomy for the UniFi controller client.

Every error raised to callers derives from :class:`ControllerError` and
carries a message that is safe to show verbatim to a user.
"""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - for typing only
    from .detector import Deployment


class ControllerError(Exception):
    """Base class for UniFi controller client errors."""


class ConfigurationError(ControllerError):
    """Error to indicate missing or invalid connection settings."""

    def __init__(self, msg: str, *, field: Optional[str] = None) -> None:
        """Initialize the error."""
        super().__init__(msg)
        self.field = field


class TransportErrorKind(str, Enum):
    """Network-level failure categories."""

    DNS = "dns"
    CONNECTION_REFUSED = "connection_refused"
    TLS = "tls"
    TIMEOUT = "timeout"
    OTHER = "other"


_TRANSPORT_HINTS: dict[TransportErrorKind, str] = {
    TransportErrorKind.DNS: "the host name could not be resolved; check the controller URL",
    TransportErrorKind.CONNECTION_REFUSED: (
        "the connection was refused; check the port (443 for UniFi OS, 8443 for the "
        "Network application)"
    ),
    TransportErrorKind.TLS: (
        "the TLS handshake failed; the controller may use a self-signed certificate "
        "(disable certificate verification) or plain http"
    ),
    TransportErrorKind.TIMEOUT: "the controller did not answer in time",
    TransportErrorKind.OTHER: "the request could not be sent",
}


class TransportError(ControllerError):
    """The controller could not be reached. Never means bad credentials."""

    kind = TransportErrorKind.OTHER

    def __init__(self, url: str, reason: Optional[str] = None) -> None:
        """Initialize the error."""
        hint = _TRANSPORT_HINTS[self.kind]
        message = f"Failed to connect to {url}: {hint}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.url = url
        self.reason = reason


class DnsResolutionFailed(TransportError):
    kind = TransportErrorKind.DNS


class ConnectionRefused(TransportError):
    kind = TransportErrorKind.CONNECTION_REFUSED


class TlsError(TransportError):
    kind = TransportErrorKind.TLS


class TransportTimeout(TransportError):
    kind = TransportErrorKind.TIMEOUT


class AuthenticationError(ControllerError):
    """Login was rejected, or a session could not be renewed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        deployment: Optional["Deployment"] = None,
        retry_after: Optional[float] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.deployment = deployment
        self.retry_after = retry_after
        self.url = url


class SessionExpiredError(ControllerError):
    """Internal signal: the controller rejected the current session cookie."""

    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"Session rejected by {url} (HTTP {status_code})")
        self.status_code = status_code
        self.url = url


class UpstreamProtocolError(ControllerError):
    """The controller answered with a malformed or unexpected body."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.body = body


class UpstreamStatusError(UpstreamProtocolError):
    """The controller answered a resource request with an HTTP error status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        url: Optional[str] = None,
        body: Optional[str] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, url=url, body=body)
        self.status_code = status_code
        self.retry_after = retry_after


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "ConnectionRefused",
    "ControllerError",
    "DnsResolutionFailed",
    "SessionExpiredError",
    "TlsError",
    "TransportError",
    "TransportErrorKind",
    "TransportTimeout",
    "UpstreamProtocolError",
    "UpstreamStatusError",
]
