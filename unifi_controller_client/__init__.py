"""Async client for UniFi network controllers (local Network application and cloud)."""
from __future__ import annotations

from .aggregator import StatsAggregator
from .client import ControllerClient, create_transport
from .config import ConnectionConfig, Mode
from .detector import Deployment, DeploymentDetector
from .errors import (
    AuthenticationError,
    ConfigurationError,
    ConnectionRefused,
    ControllerError,
    DnsResolutionFailed,
    TlsError,
    TransportError,
    TransportErrorKind,
    TransportTimeout,
    UpstreamProtocolError,
    UpstreamStatusError,
)
from .keepalive import SessionKeepAlive
from .models import (
    AggregateResult,
    DhcpNetwork,
    DhcpSummary,
    NetworkStats,
    NormalizedDevice,
    PortForwardingSummary,
    PortForwardRule,
    StaticLease,
    SystemInfo,
    SystemSnapshot,
    WirelessNetwork,
)
from .session import Session, SessionManager

__version__ = "1.0.0"

__all__ = [
    "AggregateResult",
    "AuthenticationError",
    "ConfigurationError",
    "ConnectionConfig",
    "ConnectionRefused",
    "ControllerClient",
    "ControllerError",
    "Deployment",
    "DeploymentDetector",
    "DhcpNetwork",
    "DhcpSummary",
    "DnsResolutionFailed",
    "Mode",
    "NetworkStats",
    "NormalizedDevice",
    "PortForwardRule",
    "PortForwardingSummary",
    "Session",
    "SessionKeepAlive",
    "SessionManager",
    "StaticLease",
    "StatsAggregator",
    "SystemInfo",
    "SystemSnapshot",
    "TlsError",
    "TransportError",
    "TransportErrorKind",
    "TransportTimeout",
    "UpstreamProtocolError",
    "UpstreamStatusError",
    "WirelessNetwork",
    "__version__",
    "create_transport",
]
