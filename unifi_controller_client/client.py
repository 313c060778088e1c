"""Normalized public surface over the local and cloud UniFi APIs."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Union

import aiohttp

from .backends import CloudBackend, LocalBackend
from .config import ConnectionConfig
from .const import CONF_MODE, DEFAULT_SESSION_TTL
from .detector import Deployment
from .errors import AuthenticationError, ConfigurationError, UpstreamProtocolError
from .executor import RequestExecutor
from .models import (
    DhcpNetwork,
    NetworkStats,
    NormalizedDevice,
    PortForwardRule,
    StaticLease,
    SystemInfo,
    WirelessNetwork,
    normalize_client,
    normalize_device,
    normalize_dhcp_network,
    normalize_port_forward,
    normalize_static_lease,
    normalize_wlans,
)
from .session import SessionManager
from .transport import CloudTransport, LocalTransport, Transport

_LOGGER = logging.getLogger(__name__)

Backend = Union[LocalBackend, CloudBackend]


def create_transport(
    config: ConnectionConfig, *, http_session: Optional[aiohttp.ClientSession] = None
) -> Transport:
    """Create the transport matching the configured mode."""

    if config.is_cloud:
        return CloudTransport(
            http_session, verify_ssl=config.verify_ssl, timeout=config.timeout
        )
    return LocalTransport(verify_ssl=config.verify_ssl, timeout=config.timeout)


class ControllerClient:
    """Read devices, clients and site settings from one UniFi controller.

    The client owns a :class:`SessionManager`; sessions are never shared
    between client instances. Use it as an async context manager, or call
    :meth:`close` when done.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        transport: Optional[Transport] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
        ttl: float = DEFAULT_SESSION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._http_session = http_session
        self._owns_transport = transport is None
        if transport is None:
            transport = create_transport(config, http_session=http_session)
        self._sessions = SessionManager(config, transport, ttl=ttl, clock=clock)
        self._executor = RequestExecutor(self._sessions)
        self._backend = self._build_backend(config)

    def _build_backend(self, config: ConnectionConfig) -> Backend:
        if config.is_cloud:
            return CloudBackend(self._executor)
        return LocalBackend(self._executor)

    async def __aenter__(self) -> "ControllerClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def config(self) -> ConnectionConfig:
        return self._sessions.config

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    @property
    def deployment(self) -> Deployment:
        return self._sessions.deployment

    def is_authenticated(self) -> bool:
        return self._sessions.is_authenticated()

    async def login(self) -> bool:
        return await self._sessions.login()

    async def logout(self) -> None:
        await self._sessions.logout()

    async def set_connection(
        self, config: ConnectionConfig, *, transport: Optional[Transport] = None
    ) -> None:
        """Switch to new connection settings, discarding the current session."""

        config.validate()
        await self._sessions.logout()
        old_transport = self._sessions.transport
        owned = self._owns_transport
        self._owns_transport = transport is None
        if transport is None:
            transport = create_transport(config, http_session=self._http_session)
        await self._sessions.configure(config, transport=transport)
        self._backend = self._build_backend(config)
        if owned and old_transport is not transport:
            await old_transport.close()
        _LOGGER.debug("Controller connection settings replaced (%s)", config.mode.value)

    async def close(self) -> None:
        await self._sessions.logout()
        if self._owns_transport:
            await self._sessions.transport.close()

    async def get_devices(self) -> tuple[NormalizedDevice, ...]:
        return tuple(normalize_device(record) for record in await self._backend.get_devices())

    async def get_clients(self) -> tuple[NormalizedDevice, ...]:
        return tuple(normalize_client(record) for record in await self._backend.get_clients())

    async def get_wireless_networks(self) -> tuple[WirelessNetwork, ...]:
        return normalize_wlans(await self._backend.get_wlans())

    async def get_network_config(self) -> tuple[DhcpNetwork, ...]:
        """Return the DHCP settings of the site's LAN networks."""

        records = await self._backend.get_networks()
        networks = (normalize_dhcp_network(record) for record in records)
        return tuple(network for network in networks if network is not None)

    async def get_dhcp_static_leases(self) -> tuple[StaticLease, ...]:
        records = await self._backend.get_static_leases()
        leases = (normalize_static_lease(record) for record in records)
        return tuple(lease for lease in leases if lease is not None)

    async def get_port_forwarding_rules(self) -> tuple[PortForwardRule, ...]:
        return tuple(
            normalize_port_forward(record) for record in await self._backend.get_port_forwards()
        )

    async def get_network_stats(self) -> NetworkStats:
        return await self._backend.get_network_stats()

    async def get_system_info(self) -> SystemInfo:
        return await self._backend.get_system_info()

    async def get_sites(self) -> list[dict[str, Any]]:
        """List the sites visible to the API key (cloud mode only)."""

        if not self.config.is_cloud:
            raise ConfigurationError(
                "Listing sites requires the UniFi Site Manager API", field=CONF_MODE
            )
        return await self._backend.get_sites()

    async def test_connection(self) -> bool:
        """Log in and read from the configured site.

        Local mode reads the site's devices. Cloud mode only checks that the
        API key can list at least one site; no site data is read. Returns True
        or raises, usually a :class:`ControllerError` whose message can be
        shown to the user. The session is logged out on every failure, and on
        success in local mode.
        """

        config = self.config
        try:
            config.validate()
            if not await self._sessions.login():
                raise AuthenticationError("Connection settings changed during the connection test")
            payload = await self._backend.probe()
            if config.is_cloud:
                if not isinstance(payload, list) or not payload:
                    raise UpstreamProtocolError(
                        "No sites found or invalid response from the UniFi Site Manager API"
                    )
                _LOGGER.debug("Connection test found %d site(s)", len(payload))
            elif not isinstance(payload, list):
                raise UpstreamProtocolError(
                    f'Could not retrieve devices from site "{config.site}": invalid response format'
                )
        except Exception as err:
            _LOGGER.debug("Connection test failed: %s", err)
            await self._sessions.logout()
            raise

        if not config.is_cloud:
            await self._sessions.logout()
        return True


__all__ = ["ControllerClient", "create_transport"]
