"""Concurrent collection of controller statistics into one snapshot."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from .client import ControllerClient
from .const import DEFAULT_KEEPALIVE_INTERVAL
from .errors import ConfigurationError
from .keepalive import SessionKeepAlive
from .models import (
    AggregateResult,
    DhcpSummary,
    NetworkStats,
    PortForwardingSummary,
    SystemInfo,
    SystemSnapshot,
    summarize_site,
    temperature_from_devices,
)

_LOGGER = logging.getLogger(__name__)

FETCH_DEVICES = "devices"
FETCH_CLIENTS = "clients"
FETCH_NETWORK_STATS = "network_stats"
FETCH_SYSTEM_INFO = "system_info"
FETCH_DHCP_NETWORKS = "dhcp_networks"
FETCH_STATIC_LEASES = "static_leases"
FETCH_PORT_FORWARDING = "port_forwarding"
FETCH_WIRELESS_NETWORKS = "wireless_networks"

# Dropped from the result when the session is no longer valid after the batch.
SENSITIVE_FETCHES = frozenset({FETCH_DHCP_NETWORKS, FETCH_STATIC_LEASES, FETCH_PORT_FORWARDING})

Fetch = Callable[[], Awaitable[Any]]


class StatsAggregator:
    """Build :class:`AggregateResult` snapshots for one controller client.

    Concurrent :meth:`get_stats` callers share one in-flight collection.
    For local controllers the aggregator also owns the keep-alive loop.
    """

    def __init__(
        self,
        client: ControllerClient,
        *,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        enabled: bool = True,
    ) -> None:
        self._client = client
        self._enabled = enabled
        self._inflight: Optional[asyncio.Future[AggregateResult]] = None
        self._keepalive = SessionKeepAlive(
            client, interval=keepalive_interval, is_enabled=lambda: self._enabled
        )

    @property
    def client(self) -> ControllerClient:
        return self._client

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def keepalive(self) -> SessionKeepAlive:
        return self._keepalive

    def _plan(self) -> list[tuple[str, Fetch]]:
        client = self._client
        plan: list[tuple[str, Fetch]] = [
            (FETCH_DEVICES, client.get_devices),
            (FETCH_CLIENTS, client.get_clients),
            (FETCH_NETWORK_STATS, client.get_network_stats),
            (FETCH_SYSTEM_INFO, client.get_system_info),
        ]
        if not client.config.is_cloud:
            plan += [
                (FETCH_DHCP_NETWORKS, client.get_network_config),
                (FETCH_STATIC_LEASES, client.get_dhcp_static_leases),
                (FETCH_PORT_FORWARDING, client.get_port_forwarding_rules),
            ]
        plan.append((FETCH_WIRELESS_NETWORKS, client.get_wireless_networks))
        return plan

    async def get_stats(self) -> AggregateResult:
        """Return a fresh snapshot, joining a collection already in flight."""

        if not self._enabled:
            raise ConfigurationError("UniFi statistics collection is disabled")
        task = self._inflight
        if task is None or task.done():
            task = asyncio.ensure_future(self._collect())
            self._inflight = task
            task.add_done_callback(self._collect_done)
        else:
            _LOGGER.debug("Statistics collection already running; sharing its result")
        return await asyncio.shield(task)

    def _collect_done(self, task: "asyncio.Future[AggregateResult]") -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled():
            task.exception()

    async def _collect(self) -> AggregateResult:
        client = self._client
        start = time.monotonic()
        # Authentication problems fail the whole collection.
        await client.sessions.ensure_authenticated()

        plan = self._plan()
        results = await asyncio.gather(
            *(fetch() for _name, fetch in plan), return_exceptions=True
        )

        values: dict[str, Any] = {}
        failed: list[str] = []
        for (name, _fetch), result in zip(plan, results):
            if isinstance(result, Exception):
                _LOGGER.warning("Failed to fetch UniFi %s: %s", name, result)
                failed.append(name)
            elif isinstance(result, BaseException):
                raise result
            else:
                values[name] = result

        # Checked only after every fetch has settled.
        session_valid = client.is_authenticated()
        if not session_valid and SENSITIVE_FETCHES.intersection(values):
            _LOGGER.warning(
                "UniFi session no longer valid after fetching; "
                "omitting DHCP and port forwarding data"
            )

        result = self._build(values, tuple(failed), session_valid)
        _LOGGER.debug(
            "Collected UniFi statistics: %d devices, %d failed fetches, %.2fs",
            len(result.devices),
            len(result.failed),
            time.monotonic() - start,
        )
        return result

    def _build(
        self, values: dict[str, Any], failed: tuple[str, ...], session_valid: bool
    ) -> AggregateResult:
        config = self._client.config
        network_devices = tuple(values.get(FETCH_DEVICES, ()))
        clients = tuple(values.get(FETCH_CLIENTS, ()))
        network: NetworkStats = values.get(FETCH_NETWORK_STATS) or NetworkStats()
        sysinfo: SystemInfo = values.get(FETCH_SYSTEM_INFO) or SystemInfo()

        temperature = sysinfo.temperature
        if temperature is None:
            temperature = temperature_from_devices(network_devices)

        dhcp: Optional[DhcpSummary] = None
        port_forwarding: Optional[PortForwardingSummary] = None
        if session_valid:
            if FETCH_DHCP_NETWORKS in values or FETCH_STATIC_LEASES in values:
                dhcp = DhcpSummary(
                    networks=tuple(values.get(FETCH_DHCP_NETWORKS, ())),
                    static_leases=tuple(values.get(FETCH_STATIC_LEASES, ())),
                )
            if FETCH_PORT_FORWARDING in values:
                port_forwarding = PortForwardingSummary(rules=tuple(values[FETCH_PORT_FORWARDING]))

        return AggregateResult(
            devices=network_devices + clients,
            network=network,
            system=SystemSnapshot(
                temperature=temperature,
                uptime=sysinfo.uptime,
                firmware=sysinfo.version,
                name=sysinfo.name,
                hostname=sysinfo.hostname,
                previous_version=sysinfo.previous_version,
                update_available=sysinfo.update_available,
                update_downloaded=sysinfo.update_downloaded,
                unsupported_device_count=sysinfo.unsupported_device_count,
                memory=sysinfo.memory,
                cpu=sysinfo.cpu,
                api_mode=config.mode.value,
                dhcp=dhcp,
                port_forwarding=port_forwarding,
                wifi_networks=tuple(values.get(FETCH_WIRELESS_NETWORKS, ())),
            ),
            sites=(
                summarize_site(
                    config.site, sysinfo.name, sysinfo.hostname, network_devices, clients
                ),
            ),
            failed=failed,
            session_valid=session_valid,
        )

    async def async_start(self) -> None:
        """Start the keep-alive loop (local controllers only)."""

        if self._enabled:
            self._keepalive.start()

    async def async_set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        if enabled:
            self._keepalive.start()
        else:
            await self._keepalive.async_stop()

    async def async_close(self) -> None:
        await self._keepalive.async_stop()
        await self._client.close()


__all__ = ["SENSITIVE_FETCHES", "StatsAggregator"]
