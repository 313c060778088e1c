"""Resource fetchers for the local controller API and the cloud API.

Backends return raw upstream records; normalization happens in the
facade. Both expose the same coroutine names so the facade can route
without branching on the mode.
"""
from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

from .errors import (
    AuthenticationError,
    ControllerError,
    TransportError,
    UpstreamProtocolError,
)
from .executor import RequestExecutor
from .models import (
    NetworkStats,
    SystemInfo,
    extract_records,
    first_record,
    normalize_cloud_hosts,
    normalize_system_info,
    stats_from_dashboard,
    stats_from_health,
    stats_from_wan,
)

_LOGGER = logging.getLogger(__name__)


class LocalBackend:
    """One executor call per resource under ``/api/s/<site>/``."""

    def __init__(self, executor: RequestExecutor) -> None:
        self._executor = executor

    @property
    def site(self) -> str:
        return self._executor.sessions.config.site

    def site_path(self, resource: str) -> str:
        return f"/api/s/{quote(self.site, safe='')}/{resource.lstrip('/')}"

    async def _get(self, resource: str) -> Any:
        return await self._executor.execute(self.site_path(resource))

    async def _get_list(self, resource: str) -> list[dict[str, Any]]:
        return extract_records(await self._get(resource))

    async def probe(self) -> Any:
        """Fetch the raw device list used to verify the site is reachable."""

        return await self._get("stat/device")

    async def get_sites(self) -> list[dict[str, Any]]:
        return await self._get_list("self/sites")

    async def get_devices(self) -> list[dict[str, Any]]:
        return await self._get_list("stat/device")

    async def get_clients(self) -> list[dict[str, Any]]:
        return await self._get_list("stat/sta")

    async def get_wlans(self) -> list[dict[str, Any]]:
        return await self._get_list("rest/wlanconf")

    async def get_networks(self) -> list[dict[str, Any]]:
        return await self._get_list("rest/networkconf")

    async def get_static_leases(self) -> list[dict[str, Any]]:
        return [
            record
            for record in await self._get_list("rest/user")
            if record.get("use_fixedip") is True
        ]

    async def get_port_forwards(self) -> list[dict[str, Any]]:
        return await self._get_list("rest/portforward")

    async def get_system_info(self) -> SystemInfo:
        return normalize_system_info(first_record(await self._get("stat/sysinfo")))

    async def get_network_stats(self) -> NetworkStats:
        """Read WAN counters from the dashboard, then health, then sysinfo."""

        for resource, extract in (
            ("stat/dashboard", stats_from_dashboard),
            ("stat/health", stats_from_health),
        ):
            try:
                stats = extract(await self._get(resource))
            except (AuthenticationError, TransportError):
                raise
            except ControllerError as err:
                _LOGGER.debug("WAN counters unavailable from %s: %s", resource, err)
                continue
            if stats is not None:
                return stats

        try:
            sysinfo = await self.get_system_info()
        except (AuthenticationError, TransportError):
            raise
        except ControllerError as err:
            _LOGGER.debug("WAN counters unavailable from stat/sysinfo: %s", err)
            return NetworkStats()
        wan = sysinfo.raw.get("wan")
        if isinstance(wan, dict):
            return stats_from_wan(wan)
        _LOGGER.debug("No WAN counters available for site %s", self.site)
        return NetworkStats()


class CloudBackend:
    """Site Manager API; site-scoped resources are merged across sites."""

    def __init__(self, executor: RequestExecutor) -> None:
        self._executor = executor

    async def probe(self) -> Any:
        return await self._executor.execute("/sites")

    async def get_sites(self) -> list[dict[str, Any]]:
        return extract_records(await self._executor.execute("/sites"))

    @staticmethod
    def _site_id(site: dict[str, Any]) -> Optional[str]:
        value = site.get("id") or site.get("siteId")
        return str(value) if value else None

    async def _per_site(self, resource: str) -> list[tuple[dict[str, Any], Any]]:
        """Fetch ``resource`` for every site, skipping sites that fail."""

        results: list[tuple[dict[str, Any], Any]] = []
        for site in await self.get_sites():
            site_id = self._site_id(site)
            if site_id is None:
                continue
            try:
                payload = await self._executor.execute(
                    f"/sites/{quote(site_id, safe='')}/{resource}"
                )
            except AuthenticationError:
                raise
            except ControllerError as err:
                _LOGGER.debug(
                    "Failed to get %s for site %s: %s",
                    resource,
                    site.get("name") or site_id,
                    err,
                )
                continue
            results.append((site, payload))
        return results

    async def _site_records(self, resource: str) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for _site, payload in await self._per_site(resource):
            records.extend(extract_records(payload))
        return records

    @staticmethod
    def _is_client(record: dict[str, Any]) -> bool:
        return record.get("type") == "client" or record.get("device_type") == "client"

    async def get_devices(self) -> list[dict[str, Any]]:
        return [
            record for record in await self._site_records("devices") if not self._is_client(record)
        ]

    async def get_clients(self) -> list[dict[str, Any]]:
        return [record for record in await self._site_records("devices") if self._is_client(record)]

    async def get_wlans(self) -> list[dict[str, Any]]:
        return await self._site_records("wlans")

    async def get_networks(self) -> list[dict[str, Any]]:
        _LOGGER.debug("DHCP networks are not exposed by the Site Manager API")
        return []

    async def get_static_leases(self) -> list[dict[str, Any]]:
        _LOGGER.debug("Static DHCP leases are not exposed by the Site Manager API")
        return []

    async def get_port_forwards(self) -> list[dict[str, Any]]:
        _LOGGER.debug("Port forwarding rules are not exposed by the Site Manager API")
        return []

    async def get_system_info(self) -> SystemInfo:
        payload = await self._executor.execute("/hosts")
        if not isinstance(payload, list):
            raise UpstreamProtocolError(
                "UniFi Site Manager returned an unexpected host list", url="/hosts"
            )
        return normalize_cloud_hosts(extract_records(payload))

    async def get_network_stats(self) -> NetworkStats:
        download = upload = rx_packets = tx_packets = 0
        for _site, payload in await self._per_site("isp-metrics"):
            metrics = first_record(payload)
            wan = metrics.get("wan")
            if not isinstance(wan, dict):
                continue
            stats = stats_from_wan(wan)
            download += stats.download
            upload += stats.upload
            rx_packets += stats.rx_packets
            tx_packets += stats.tx_packets
        return NetworkStats(download, upload, rx_packets, tx_packets)


__all__ = ["CloudBackend", "LocalBackend"]
