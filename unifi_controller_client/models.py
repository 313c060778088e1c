"""Normalized data types and the rules that build them from UniFi payloads.

Upstream records differ between the local Network application and the
cloud Site Manager API. Every normalized field is read from a fixed,
ordered list of candidate keys; the first present value wins.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from .const import UNKNOWN_DEVICE_NAME
from .utils import (
    coerce_float,
    coerce_int,
    first_present,
    is_mac,
    looks_like_mac,
    parse_timestamp,
)

ID_KEYS = ("_id", "id")
MAC_KEYS = ("mac",)
NAME_KEYS = ("name", "display_name", "primary_name")
HOSTNAME_KEYS = ("hostname",)
IP_KEYS = ("ip", "last_ip")
KIND_KEYS = ("type", "device_type")
FIRMWARE_KEYS = ("version", "firmware_version", "firmware")
ONLINE_FLAG_KEYS = ("is_online", "active")
L2_MAC_TYPES = {"mac", "mac_address"}

SSID_KEYS = ("ssid", "name")
BAND_TEXT_KEYS = ("wlan_band", "radio", "type")
GATEWAY_KINDS = ("ugw", "udm", "uxg", "gateway")

_EMPTY: Mapping[str, Any] = MappingProxyType({})


def _frozen(record: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(record))


def _nested(record: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = record.get(key)
    return value if isinstance(value, Mapping) else _EMPTY


def extract_records(payload: Any) -> list[dict[str, Any]]:
    """Return the list of object records carried by ``payload``."""

    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        for key in ("data", "items", "sites", "list", "records"):
            value = payload.get(key)
            if isinstance(value, list):
                return [item for item in value if isinstance(item, dict)]
    return []


def first_record(payload: Any) -> dict[str, Any]:
    """Return the first object in ``payload``, or the object itself."""

    if isinstance(payload, list):
        for item in payload:
            if isinstance(item, dict):
                return item
        return {}
    if isinstance(payload, dict):
        return payload
    return {}


# --------------------------------------------------------------------------
# Devices and clients
# --------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NormalizedDevice:
    """A network device or client in one schema for both APIs."""

    id: str
    name: str
    kind: str
    online: bool
    ip: Optional[str] = None
    mac: Optional[str] = None
    last_seen: Optional[datetime] = None
    firmware_version: Optional[str] = None
    model: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=lambda: _EMPTY, compare=False, repr=False)


def _l2ident_mac(record: Mapping[str, Any]) -> Optional[str]:
    """Return the MAC in ``l2ident`` when it is declared or shaped as one."""

    l2ident = _nested(record, "l2ident")
    value = l2ident.get("id")
    if not isinstance(value, str) or not value.strip():
        return None
    declared = str(l2ident.get("type") or "").strip().lower()
    if declared in L2_MAC_TYPES or is_mac(value):
        return value.strip()
    return None


def extract_mac(record: Mapping[str, Any]) -> Optional[str]:
    value = first_present(record, MAC_KEYS)
    if isinstance(value, str):
        return value
    return _l2ident_mac(record)


def extract_identity(record: Mapping[str, Any]) -> str:
    """Return the stable identifier of ``record``; never raises."""

    value = first_present(record, ID_KEYS)
    if value is not None and not isinstance(value, (dict, list)):
        return str(value)
    return extract_mac(record) or ""


def extract_name(record: Mapping[str, Any]) -> str:
    for keys in (NAME_KEYS, HOSTNAME_KEYS):
        value = first_present(record, keys)
        if isinstance(value, str):
            return value
    return UNKNOWN_DEVICE_NAME


def is_online(record: Mapping[str, Any], *, assume_online: bool = False) -> bool:
    """Return the online flag without coercing arbitrary values.

    ``state`` decides when present: ``"connected"`` (cloud) or the number
    ``1`` (local). Otherwise an explicit boolean flag decides, and only
    then ``assume_online``.
    """

    state = record.get("state")
    if isinstance(state, str):
        return state == "connected"
    if isinstance(state, (int, float)) and not isinstance(state, bool):
        return state == 1
    for key in ONLINE_FLAG_KEYS:
        value = record.get(key)
        if isinstance(value, bool):
            return value
    return assume_online


def _kind(record: Mapping[str, Any], default: str) -> str:
    value = first_present(record, KIND_KEYS)
    if isinstance(value, str):
        return value.lower()
    model = record.get("model")
    if isinstance(model, str) and "uap" in model.lower():
        return "uap"
    return default


def normalize_device(
    record: Mapping[str, Any],
    *,
    default_kind: str = "unknown",
    assume_online: bool = False,
) -> NormalizedDevice:
    ip = first_present(record, IP_KEYS)
    firmware = first_present(record, FIRMWARE_KEYS)
    model = record.get("model")
    return NormalizedDevice(
        id=extract_identity(record),
        name=extract_name(record),
        kind=_kind(record, default_kind),
        online=is_online(record, assume_online=assume_online),
        ip=ip if isinstance(ip, str) else None,
        mac=extract_mac(record),
        last_seen=parse_timestamp(record.get("last_seen")),
        firmware_version=str(firmware) if firmware is not None else None,
        model=model if isinstance(model, str) and model else None,
        raw=_frozen(record),
    )


def normalize_client(record: Mapping[str, Any]) -> NormalizedDevice:
    """Clients come from the active-station list, so they are online by default."""

    return normalize_device(record, default_kind="client", assume_online=True)


def is_gateway(device: NormalizedDevice) -> bool:
    kind = device.kind.lower()
    return any(kind.startswith(prefix) for prefix in GATEWAY_KINDS)


def temperature_from_devices(devices: Iterable[NormalizedDevice]) -> Optional[float]:
    """Read the gateway temperature from its device record."""

    for device in devices:
        if not is_gateway(device):
            continue
        temperatures = device.raw.get("temperatures")
        if isinstance(temperatures, list):
            for entry in temperatures:
                if isinstance(entry, Mapping):
                    value = coerce_float(entry.get("value"))
                    if value is not None:
                        return value
        value = coerce_float(device.raw.get("general_temperature"))
        if value is not None:
            return value
    return None


# --------------------------------------------------------------------------
# Wireless networks
# --------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WirelessNetwork:
    ssid: str
    band: str = "WiFi"
    enabled: bool = True
    security: Optional[str] = None


def _declared_disabled(value: Any) -> bool:
    if value is False:
        return True
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0


def band_from_channel(channel: Any) -> Optional[str]:
    number = coerce_int(channel)
    if number is None:
        return None
    if 1 <= number <= 14:
        return "2.4G"
    if 36 <= number <= 165:
        return "5G"
    if 166 <= number <= 233:
        return "6G"
    return None


def band_from_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = value.strip().lower()
    if text in {"ng", "2g", "2.4g", "2.4", "2.4ghz"} or text.startswith("2.4"):
        return "2.4G"
    if text in {"na", "5g", "5", "5ghz"}:
        return "5G"
    if text in {"6e", "6g", "6", "6ghz"}:
        return "6G"
    return None


def _ssid(record: Mapping[str, Any], config: Mapping[str, Any]) -> Optional[str]:
    value = first_present(record, SSID_KEYS)
    if isinstance(value, str):
        return value
    value = first_present(config, ("ssid",))
    if isinstance(value, str):
        return value
    value = record.get("id")
    # Access point records expose the BSSID as ``id``.
    if isinstance(value, str) and value.strip() and not looks_like_mac(value):
        return value.strip()
    return None


def normalize_wlan(record: Mapping[str, Any]) -> Optional[WirelessNetwork]:
    """Return the network, or None when it is disabled or has no SSID."""

    config = _nested(record, "config")
    if _declared_disabled(record.get("enabled")) or _declared_disabled(config.get("enabled")):
        return None
    ssid = _ssid(record, config)
    if ssid is None:
        return None

    band = band_from_channel(first_present(record, ("channel",)) or config.get("channel"))
    if band is None:
        for key in BAND_TEXT_KEYS:
            band = band_from_text(record.get(key)) or band_from_text(config.get(key))
            if band:
                break
    security = first_present(record, ("security",)) or config.get("security")
    return WirelessNetwork(
        ssid=ssid,
        band=band or "WiFi",
        enabled=True,
        security=security if isinstance(security, str) else None,
    )


def normalize_wlans(records: Iterable[Mapping[str, Any]]) -> tuple[WirelessNetwork, ...]:
    seen: dict[tuple[str, str], WirelessNetwork] = {}
    for record in records:
        network = normalize_wlan(record)
        if network is not None:
            seen.setdefault((network.ssid, network.band), network)
    return tuple(seen.values())


# --------------------------------------------------------------------------
# DHCP and port forwarding
# --------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DhcpNetwork:
    name: str
    enabled: bool
    range_start: Optional[str] = None
    range_stop: Optional[str] = None
    subnet: Optional[str] = None


@dataclass(frozen=True, slots=True)
class StaticLease:
    """A client pinned to a fixed IP address."""

    mac: Optional[str]
    ip: str
    name: str
    network_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PortForwardRule:
    name: str
    enabled: bool
    protocol: str
    source: str
    external_port: Optional[str]
    internal_ip: Optional[str]
    internal_port: Optional[str]


def normalize_dhcp_network(record: Mapping[str, Any]) -> Optional[DhcpNetwork]:
    """Return the LAN's DHCP settings; WAN and VPN networks carry none."""

    purpose = str(record.get("purpose") or "").lower()
    if purpose and purpose not in {"corporate", "guest"}:
        return None
    name = first_present(record, ("name",))
    return DhcpNetwork(
        name=name if isinstance(name, str) else "",
        enabled=record.get("dhcpd_enabled") is True,
        range_start=first_present(record, ("dhcpd_start",)),
        range_stop=first_present(record, ("dhcpd_stop",)),
        subnet=first_present(record, ("ip_subnet",)),
    )


def normalize_static_lease(record: Mapping[str, Any]) -> Optional[StaticLease]:
    if record.get("use_fixedip") is not True:
        return None
    ip = first_present(record, ("fixed_ip",))
    if not isinstance(ip, str):
        return None
    return StaticLease(
        mac=extract_mac(record),
        ip=ip,
        name=extract_name(record),
        network_id=first_present(record, ("network_id",)),
    )


def _port(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def normalize_port_forward(record: Mapping[str, Any]) -> PortForwardRule:
    name = first_present(record, ("name",))
    return PortForwardRule(
        name=name if isinstance(name, str) else "",
        enabled=record.get("enabled") is not False,
        protocol=str(first_present(record, ("proto",)) or "tcp_udp"),
        source=str(first_present(record, ("src",)) or "any"),
        external_port=_port(record.get("dst_port")),
        internal_ip=first_present(record, ("fwd",)),
        internal_port=_port(record.get("fwd_port")),
    )


@dataclass(frozen=True, slots=True)
class DhcpSummary:
    networks: tuple[DhcpNetwork, ...] = ()
    static_leases: tuple[StaticLease, ...] = ()

    @property
    def enabled(self) -> bool:
        return any(network.enabled for network in self.networks)


@dataclass(frozen=True, slots=True)
class PortForwardingSummary:
    rules: tuple[PortForwardRule, ...] = ()

    @property
    def total_count(self) -> int:
        return len(self.rules)

    @property
    def enabled_count(self) -> int:
        return sum(1 for rule in self.rules if rule.enabled)


# --------------------------------------------------------------------------
# Network statistics and system information
# --------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NetworkStats:
    """WAN byte and packet counters."""

    download: int = 0
    upload: int = 0
    rx_packets: int = 0
    tx_packets: int = 0

    @property
    def empty(self) -> bool:
        return not (self.download or self.upload)


def _counter(record: Mapping[str, Any], keys: Iterable[str]) -> int:
    for key in keys:
        value = coerce_int(record.get(key))
        if value:
            return value
    return 0


def stats_from_wan(wan: Mapping[str, Any]) -> NetworkStats:
    return NetworkStats(
        download=_counter(wan, ("rx_bytes", "bytes_r")),
        upload=_counter(wan, ("tx_bytes", "bytes_t")),
        rx_packets=_counter(wan, ("rx_packets", "packets_r")),
        tx_packets=_counter(wan, ("tx_packets", "packets_t")),
    )


def stats_from_dashboard(payload: Any) -> Optional[NetworkStats]:
    dashboard = first_record(payload)
    wan = _nested(dashboard, "wan") or _nested(dashboard, "wan_stats")
    stats = stats_from_wan(wan)
    return None if stats.empty else stats


def stats_from_health(payload: Any) -> Optional[NetworkStats]:
    for subsystem in extract_records(payload):
        if subsystem.get("subsystem") != "wan":
            continue
        stats = NetworkStats(
            download=_counter(subsystem, ("rx_bytes", "rx_bytes-r")),
            upload=_counter(subsystem, ("tx_bytes", "tx_bytes-r")),
        )
        return None if stats.empty else stats
    return None


@dataclass(frozen=True, slots=True)
class SystemInfo:
    name: Optional[str] = None
    hostname: Optional[str] = None
    version: Optional[str] = None
    previous_version: Optional[str] = None
    update_available: bool = False
    update_downloaded: bool = False
    unsupported_device_count: int = 0
    uptime: Optional[int] = None
    temperature: Optional[float] = None
    memory: Optional[Mapping[str, Any]] = None
    cpu: Optional[Mapping[str, Any]] = None
    host_count: Optional[int] = None
    raw: Mapping[str, Any] = field(default_factory=lambda: _EMPTY, compare=False, repr=False)


def _optional_mapping(value: Any) -> Optional[Mapping[str, Any]]:
    return _frozen(value) if isinstance(value, Mapping) else None


def normalize_system_info(record: Mapping[str, Any]) -> SystemInfo:
    temperature = None
    for key in ("temperature", "general_temperature", "cpu_temperature"):
        temperature = coerce_float(record.get(key))
        if temperature is not None:
            break
    return SystemInfo(
        name=first_present(record, ("name",)),
        hostname=first_present(record, ("hostname",)),
        version=first_present(record, ("version",)),
        previous_version=first_present(record, ("previous_version",)),
        update_available=record.get("update_available") is True,
        update_downloaded=record.get("update_downloaded") is True,
        unsupported_device_count=coerce_int(record.get("unsupported_device_count")) or 0,
        uptime=coerce_int(record.get("uptime")),
        temperature=temperature,
        memory=_optional_mapping(record.get("mem")),
        cpu=_optional_mapping(record.get("cpu")),
        raw=_frozen(record),
    )


def normalize_cloud_hosts(hosts: list[dict[str, Any]]) -> SystemInfo:
    """Summarize the Site Manager host list."""

    primary = hosts[0] if hosts else {}
    reported = _nested(primary, "reportedState")
    return SystemInfo(
        name=first_present(reported, ("name",)),
        hostname=first_present(reported, ("hostname",)),
        version=first_present(reported, ("version",)),
        host_count=len(hosts),
        raw=_frozen(primary),
    )


# --------------------------------------------------------------------------
# Aggregate result
# --------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SiteSummary:
    """Device counts for the configured site."""

    id: str
    name: str
    hostname: Optional[str] = None
    device_count: int = 0
    access_point_count: int = 0
    switch_count: int = 0
    client_count: int = 0


def is_access_point(device: NormalizedDevice) -> bool:
    kind = device.kind.lower()
    if kind == "client":
        return False
    model = (device.model or "").lower()
    return "uap" in kind or kind in ("ap", "accesspoint") or "uap" in model


def summarize_site(
    site_id: str,
    name: Optional[str],
    hostname: Optional[str],
    devices: Iterable[NormalizedDevice],
    clients: Iterable[NormalizedDevice],
) -> SiteSummary:
    devices = tuple(devices)
    client_count = len(tuple(clients))
    return SiteSummary(
        id=site_id,
        name=name or site_id,
        hostname=hostname,
        device_count=len(devices) + client_count,
        access_point_count=sum(1 for device in devices if is_access_point(device)),
        switch_count=sum(1 for device in devices if device.kind.lower().startswith("usw")),
        client_count=client_count,
    )


@dataclass(frozen=True, slots=True)
class SystemSnapshot:
    temperature: Optional[float] = None
    uptime: Optional[int] = None
    firmware: Optional[str] = None
    name: Optional[str] = None
    hostname: Optional[str] = None
    previous_version: Optional[str] = None
    update_available: bool = False
    update_downloaded: bool = False
    unsupported_device_count: int = 0
    memory: Optional[Mapping[str, Any]] = None
    cpu: Optional[Mapping[str, Any]] = None
    api_mode: str = "local"
    dhcp: Optional[DhcpSummary] = None
    port_forwarding: Optional[PortForwardingSummary] = None
    wifi_networks: tuple[WirelessNetwork, ...] = ()


@dataclass(frozen=True, slots=True)
class AggregateResult:
    """Best-effort snapshot assembled from one batch of fetches."""

    devices: tuple[NormalizedDevice, ...] = ()
    network: NetworkStats = field(default_factory=NetworkStats)
    system: SystemSnapshot = field(default_factory=SystemSnapshot)
    sites: tuple[SiteSummary, ...] = ()
    failed: tuple[str, ...] = ()
    session_valid: bool = True


__all__ = [
    "AggregateResult",
    "DhcpNetwork",
    "DhcpSummary",
    "NetworkStats",
    "NormalizedDevice",
    "PortForwardRule",
    "PortForwardingSummary",
    "SiteSummary",
    "StaticLease",
    "SystemInfo",
    "SystemSnapshot",
    "WirelessNetwork",
    "extract_identity",
    "extract_mac",
    "extract_name",
    "extract_records",
    "first_record",
    "is_access_point",
    "is_online",
    "normalize_client",
    "normalize_device",
    "normalize_dhcp_network",
    "normalize_port_forward",
    "normalize_static_lease",
    "normalize_system_info",
    "normalize_wlan",
    "normalize_wlans",
    "stats_from_dashboard",
    "stats_from_health",
    "stats_from_wan",
    "summarize_site",
    "temperature_from_devices",
]
