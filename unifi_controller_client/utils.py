"""Utility helpers for the UniFi controller client."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import urlsplit

from .const import CLOUD_HOST_PATTERN

# Six colon- or dash-separated octets, nothing else.
MAC_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}$")
# Also accepts bare 12-digit hex, used to reject BSSIDs posing as SSIDs.
MAC_LIKE_PATTERN = re.compile(r"^[0-9A-Fa-f]{2}[:-]?([0-9A-Fa-f]{2}[:-]?){4}[0-9A-Fa-f]{2}$")


def is_mac(value: Any) -> bool:
    """Return True when ``value`` is a strictly formatted MAC address."""

    return isinstance(value, str) and bool(MAC_PATTERN.match(value.strip()))


def looks_like_mac(value: Any) -> bool:
    """Return True for MAC-shaped text, separators optional."""

    return isinstance(value, str) and bool(MAC_LIKE_PATTERN.match(value.strip()))


def normalize_base_url(url: Any) -> Optional[str]:
    """Return ``url`` with a scheme and without trailing slashes."""

    if not isinstance(url, str):
        return None
    text = url.strip()
    if not text:
        return None
    if "//" not in text:
        # urlsplit requires a scheme to treat the value as a netloc.
        text = f"https://{text}"
    parsed = urlsplit(text)
    if not parsed.hostname:
        return None
    return text.rstrip("/")


def is_cloud_url(url: Any) -> bool:
    """Return True when ``url`` points at the vendor-hosted cloud API."""

    normalized = normalize_base_url(url)
    if normalized is None:
        return False
    hostname = urlsplit(normalized).hostname or ""
    return bool(CLOUD_HOST_PATTERN.match(hostname))


def endpoint_label(url: str) -> str:
    """Return a sanitized ``host/path`` label for logging."""

    parts = urlsplit(url)
    path = parts.path or "/"
    host = parts.hostname or parts.netloc
    if host:
        return f"{host}{path}"
    return path


def shorten(text: Optional[str], limit: int = 1024) -> Optional[str]:
    if text is None:
        return None
    cleaned = text.strip()
    if len(cleaned) <= limit:
        return cleaned
    return f"{cleaned[:limit]}…"


def parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header given in seconds or as an HTTP date."""

    if value is None:
        return None
    try:
        retry_after = float(value)
    except (TypeError, ValueError):
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if parsed is None:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        now = datetime.now(timezone.utc)
        delay = (parsed - now).total_seconds()
        if delay <= 0:
            return 0.0
        return delay
    return max(0.0, retry_after)


def first_present(record: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Return the first value among ``keys`` that is neither None nor blank."""

    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        return value
    return None


def coerce_int(value: Any) -> Optional[int]:
    """Safely convert value to integer."""
    if isinstance(value, bool):
        return None
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def coerce_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Convert epoch seconds/milliseconds or ISO-8601 text to an aware datetime."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        if number <= 0:
            return None
        if number > 1e11:
            number /= 1000.0
        return datetime.fromtimestamp(number, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            number = coerce_float(text)
            return parse_timestamp(number) if number is not None else None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


__all__ = [
    "MAC_LIKE_PATTERN",
    "MAC_PATTERN",
    "coerce_float",
    "coerce_int",
    "endpoint_label",
    "first_present",
    "is_cloud_url",
    "is_mac",
    "looks_like_mac",
    "normalize_base_url",
    "parse_retry_after",
    "parse_timestamp",
    "shorten",
]
