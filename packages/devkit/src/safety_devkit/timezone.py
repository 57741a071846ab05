from __future__ import annotations

from datetime import datetime, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@lru_cache(maxsize=16)
def resolve_zone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"unknown timezone: {name}") from exc


def local_now(zone_name: str) -> datetime:
    return datetime.now(resolve_zone(zone_name))


def to_local(value: datetime, zone_name: str) -> datetime:
    """Naive values are read as local wall time; aware ones are converted."""
    zone = resolve_zone(zone_name)
    if value.tzinfo is None:
        return value.replace(tzinfo=zone)
    return value.astimezone(zone)
