"""Timezone helpers for reminder scheduling.

All instants handled here are aware UTC datetimes (naive values read back
from SQLite are taken to be UTC). Zone names are IANA identifiers; anything
that does not resolve falls back to UTC.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import tz as dateutil_tz

UTC_ZONE = "UTC"


def safe_timezone(raw: Optional[str]) -> str:
    """Return raw if it names a loadable IANA zone, else "UTC"."""
    if not raw or not isinstance(raw, str):
        return UTC_ZONE
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return UTC_ZONE
    return raw


def _zone(name: Optional[str]) -> ZoneInfo:
    return ZoneInfo(safe_timezone(name))


def to_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def to_local(instant: datetime, zone: Optional[str]) -> datetime:
    return to_utc(instant).astimezone(_zone(zone))


def local_date(instant: datetime, zone: Optional[str]) -> str:
    """Calendar date of instant in zone, as YYYY-MM-DD."""
    return to_local(instant, zone).strftime("%Y-%m-%d")


def local_hour(instant: datetime, zone: Optional[str]) -> int:
    return to_local(instant, zone).hour


def day_boundary(date_string: str, zone: Optional[str]) -> tuple[datetime, datetime]:
    """UTC (start, end) of the local calendar day date_string in zone.

    start is local midnight converted with the offset in force on that date.
    Where midnight itself is skipped by a DST jump, the first existing local
    instant is used. end is start + 24h - 1ms regardless of the day's length.
    """
    day = date.fromisoformat(date_string)
    local_midnight = datetime(day.year, day.month, day.day, tzinfo=_zone(zone))
    if not dateutil_tz.datetime_exists(local_midnight):
        local_midnight = dateutil_tz.resolve_imaginary(local_midnight)
    start = local_midnight.astimezone(timezone.utc)
    end = start + timedelta(hours=24) - timedelta(milliseconds=1)
    return start, end
