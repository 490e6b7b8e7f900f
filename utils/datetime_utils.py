"""
Datetime utilities for consistent timezone handling across the application.
All datetime operations should use timezone-aware datetimes.
"""

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def to_iso_string(dt: datetime) -> str:
    """
    Convert datetime to ISO format string.
    Ensures timezone-aware datetimes are properly formatted.

    Args:
        dt: Datetime object (timezone-aware or naive)

    Returns:
        ISO format string
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.isoformat()


def get_zone(name: Optional[str]) -> Optional[ZoneInfo]:
    """Resolve an IANA zone name, returning None if it is empty or unknown."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def to_local(dt: datetime, zone: ZoneInfo) -> datetime:
    """Convert an aware (or UTC-naive) datetime into the given zone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(zone)


def local_date_key(dt: datetime, zone: ZoneInfo) -> str:
    """YYYY-MM-DD of the civil date of ``dt`` in ``zone``."""
    return to_local(dt, zone).date().isoformat()


def combine_local(slot_date: date, slot_time: time, zone: ZoneInfo) -> datetime:
    """Interpret a civil date/time in ``zone`` and return it in UTC."""
    return datetime.combine(slot_date, slot_time, tzinfo=zone).astimezone(timezone.utc)


def format_local_datetime(dt: datetime, zone: ZoneInfo, label: str) -> str:
    """
    Human-readable local date/time, e.g. ``Tue, Jan 13, 2026, 8:30 AM HST``.
    """
    local = to_local(dt, zone)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return (
        f"{local.strftime('%a, %b %d, %Y')}, "
        f"{hour}:{local.minute:02d} {meridiem} {label}"
    ).strip()
