"""
Canonical slot identity.

A slot key is ``location|YYYY-MM-DD|HH:MM:SS``. It is the booking lock identity
and, together with the customer id, the material for booked-message dedupe keys,
so raw times that mean the same instant (``8:30``, ``08:30``, ``08:30:00``) must
produce the same key.
"""

import re
from datetime import date, datetime, time
from typing import Optional, Union
from zoneinfo import ZoneInfo

from utils.constants import DEFAULT_SLOT_TIME
from utils.datetime_utils import combine_local

_HHMMSS = re.compile(r"^\d{2}:\d{2}:\d{2}$")
_HHMM = re.compile(r"^\d{2}:\d{2}$")
_TIME_PARTS = re.compile(r"^(\d{1,2}):(\d{1,2}):(\d{1,2})$")


def normalize_time(value: Union[str, time, None]) -> str:
    """
    Normalize a time of day to ``HH:MM:SS``.

    Missing seconds default to ``:00``, an empty value to midnight, and
    fractional seconds are dropped.
    """
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if not value:
        return DEFAULT_SLOT_TIME

    value = value.strip().split(".", 1)[0]

    if _HHMMSS.match(value):
        return value
    if _HHMM.match(value):
        return f"{value}:00"

    parts = value.split(":")
    hours = (parts[0] if len(parts) > 0 and parts[0] else "00").zfill(2)
    minutes = (parts[1] if len(parts) > 1 and parts[1] else "00").zfill(2)
    seconds = (parts[2] if len(parts) > 2 and parts[2] else "00").zfill(2)
    return f"{hours}:{minutes}:{seconds}"


def build_slot_key(
    location_id: str, slot_date: Union[str, date], slot_time: Union[str, time, None]
) -> str:
    """Build the lock key for a (location, date, time) slot."""
    date_part = slot_date.isoformat() if isinstance(slot_date, date) else slot_date
    return f"{location_id}|{date_part}|{normalize_time(slot_time)}"


def build_slot_datetime_utc(
    slot_date: Union[str, date], slot_time: Union[str, time, None], zone: ZoneInfo
) -> Optional[datetime]:
    """
    Interpret a slot's civil date and time in ``zone`` and return the UTC instant.

    Returns None when the date or time cannot be parsed.
    """
    if isinstance(slot_date, str):
        try:
            slot_date = date.fromisoformat(slot_date)
        except ValueError:
            return None

    match = _TIME_PARTS.match(normalize_time(slot_time))
    if not match:
        return None

    hours, minutes, seconds = (int(part) for part in match.groups())
    try:
        civil_time = time(hours, minutes, seconds)
    except ValueError:
        return None

    return combine_local(slot_date, civil_time, zone)
