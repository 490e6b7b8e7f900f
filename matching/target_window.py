"""
Target-window matcher.

Decides whether an opened slot falls inside the window a customer selected:
weekends never match, then the date horizon, the weekday rule and finally the
time blocks are checked in that order, stopping at the first failure. Every
bound is inclusive. Incomplete or malformed inputs mean "no match", never an
exception.
"""

import re
from datetime import datetime
from typing import Iterable, Optional

from models.preset import (
    DateHorizonPreset,
    TimeBlockPreset,
    WeekdayMode,
    WeekdayRulePreset,
)
from models.selection import UserTargetWindowSelection
from utils.constants import (
    BUSINESS_WEEKDAYS,
    SECONDS_PER_HOUR,
    SECONDS_PER_MINUTE,
    WEEKEND_WEEKDAYS,
)
from utils.datetime_utils import get_zone, to_local, utc_now

_TIME_OF_DAY = re.compile(r"^\s*(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?\s*$")


def parse_time_to_seconds(value: Optional[str]) -> Optional[int]:
    """
    Parse ``HH:MM`` or ``HH:MM:SS`` into seconds since midnight.

    Returns None for anything malformed or out of range.
    """
    if not value or not isinstance(value, str):
        return None

    match = _TIME_OF_DAY.match(value)
    if not match:
        return None

    hours = int(match.group(1))
    minutes = int(match.group(2))
    seconds = int(match.group(3) or 0)

    if not (0 <= hours <= 23 and 0 <= minutes <= 59 and 0 <= seconds <= 59):
        return None

    return hours * SECONDS_PER_HOUR + minutes * SECONDS_PER_MINUTE + seconds


def matches_target_window(
    slot_datetime_utc: datetime,
    selection: UserTargetWindowSelection,
    date_horizon_preset: Optional[DateHorizonPreset],
    time_block_presets: Iterable[TimeBlockPreset],
    weekday_rule_preset: Optional[WeekdayRulePreset],
    timezone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Return True if the slot satisfies the customer's target window.

    Args:
        slot_datetime_utc: Slot start instant
        selection: Customer's selection (custom weekdays, fallback timezone)
        date_horizon_preset: Resolved date horizon preset
        time_block_presets: Resolved time block presets (any may match)
        weekday_rule_preset: Resolved weekday rule preset
        timezone: IANA zone for local comparisons, defaults to the selection's
        now: Reference instant for "today", defaults to the system clock
    """
    zone = get_zone(timezone or selection.timezone)
    if zone is None:
        return False

    slot_local = to_local(slot_datetime_utc, zone)
    weekday = slot_local.isoweekday()

    if weekday in WEEKEND_WEEKDAYS:
        return False

    # Date horizon, compared by local calendar day
    if date_horizon_preset is None:
        return False
    days_ahead = date_horizon_preset.rules_json.days_ahead
    if isinstance(days_ahead, bool) or not isinstance(days_ahead, int):
        return False

    today = to_local(now or utc_now(), zone).date()
    days_out = (slot_local.date() - today).days
    if days_out < 0 or days_out > days_ahead:
        return False

    # Weekday rule
    if weekday_rule_preset is None:
        return False
    mode = weekday_rule_preset.mode
    if mode == WeekdayMode.ANY:
        if weekday not in BUSINESS_WEEKDAYS:
            return False
    elif mode == WeekdayMode.CUSTOM:
        if weekday not in selection.custom_weekdays:
            return False
    else:
        return False

    # Time blocks
    slot_seconds = (
        slot_local.hour * SECONDS_PER_HOUR
        + slot_local.minute * SECONDS_PER_MINUTE
        + slot_local.second
    )
    for preset in time_block_presets:
        start = parse_time_to_seconds(preset.rules_json.start)
        end = parse_time_to_seconds(preset.rules_json.end)
        if start is None or end is None:
            continue
        if start <= slot_seconds <= end:
            return True

    return False
