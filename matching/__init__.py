"""Pure slot identity and target-window matching (no I/O)."""

from .slot_keys import build_slot_datetime_utc, build_slot_key, normalize_time
from .target_window import matches_target_window, parse_time_to_seconds

__all__ = [
    "build_slot_datetime_utc",
    "build_slot_key",
    "normalize_time",
    "matches_target_window",
    "parse_time_to_seconds",
]
