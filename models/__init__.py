"""Pydantic models for data validation and serialization."""

from .booking import (
    BookingAttempt,
    BookingAttemptCreate,
    BookingAttemptResult,
    BookSlotResult,
)
from .dispatch import BookingLock, DispatchConfig, DispatchSummary, QueueWatermark
from .message import MessageLogCreate, MessageLogEntry, MessageTemplate, MessageType
from .preset import (
    DateHorizonPreset,
    PresetCatalog,
    PresetType,
    ResolvedWindow,
    TargetWindowPreset,
    TimeBlockPreset,
    WeekdayMode,
    WeekdayRulePreset,
)
from .queue_entry import DepositStatus, QueueEntry, QueueEntryStatus, RANKED_STATUSES
from .selection import Location, UserLocationPreference, UserTargetWindowSelection
from .slot import SlotState

__all__ = [
    "BookingAttempt",
    "BookingAttemptCreate",
    "BookingAttemptResult",
    "BookSlotResult",
    "BookingLock",
    "DispatchConfig",
    "DispatchSummary",
    "QueueWatermark",
    "MessageLogCreate",
    "MessageLogEntry",
    "MessageTemplate",
    "MessageType",
    "DateHorizonPreset",
    "PresetCatalog",
    "PresetType",
    "ResolvedWindow",
    "TargetWindowPreset",
    "TimeBlockPreset",
    "WeekdayMode",
    "WeekdayRulePreset",
    "DepositStatus",
    "QueueEntry",
    "QueueEntryStatus",
    "RANKED_STATUSES",
    "Location",
    "UserLocationPreference",
    "UserTargetWindowSelection",
    "SlotState",
]
