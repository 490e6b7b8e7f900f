"""
Queue entry state machine.

Every change to a queue entry's (status, deposit_status) pair goes through one of
the transitions below. Each transition carries its own guard, evaluated both in
memory against a snapshot and, by the store adapter, as the WHERE clause of a
conditional update, so a writer that lost a race simply updates zero rows.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional

from models.queue_entry import DepositStatus, QueueEntry, QueueEntryStatus
from utils.datetime_utils import to_iso_string


@dataclass(frozen=True)
class QueueTransition:
    """(status, deposit_status) -> (next_status, next_deposit_status) with a guard."""

    name: str
    to_status: QueueEntryStatus
    to_deposit_status: DepositStatus
    from_deposit_status: Optional[DepositStatus] = None
    from_statuses: Optional[FrozenSet[QueueEntryStatus]] = None
    excluded_status: Optional[QueueEntryStatus] = None
    requires_expired_deposit: bool = False
    stamp_field: Optional[str] = None

    def guard(self, entry: QueueEntry, now: datetime) -> bool:
        """Whether the transition may fire for this snapshot of the entry."""
        if (
            self.from_deposit_status is not None
            and entry.deposit_status != self.from_deposit_status
        ):
            return False
        if self.from_statuses is not None and entry.status not in self.from_statuses:
            return False
        if self.excluded_status is not None and entry.status == self.excluded_status:
            return False
        if self.requires_expired_deposit and not (
            entry.deposit_expires_at is not None and entry.deposit_expires_at < now
        ):
            return False
        return True

    def changes(self, now: datetime, **extra: Any) -> Dict[str, Any]:
        """Column values to write (datetimes as ISO strings)."""
        data: Dict[str, Any] = {
            "status": self.to_status.value,
            "deposit_status": self.to_deposit_status.value,
        }
        if self.stamp_field:
            data[self.stamp_field] = to_iso_string(now)
        for field, value in extra.items():
            data[field] = to_iso_string(value) if isinstance(value, datetime) else value
        return data

    def apply(self, entry: QueueEntry, now: datetime, **extra: Any) -> QueueEntry:
        """Return the entry as it looks after the transition."""
        update: Dict[str, Any] = {
            "status": self.to_status,
            "deposit_status": self.to_deposit_status,
            **extra,
        }
        if self.stamp_field:
            update[self.stamp_field] = now
        return entry.model_copy(update=update)


REQUIRE_DEPOSIT = QueueTransition(
    name="require_deposit",
    from_deposit_status=DepositStatus.NONE,
    excluded_status=QueueEntryStatus.BOOKED,
    to_status=QueueEntryStatus.DEPOSIT_REQUIRED,
    to_deposit_status=DepositStatus.REQUIRED,
    stamp_field="deposit_required_at",
)

EXPIRE_DEPOSIT = QueueTransition(
    name="expire_deposit",
    from_deposit_status=DepositStatus.REQUIRED,
    excluded_status=QueueEntryStatus.BOOKED,
    requires_expired_deposit=True,
    to_status=QueueEntryStatus.QUEUED,
    to_deposit_status=DepositStatus.EXPIRED,
)

CONFIRM_DEPOSIT = QueueTransition(
    name="confirm_deposit",
    from_deposit_status=DepositStatus.REQUIRED,
    from_statuses=frozenset({QueueEntryStatus.DEPOSIT_REQUIRED}),
    to_status=QueueEntryStatus.ACTIVE,
    to_deposit_status=DepositStatus.PAID,
    stamp_field="deposit_paid_at",
)

MARK_BOOKED = QueueTransition(
    name="mark_booked",
    from_deposit_status=DepositStatus.PAID,
    from_statuses=frozenset({QueueEntryStatus.ACTIVE}),
    to_status=QueueEntryStatus.BOOKED,
    to_deposit_status=DepositStatus.PAID,
    stamp_field="booked_at",
)

QUEUE_TRANSITIONS: Dict[str, QueueTransition] = {
    t.name: t for t in (REQUIRE_DEPOSIT, EXPIRE_DEPOSIT, CONFIRM_DEPOSIT, MARK_BOOKED)
}
