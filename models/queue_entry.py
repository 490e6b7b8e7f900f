"""Queue entry models for customers waiting for a slot."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class QueueEntryStatus(str, Enum):
    """Queue entry lifecycle status."""

    QUEUED = "queued"
    DEPOSIT_REQUIRED = "deposit_required"
    ACTIVE = "active"
    BOOKED = "booked"
    PAUSED = "paused"
    EXPIRED = "expired"
    CANCELED = "canceled"


class DepositStatus(str, Enum):
    """Deposit lifecycle status."""

    NONE = "none"
    REQUIRED = "required"
    PAID = "paid"
    EXPIRED = "expired"
    REFUNDED = "refunded"


# Statuses that occupy a rank in the queue
RANKED_STATUSES = (
    QueueEntryStatus.QUEUED,
    QueueEntryStatus.DEPOSIT_REQUIRED,
    QueueEntryStatus.ACTIVE,
)


class QueueEntry(BaseModel):
    """Queue entry model."""

    id: str
    customer_id: str = Field(..., description="Customer ID (Supabase UUID)")
    created_at: datetime
    status: QueueEntryStatus = QueueEntryStatus.QUEUED
    deposit_status: DepositStatus = DepositStatus.NONE
    deposit_required_at: Optional[datetime] = None
    deposit_paid_at: Optional[datetime] = None
    deposit_expires_at: Optional[datetime] = None
    booked_at: Optional[datetime] = None
    booked_location_id: Optional[str] = None
    booked_slot_datetime: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "id": "uuid-here",
                "customer_id": "uuid-here",
                "created_at": "2026-01-05T18:00:00Z",
                "status": "active",
                "deposit_status": "paid",
            }
        }

    @property
    def is_dispatchable(self) -> bool:
        """Only active entries with a paid deposit may receive a slot."""
        return (
            self.status == QueueEntryStatus.ACTIVE
            and self.deposit_status == DepositStatus.PAID
        )

    @property
    def awaits_deposit(self) -> bool:
        return (
            self.status == QueueEntryStatus.DEPOSIT_REQUIRED
            and self.deposit_status == DepositStatus.REQUIRED
        )
