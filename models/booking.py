"""Booking attempt models: audit rows for every attempted booking."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class BookingAttemptResult(str, Enum):
    """Outcome of a booking attempt."""

    SUCCESS = "success"
    FAIL = "fail"
    SKIPPED = "skipped"


class BookSlotResult(BaseModel):
    """What the upstream booking call reported."""

    success: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class BookingAttemptCreate(BaseModel):
    """Booking attempt insert payload (append-only)."""

    customer_id: str
    location_id: str
    slot_date: date
    slot_time: str
    slot_datetime_utc: datetime
    result: BookingAttemptResult
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    dispatcher_run_id: str


class BookingAttempt(BookingAttemptCreate):
    """Stored booking attempt."""

    id: Optional[str] = None
    attempt_at: Optional[datetime] = Field(
        default=None, description="Set by the database on insert"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "customer_id": "uuid-here",
                "location_id": "uuid-here",
                "slot_date": "2026-01-13",
                "slot_time": "08:30:00",
                "slot_datetime_utc": "2026-01-13T18:30:00Z",
                "result": "fail",
                "error_code": "NOT_IMPLEMENTED",
                "dispatcher_run_id": "uuid-here",
            }
        }
