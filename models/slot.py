"""Externally discovered slot openings (read-only to the dispatcher)."""

from datetime import date, datetime

from pydantic import BaseModel, Field


class SlotState(BaseModel):
    """A (location, date, time) opening as reported by the slot feed."""

    location_id: str
    slot_date: date
    slot_time: str = Field(..., description="Local time of day, HH:MM:SS")
    first_seen: datetime
    last_seen: datetime

    class Config:
        json_schema_extra = {
            "example": {
                "location_id": "uuid-here",
                "slot_date": "2026-01-13",
                "slot_time": "08:30:00",
                "first_seen": "2026-01-06T18:00:05Z",
                "last_seen": "2026-01-06T18:01:05Z",
            }
        }
