"""Customer-owned matching inputs: target-window selection and locations."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class UserTargetWindowSelection(BaseModel):
    """One row per customer: chosen preset key per axis plus timezone."""

    customer_id: str
    timezone: str = Field(..., description="IANA timezone name")
    date_horizon_key: Optional[str] = None
    weekday_rule_key: Optional[str] = None
    custom_weekdays: List[int] = Field(
        default_factory=list, description="ISO weekday numbers, Monday=1"
    )
    time_block_keys: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "customer_id": "uuid-here",
                "timezone": "Pacific/Honolulu",
                "date_horizon_key": "next_7_days",
                "weekday_rule_key": "any_weekday",
                "custom_weekdays": [],
                "time_block_keys": ["early"],
            }
        }

    @field_validator("custom_weekdays", "time_block_keys", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or []


class UserLocationPreference(BaseModel):
    """A location the customer is willing to be booked at."""

    customer_id: str
    location_id: str
    created_at: Optional[datetime] = None


class Location(BaseModel):
    """Bookable location (display name only)."""

    id: str
    name: str
