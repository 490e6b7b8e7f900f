"""Dispatcher bookkeeping: watermark, lock rows, run config and run summary."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.exceptions import ConfigurationError


class QueueWatermark(BaseModel):
    """High-water mark of processed slot-open events for one stream."""

    key: str
    last_processed_at: datetime


class BookingLock(BaseModel):
    """Short-lived exclusive lock on one slot identity."""

    lock_key: str
    locked_until: datetime
    owner_run_id: Optional[str] = None


class DispatchConfig(BaseModel):
    """
    Tunables for one dispatch run, captured once and passed explicitly.

    ``opportunity_rank_threshold`` must exceed ``deposit_rank_threshold``.
    """

    model_config = ConfigDict(frozen=True)

    lookback_minutes: int = Field(default=3, ge=0)
    deposit_rank_threshold: int = Field(default=10, ge=0)
    opportunity_rank_threshold: int = Field(default=20, ge=0)
    deposit_grace_minutes: int = Field(default=120, ge=0)
    lock_ttl_seconds: int = Field(default=120, gt=0)
    watermark_key: str = "slot_opened"
    watermark_fallback_minutes: int = Field(default=10, ge=0)
    slot_timezone: str = "Pacific/Honolulu"
    display_timezone: str = "Pacific/Honolulu"
    display_timezone_label: str = "HST"
    deposit_pay_url: str = "https://example.com/pay"

    def __init__(self, **data):
        super().__init__(**data)
        if self.opportunity_rank_threshold <= self.deposit_rank_threshold:
            raise ConfigurationError(
                "opportunity_rank_threshold must be greater than "
                "deposit_rank_threshold"
            )

    @classmethod
    def from_settings(cls, settings) -> "DispatchConfig":
        return cls(
            lookback_minutes=settings.dispatch_lookback_minutes,
            deposit_rank_threshold=settings.deposit_rank_threshold,
            opportunity_rank_threshold=settings.opportunity_rank_threshold,
            deposit_grace_minutes=settings.deposit_grace_minutes,
            lock_ttl_seconds=settings.lock_ttl_seconds,
            watermark_key=settings.watermark_key,
            watermark_fallback_minutes=settings.watermark_fallback_minutes,
            slot_timezone=settings.slot_timezone,
            display_timezone=settings.display_timezone,
            display_timezone_label=settings.display_timezone_label,
            deposit_pay_url=settings.deposit_pay_url,
        )


class DispatchSummary(BaseModel):
    """Per-cycle structured summary, logged for metrics ingestion."""

    dispatcher_run_id: str
    old_watermark: datetime
    new_watermark: datetime
    opened_slots_count: int = 0
    slots_locked_count: int = 0
    deposit_required_set_count: int = 0
    deposit_expired_count: int = 0
    booking_attempt_count: int = 0
    booking_success_count: int = 0
    booked_message_count: int = 0
    opportunity_passed_sent_count: int = 0

    @property
    def notifications_sent(self) -> int:
        return (
            self.deposit_required_set_count
            + self.booked_message_count
            + self.opportunity_passed_sent_count
        )
