"""Customer message models for the deduplicated message log."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class MessageType(str, Enum):
    """Kinds of customer messages."""

    DEPOSIT_NEEDED = "deposit_needed"
    DEPOSIT_RECEIVED = "deposit_received"
    BOOKED = "booked"
    OPPORTUNITY_PASSED = "opportunity_passed"
    STATUS = "status"


class MessageTemplate(BaseModel):
    """Rendered message content."""

    type: MessageType
    subject: Optional[str] = None
    body: str


class MessageLogCreate(BaseModel):
    """Message log insert payload; ``dedupe_key`` is unique in the store."""

    customer_id: str
    message_type: MessageType
    dedupe_key: str
    meta_json: Optional[Dict[str, Any]] = None


class MessageLogEntry(MessageLogCreate):
    """Stored message log row."""

    id: Optional[str] = None
    sent_at: Optional[datetime] = None
