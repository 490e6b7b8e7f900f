"""
Customer message templates and deduplicated logging.

Each send carries a dedupe key naming the event it represents; logging the same
event twice is a no-op because the message log rejects the duplicate key.
"""

from datetime import date, datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo

from models.message import MessageLogCreate, MessageLogEntry, MessageTemplate, MessageType
from utils.datetime_utils import format_local_datetime


def get_deposit_needed_message(pay_url: str) -> MessageTemplate:
    return MessageTemplate(
        type=MessageType.DEPOSIT_NEEDED,
        subject="Deposit required to activate booking",
        body=(
            "You are near the front of the queue. A deposit is required to hold "
            "your place and activate managed booking.\n"
            f"Pay link: {pay_url}\n"
            "Once paid, we will attempt to book the earliest available appointment "
            "that matches your preferences."
        ),
    )


def get_deposit_received_message() -> MessageTemplate:
    return MessageTemplate(
        type=MessageType.DEPOSIT_RECEIVED,
        subject="Deposit received",
        body=(
            "Thanks, your deposit was received and managed booking is now active.\n"
            "We will book the earliest opening that matches your preferences."
        ),
    )


def get_booked_message(
    location_name: str, slot_datetime_utc: datetime, zone: ZoneInfo, zone_label: str
) -> MessageTemplate:
    formatted = format_local_datetime(slot_datetime_utc, zone, zone_label)
    return MessageTemplate(
        type=MessageType.BOOKED,
        subject="Appointment booked",
        body=(
            f"Your appointment is booked at {location_name}.\n"
            f"Date and time: {formatted}\n"
            "Next steps: Bring required documents and arrive early."
        ),
    )


def get_opportunity_passed_message() -> MessageTemplate:
    return MessageTemplate(
        type=MessageType.OPPORTUNITY_PASSED,
        subject="Appointment opening missed",
        body=(
            "An opening appeared outside your selected availability, so we did not "
            "book it.\n"
            "Consider widening your availability to improve your chances.\n"
            "We will never book outside your approved preferences."
        ),
    )


# ========== Dedupe Keys ==========


def deposit_needed_key(queue_entry_id: str) -> str:
    return f"deposit_needed:{queue_entry_id}"


def deposit_received_key(queue_entry_id: str) -> str:
    return f"deposit_received:{queue_entry_id}"


def booked_key(customer_id: str, slot_date: Union[str, date], slot_time: str) -> str:
    date_part = slot_date.isoformat() if isinstance(slot_date, date) else slot_date
    return f"booked:{customer_id}:{date_part}:{slot_time}"


def opportunity_passed_key(customer_id: str, local_date: str) -> str:
    return f"opportunity_passed:{customer_id}:{local_date}"


async def log_message_with_dedupe(
    db, customer_id: str, template: MessageTemplate, dedupe_key: str
) -> Optional[MessageLogEntry]:
    """
    Record a message for delivery.

    Returns:
        The stored entry, or None if this event was already logged
    """
    return await db.insert_message_with_dedupe(
        MessageLogCreate(
            customer_id=customer_id,
            message_type=template.type,
            dedupe_key=dedupe_key,
            meta_json={"template": template.model_dump(mode="json")},
        )
    )
