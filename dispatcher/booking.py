"""
Upstream booking call.

The reservation call against the scheduling site is not wired up yet; every
attempt reports NOT_IMPLEMENTED and the dispatcher records it as a failed
attempt.
"""

from datetime import datetime

from models.booking import BookSlotResult
from utils.constants import BOOKING_ERROR_NOT_IMPLEMENTED


async def book_slot(
    customer_id: str, location_id: str, slot_datetime_utc: datetime
) -> BookSlotResult:
    """
    Book ``slot_datetime_utc`` at ``location_id`` on behalf of ``customer_id``.

    Returns:
        BookSlotResult describing the outcome
    """
    return BookSlotResult(
        success=False,
        error_code=BOOKING_ERROR_NOT_IMPLEMENTED,
        error_message="Booking stub - not yet implemented",
    )
