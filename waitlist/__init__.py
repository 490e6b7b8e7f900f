"""Queue ranking, deposit gate and queue entry transitions."""

from .ranking import (
    PlannedTransition,
    RankedEntry,
    in_deposit_band,
    in_opportunity_band,
    plan_deposit_gate,
    rank_queue,
)
from .transitions import (
    CONFIRM_DEPOSIT,
    EXPIRE_DEPOSIT,
    MARK_BOOKED,
    QUEUE_TRANSITIONS,
    REQUIRE_DEPOSIT,
    QueueTransition,
)

__all__ = [
    "PlannedTransition",
    "RankedEntry",
    "in_deposit_band",
    "in_opportunity_band",
    "plan_deposit_gate",
    "rank_queue",
    "CONFIRM_DEPOSIT",
    "EXPIRE_DEPOSIT",
    "MARK_BOOKED",
    "QUEUE_TRANSITIONS",
    "REQUIRE_DEPOSIT",
    "QueueTransition",
]
