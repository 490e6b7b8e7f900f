"""
Queue ranking and the deposit gate.

Rank is an entry's 1-based position among ranked statuses ordered by
``created_at``; it is recomputed every cycle and never stored. Ties keep the
order the entries were fetched in.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List

from models.dispatch import DispatchConfig
from models.queue_entry import RANKED_STATUSES, QueueEntry
from waitlist.transitions import EXPIRE_DEPOSIT, REQUIRE_DEPOSIT, QueueTransition


@dataclass(frozen=True)
class RankedEntry:
    rank: int
    entry: QueueEntry


@dataclass(frozen=True)
class PlannedTransition:
    """A transition the gate wants to apply, with any extra columns."""

    ranked: RankedEntry
    transition: QueueTransition
    extra: Dict[str, Any] = field(default_factory=dict)


def rank_queue(entries: Iterable[QueueEntry]) -> List[RankedEntry]:
    """Rank entries with a ranked status by ascending ``created_at``."""
    waiting = [entry for entry in entries if entry.status in RANKED_STATUSES]
    waiting.sort(key=lambda entry: entry.created_at)
    return [RankedEntry(rank=i, entry=entry) for i, entry in enumerate(waiting, start=1)]


def in_deposit_band(rank: int, config: DispatchConfig) -> bool:
    return rank <= config.deposit_rank_threshold


def in_opportunity_band(rank: int, config: DispatchConfig) -> bool:
    return rank <= config.opportunity_rank_threshold


def plan_deposit_gate(
    ranked: Iterable[RankedEntry], now: datetime, config: DispatchConfig
) -> List[PlannedTransition]:
    """
    Work out which deposit transitions this snapshot calls for.

    Top-ranked entries without a deposit are asked for one (expiring after the
    grace period); any entry whose deposit request has lapsed reverts to queued.
    Pure: running it again on the updated snapshot plans nothing new.
    """
    planned: List[PlannedTransition] = []
    expires_at = now + timedelta(minutes=config.deposit_grace_minutes)

    for item in ranked:
        if in_deposit_band(item.rank, config) and REQUIRE_DEPOSIT.guard(item.entry, now):
            planned.append(
                PlannedTransition(
                    ranked=item,
                    transition=REQUIRE_DEPOSIT,
                    extra={"deposit_expires_at": expires_at},
                )
            )
        elif EXPIRE_DEPOSIT.guard(item.entry, now):
            planned.append(PlannedTransition(ranked=item, transition=EXPIRE_DEPOSIT))

    return planned
