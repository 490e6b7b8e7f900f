"""
Dispatch cycle: hand newly opened slots to the best-ranked matching customer.

One run:
 1. read the watermark (fallback: a few minutes ago)
 2. fetch slots first seen after it and still seen within the lookback
 3. rank the queue and run the deposit gate
 4. batch-load selections, location preferences and the preset catalog
 5. per slot: take the slot lock, scan the queue in rank order, book the first
    match (or release the lock when nobody matches)
 6. send the day's opportunity-passed notices
 7. advance the watermark to the newest first_seen processed
 8. log a structured summary

Safe to run concurrently with itself: slots are guarded by the booking lock,
queue updates are conditional, and notifications are deduplicated.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from config import settings
from db import get_db_client
from dispatcher.booking import book_slot
from dispatcher.templates import (
    booked_key,
    deposit_needed_key,
    get_booked_message,
    get_deposit_needed_message,
    get_opportunity_passed_message,
    log_message_with_dedupe,
    opportunity_passed_key,
)
from matching.slot_keys import build_slot_datetime_utc, build_slot_key, normalize_time
from matching.target_window import matches_target_window
from models.booking import BookingAttemptCreate, BookingAttemptResult, BookSlotResult
from models.dispatch import DispatchConfig, DispatchSummary
from models.preset import PresetCatalog
from models.selection import UserLocationPreference, UserTargetWindowSelection
from models.slot import SlotState
from utils.constants import BOOKING_ERROR_EXCEPTION, UNKNOWN_LOCATION_NAME
from utils.datetime_utils import get_zone, local_date_key, utc_now
from utils.exceptions import ConfigurationError
from utils.logging_config import log_event, setup_logging
from waitlist.ranking import RankedEntry, in_opportunity_band, plan_deposit_gate, rank_queue
from waitlist.transitions import MARK_BOOKED, REQUIRE_DEPOSIT

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="dispatcher.log", log_dir="logs"
)

BookSlotCallable = Callable[[str, str, datetime], Awaitable[BookSlotResult]]

# Most recent summary, exposed on the health endpoint
_last_summary: Optional[DispatchSummary] = None


def get_last_summary() -> Optional[DispatchSummary]:
    return _last_summary


@dataclass
class _CycleState:
    """Everything one run reads once and mutates as it goes."""

    run_id: str
    now: datetime
    config: DispatchConfig
    slot_zone: ZoneInfo
    display_zone: ZoneInfo
    summary: DispatchSummary
    ranked: List[RankedEntry] = field(default_factory=list)
    selections: Dict[str, UserTargetWindowSelection] = field(default_factory=dict)
    preferences: Dict[str, List[UserLocationPreference]] = field(default_factory=dict)
    catalog: PresetCatalog = field(default_factory=PresetCatalog)
    # (customer_id, local date) in first-seen order
    opportunity_candidates: Dict[Tuple[str, str], None] = field(default_factory=dict)
    location_names: Dict[str, str] = field(default_factory=dict)


async def run_dispatch_cycle(
    db=None,
    config: Optional[DispatchConfig] = None,
    book: Optional[BookSlotCallable] = None,
    now: Optional[datetime] = None,
    run_id: Optional[str] = None,
) -> DispatchSummary:
    """
    Run one dispatch cycle.

    Args:
        db: Store adapter (defaults to the shared Supabase client)
        config: Run tunables (defaults to values from settings)
        book: Upstream booking call (defaults to book_slot)
        now: Reference instant (defaults to the system clock)
        run_id: Dispatcher run id recorded on locks and attempts

    Returns:
        DispatchSummary for this run

    Raises:
        DatabaseError: If any store read or write fails; nothing is retried
            within the run
    """
    global _last_summary

    db = db or get_db_client()
    config = config or DispatchConfig.from_settings(settings)
    book = book or book_slot
    now = now or utc_now()
    run_id = run_id or str(uuid.uuid4())

    slot_zone = get_zone(config.slot_timezone)
    display_zone = get_zone(config.display_timezone)
    if slot_zone is None or display_zone is None:
        raise ConfigurationError(
            f"Unknown timezone in dispatch config: "
            f"{config.slot_timezone!r} / {config.display_timezone!r}"
        )

    stored_watermark = await db.fetch_watermark(config.watermark_key)
    old_watermark = (
        stored_watermark.last_processed_at
        if stored_watermark
        else now - timedelta(minutes=config.watermark_fallback_minutes)
    )

    opened_slots = await db.fetch_opened_slots_since(old_watermark, config.lookback_minutes)
    queue_entries = await db.fetch_ordered_queue_entries()

    state = _CycleState(
        run_id=run_id,
        now=now,
        config=config,
        slot_zone=slot_zone,
        display_zone=display_zone,
        summary=DispatchSummary(
            dispatcher_run_id=run_id,
            old_watermark=old_watermark,
            new_watermark=old_watermark,
            opened_slots_count=len(opened_slots),
        ),
        ranked=rank_queue(queue_entries),
    )

    await _run_deposit_gate(db, state)

    customer_ids = list(dict.fromkeys(item.entry.customer_id for item in state.ranked))
    state.selections = await db.fetch_selections_by_customer_ids(customer_ids)
    state.preferences = await db.fetch_location_preferences_by_customer_ids(customer_ids)
    state.catalog = await db.fetch_preset_catalog()

    for slot in opened_slots:
        await _dispatch_slot(db, state, slot, book)

    await _send_opportunity_notices(db, state)

    if opened_slots:
        new_watermark = max(slot.first_seen for slot in opened_slots)
        await db.update_watermark(config.watermark_key, new_watermark)
        state.summary.new_watermark = new_watermark

    log_event(logger, "queue_dispatch_summary", state.summary.model_dump(mode="json"))
    _last_summary = state.summary
    return state.summary


async def _run_deposit_gate(db, state: _CycleState) -> None:
    """Apply the deposit gate to the store and to the in-memory snapshot."""
    planned = plan_deposit_gate(state.ranked, state.now, state.config)
    if not planned:
        return

    by_entry_id = {item.entry.id: index for index, item in enumerate(state.ranked)}

    for plan in planned:
        entry = plan.ranked.entry
        applied = await db.apply_queue_transition(
            entry.id,
            plan.transition,
            plan.transition.changes(state.now, **plan.extra),
            state.now,
        )
        if not applied:
            logger.debug(f"{plan.transition.name} skipped for {entry.id}: entry changed")
            continue

        state.ranked[by_entry_id[entry.id]] = RankedEntry(
            rank=plan.ranked.rank,
            entry=plan.transition.apply(entry, state.now, **plan.extra),
        )

        if plan.transition is REQUIRE_DEPOSIT:
            logged = await log_message_with_dedupe(
                db,
                entry.customer_id,
                get_deposit_needed_message(state.config.deposit_pay_url),
                deposit_needed_key(entry.id),
            )
            if logged:
                state.summary.deposit_required_set_count += 1
        else:
            state.summary.deposit_expired_count += 1
            logger.info(f"Deposit expired for queue entry {entry.id} (rank {plan.ranked.rank})")


def _find_winner(
    state: _CycleState, slot: SlotState, slot_datetime_utc: datetime
) -> Optional[RankedEntry]:
    """
    Scan the queue in rank order and return the first entry whose window matches.

    Paid, active entries inside the opportunity band that are checked and do
    not match before the winner is found become opportunity-passed candidates.
    """
    for item in state.ranked:
        entry = item.entry
        if not entry.is_dispatchable:
            continue

        prefs = state.preferences.get(entry.customer_id, [])
        if not any(pref.location_id == slot.location_id for pref in prefs):
            continue

        selection = state.selections.get(entry.customer_id)
        if selection is None:
            continue

        window = state.catalog.resolve(selection)
        if window is None:
            continue

        if matches_target_window(
            slot_datetime_utc,
            selection,
            window.date_horizon,
            window.time_blocks,
            window.weekday_rule,
            timezone=selection.timezone,
            now=state.now,
        ):
            return item

        if in_opportunity_band(item.rank, state.config):
            zone = get_zone(selection.timezone) or state.slot_zone
            state.opportunity_candidates[
                (entry.customer_id, local_date_key(state.now, zone))
            ] = None

    return None


async def _dispatch_slot(db, state: _CycleState, slot: SlotState, book: BookSlotCallable) -> None:
    slot_time = normalize_time(slot.slot_time)
    lock_key = build_slot_key(slot.location_id, slot.slot_date, slot_time)
    if not await db.acquire_lock(lock_key, state.run_id, state.config.lock_ttl_seconds):
        logger.debug(f"Slot {lock_key} locked by another run, skipping")
        return
    state.summary.slots_locked_count += 1

    slot_datetime_utc = build_slot_datetime_utc(slot.slot_date, slot_time, state.slot_zone)
    winner = None
    if slot_datetime_utc is None:
        logger.warning(f"Unparseable slot date/time for {lock_key}")
    else:
        winner = _find_winner(state, slot, slot_datetime_utc)

    if winner is None:
        await db.release_lock(lock_key)
        return

    entry = winner.entry
    result = await _attempt_booking(book, entry.customer_id, slot.location_id, slot_datetime_utc)
    state.summary.booking_attempt_count += 1

    await db.insert_booking_attempt(
        BookingAttemptCreate(
            customer_id=entry.customer_id,
            location_id=slot.location_id,
            slot_date=slot.slot_date,
            slot_time=slot_time,
            slot_datetime_utc=slot_datetime_utc,
            result=BookingAttemptResult.SUCCESS if result.success else BookingAttemptResult.FAIL,
            error_code=result.error_code,
            error_message=result.error_message,
            dispatcher_run_id=state.run_id,
        )
    )

    # Failed slots keep their lock until TTL expiry so they are not retried hot
    if not result.success:
        logger.info(
            f"Booking failed for customer {entry.customer_id} at {lock_key}: "
            f"{result.error_code} {result.error_message or ''}".rstrip()
        )
        return

    state.summary.booking_success_count += 1
    extra = {"booked_location_id": slot.location_id, "booked_slot_datetime": slot_datetime_utc}
    applied = await db.apply_queue_transition(
        entry.id, MARK_BOOKED, MARK_BOOKED.changes(state.now, **extra), state.now
    )
    if not applied:
        logger.warning(f"Queue entry {entry.id} changed before it could be marked booked")

    state.ranked = [
        RankedEntry(rank=item.rank, entry=MARK_BOOKED.apply(entry, state.now, **extra))
        if item.entry.id == entry.id
        else item
        for item in state.ranked
    ]

    location_name = await _get_location_name(db, state, slot.location_id)
    logged = await log_message_with_dedupe(
        db,
        entry.customer_id,
        get_booked_message(
            location_name,
            slot_datetime_utc,
            state.display_zone,
            state.config.display_timezone_label,
        ),
        booked_key(entry.customer_id, slot.slot_date, slot_time),
    )
    if logged:
        state.summary.booked_message_count += 1


async def _attempt_booking(
    book: BookSlotCallable, customer_id: str, location_id: str, slot_datetime_utc: datetime
) -> BookSlotResult:
    """Call the booking function; an exception counts as a failed attempt."""
    try:
        return await book(customer_id, location_id, slot_datetime_utc)
    except Exception as e:
        logger.error(f"Booking call raised for customer {customer_id}: {e}", exc_info=True)
        return BookSlotResult(
            success=False, error_code=BOOKING_ERROR_EXCEPTION, error_message=str(e)
        )


async def _get_location_name(db, state: _CycleState, location_id: str) -> str:
    if location_id not in state.location_names:
        location = await db.fetch_location_by_id(location_id)
        state.location_names[location_id] = location.name if location else UNKNOWN_LOCATION_NAME
    return state.location_names[location_id]


async def _send_opportunity_notices(db, state: _CycleState) -> None:
    template = get_opportunity_passed_message()
    for customer_id, local_date in state.opportunity_candidates:
        logged = await log_message_with_dedupe(
            db, customer_id, template, opportunity_passed_key(customer_id, local_date)
        )
        if logged:
            state.summary.opportunity_passed_sent_count += 1
