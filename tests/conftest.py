"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from unittest.mock import MagicMock, patch

import pytest

from models.booking import BookingAttempt, BookingAttemptCreate
from models.dispatch import BookingLock, DispatchConfig, QueueWatermark
from models.message import MessageLogCreate, MessageLogEntry
from models.preset import (
    DateHorizonPreset,
    PresetCatalog,
    TimeBlockPreset,
    WeekdayRulePreset,
)
from models.queue_entry import (
    RANKED_STATUSES,
    DepositStatus,
    QueueEntry,
    QueueEntryStatus,
)
from models.selection import Location, UserLocationPreference, UserTargetWindowSelection
from models.slot import SlotState

HONOLULU = "Pacific/Honolulu"


@pytest.fixture(autouse=True)
def mock_settings():
    """Mock settings for all tests."""
    with patch("config.settings") as mock_settings:
        mock_settings.supabase_url = "https://test.supabase.co"
        mock_settings.supabase_key = "test_key"
        mock_settings.stripe_secret_key = "sk_test_123"
        mock_settings.stripe_publishable_key = "pk_test_123"
        mock_settings.stripe_webhook_secret = "whsec_test_123"
        mock_settings.environment = "test"
        mock_settings.host = "0.0.0.0"
        mock_settings.port = 8000
        mock_settings.redis_url = None
        mock_settings.dispatch_interval_seconds = 60
        mock_settings.deposit_amount_cents = 2500
        mock_settings.deposit_currency = "usd"
        yield mock_settings


@pytest.fixture
def mock_supabase_client():
    """Create a mock Supabase client."""
    mock_client = MagicMock()
    mock_table = MagicMock()
    mock_client.table.return_value = mock_table
    return mock_client, mock_table


class FakeStore:
    """
    In-memory store with the same async interface as SupabaseClient.

    Locks, conditional queue transitions and message dedupe behave like their
    SQL counterparts: nothing awaits between check and write, so concurrent
    coroutines see them as atomic.
    """

    def __init__(self, clock: datetime):
        self.clock = clock
        self.presets: list = []
        self.selections: Dict[str, UserTargetWindowSelection] = {}
        self.preferences: Dict[str, List[UserLocationPreference]] = {}
        self.locations: Dict[str, Location] = {}
        self.queue: Dict[str, QueueEntry] = {}
        self.slots: List[SlotState] = []
        self.watermarks: Dict[str, datetime] = {}
        self.locks: Dict[str, BookingLock] = {}
        self.attempts: List[BookingAttemptCreate] = []
        self.messages: Dict[str, MessageLogCreate] = {}

    # presets / selections / locations

    async def fetch_preset_catalog(self) -> PresetCatalog:
        return PresetCatalog.from_presets(self.presets)

    async def fetch_selections_by_customer_ids(self, customer_ids):
        return {cid: self.selections[cid] for cid in customer_ids if cid in self.selections}

    async def fetch_location_preferences_by_customer_ids(self, customer_ids):
        return {cid: list(self.preferences.get(cid, [])) for cid in customer_ids}

    async def fetch_location_by_id(self, location_id: str) -> Optional[Location]:
        return self.locations.get(location_id)

    # queue

    async def fetch_ordered_queue_entries(self) -> List[QueueEntry]:
        entries = [e for e in self.queue.values() if e.status in RANKED_STATUSES]
        return sorted(entries, key=lambda e: e.created_at)

    async def fetch_queue_entry_by_id(self, queue_entry_id: str) -> Optional[QueueEntry]:
        return self.queue.get(queue_entry_id)

    async def apply_queue_transition(self, queue_entry_id, transition, changes, now=None):
        entry = self.queue.get(queue_entry_id)
        if entry is None or not transition.guard(entry, now or self.clock):
            return False
        self.queue[queue_entry_id] = QueueEntry(**{**entry.model_dump(), **changes})
        return True

    # slots / watermark

    async def fetch_opened_slots_since(self, watermark, lookback_minutes):
        seen_after = self.clock - timedelta(minutes=lookback_minutes)
        slots = [
            s for s in self.slots if s.first_seen > watermark and s.last_seen > seen_after
        ]
        return sorted(slots, key=lambda s: s.first_seen)

    async def fetch_watermark(self, key: str) -> Optional[QueueWatermark]:
        if key not in self.watermarks:
            return None
        return QueueWatermark(key=key, last_processed_at=self.watermarks[key])

    async def update_watermark(self, key: str, last_processed_at: datetime) -> None:
        current = self.watermarks.get(key)
        if current is None or last_processed_at > current:
            self.watermarks[key] = last_processed_at

    # locks

    async def acquire_lock(self, lock_key: str, owner_run_id: str, ttl_seconds: int) -> bool:
        lock = self.locks.get(lock_key)
        if lock is not None and lock.locked_until >= self.clock:
            return False
        self.locks[lock_key] = BookingLock(
            lock_key=lock_key,
            locked_until=self.clock + timedelta(seconds=ttl_seconds),
            owner_run_id=owner_run_id,
        )
        return True

    async def release_lock(self, lock_key: str) -> None:
        lock = self.locks.get(lock_key)
        if lock is not None:
            self.locks[lock_key] = lock.model_copy(update={"locked_until": self.clock})

    async def fetch_lock(self, lock_key: str) -> Optional[BookingLock]:
        return self.locks.get(lock_key)

    # audit / messages

    async def insert_booking_attempt(self, attempt: BookingAttemptCreate) -> BookingAttempt:
        self.attempts.append(attempt)
        return BookingAttempt(**attempt.model_dump())

    async def insert_message_with_dedupe(
        self, message: MessageLogCreate
    ) -> Optional[MessageLogEntry]:
        if message.dedupe_key in self.messages:
            return None
        self.messages[message.dedupe_key] = message
        return MessageLogEntry(**message.model_dump())

    def messages_of_type(self, message_type) -> List[MessageLogCreate]:
        return [m for m in self.messages.values() if m.message_type == message_type]


@pytest.fixture
def now() -> datetime:
    """Tue, Jan 6, 2026, 8:00 AM in Honolulu."""
    return datetime(2026, 1, 6, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def standard_presets() -> list:
    return [
        DateHorizonPreset(key="next_7_days", rules_json={"days_ahead": 7}),
        DateHorizonPreset(key="next_30_days", rules_json={"days_ahead": 30}),
        TimeBlockPreset(key="early", rules_json={"start": "07:00", "end": "09:00"}),
        TimeBlockPreset(key="midday", rules_json={"start": "11:00", "end": "13:00"}),
        TimeBlockPreset(key="afternoon", rules_json={"start": "13:00", "end": "16:00"}),
        WeekdayRulePreset(key="any_weekday", rules_json={"mode": "any"}),
        WeekdayRulePreset(key="custom_weekdays", rules_json={"mode": "custom"}),
    ]


@pytest.fixture
def dispatch_config() -> DispatchConfig:
    return DispatchConfig(
        deposit_rank_threshold=10,
        opportunity_rank_threshold=20,
        slot_timezone=HONOLULU,
        display_timezone=HONOLULU,
    )


@pytest.fixture
def store(now, standard_presets) -> FakeStore:
    fake = FakeStore(now)
    fake.presets = list(standard_presets)
    fake.locations["loc-1"] = Location(id="loc-1", name="Kapolei Center")
    fake.locations["loc-2"] = Location(id="loc-2", name="Waipahu Center")
    return fake


@pytest.fixture
def make_queue_entry(now):
    """Factory for queue entries created some minutes before ``now``."""

    def _make(
        entry_id: str,
        customer_id: Optional[str] = None,
        minutes_ago: int = 60,
        status: QueueEntryStatus = QueueEntryStatus.ACTIVE,
        deposit_status: DepositStatus = DepositStatus.PAID,
        **extra,
    ) -> QueueEntry:
        return QueueEntry(
            id=entry_id,
            customer_id=customer_id or f"cust-{entry_id}",
            created_at=now - timedelta(minutes=minutes_ago),
            status=status,
            deposit_status=deposit_status,
            **extra,
        )

    return _make


@pytest.fixture
def seed_customer(store, make_queue_entry):
    """Put a queue entry, its selection and location preferences into the store."""

    def _seed(
        entry_id: str,
        minutes_ago: int = 60,
        locations=("loc-1",),
        date_horizon_key: str = "next_7_days",
        weekday_rule_key: str = "any_weekday",
        time_block_keys=("early",),
        custom_weekdays=(),
        timezone: str = HONOLULU,
        **entry_fields,
    ) -> QueueEntry:
        entry = make_queue_entry(entry_id, minutes_ago=minutes_ago, **entry_fields)
        store.queue[entry.id] = entry
        store.selections[entry.customer_id] = UserTargetWindowSelection(
            customer_id=entry.customer_id,
            timezone=timezone,
            date_horizon_key=date_horizon_key,
            weekday_rule_key=weekday_rule_key,
            custom_weekdays=list(custom_weekdays),
            time_block_keys=list(time_block_keys),
        )
        store.preferences[entry.customer_id] = [
            UserLocationPreference(customer_id=entry.customer_id, location_id=loc)
            for loc in locations
        ]
        return entry

    return _seed


@pytest.fixture
def open_slot(store, now):
    """Add a slot to the feed, first seen ``seconds_ago`` before ``now``."""

    def _open(
        slot_date: str,
        slot_time: str,
        location_id: str = "loc-1",
        seconds_ago: int = 30,
    ) -> SlotState:
        slot = SlotState(
            location_id=location_id,
            slot_date=slot_date,
            slot_time=slot_time,
            first_seen=now - timedelta(seconds=seconds_ago),
            last_seen=now - timedelta(seconds=5),
        )
        store.slots.append(slot)
        return slot

    return _open
