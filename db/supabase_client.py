"""
Supabase database client for the queue dispatcher.
Handles all reads and conditional writes the dispatch cycle needs.

Atomicity Notes:
================
Four operations rely on SQL functions defined in db/schema.sql and invoked
through PostgREST RPC, so that they run in one round trip on the database clock:

- acquire_booking_lock: upsert a lock row only if none exists or it has expired
- release_booking_lock: set locked_until = now()
- fetch_opened_slots_since: slot_states newer than the watermark, still seen
  within the lookback window
- advance_queue_watermark: upsert keeping greatest(last_processed_at)

Queue entry transitions are conditional UPDATEs whose WHERE clause is the
transition guard; a losing concurrent writer matches zero rows.
Message log inserts rely on UNIQUE(dedupe_key); a unique violation means the
message was already sent.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError
from pydantic import ValidationError as ModelValidationError
from supabase import Client as SupabaseClientType
from supabase import create_client

from config import settings
from matching.slot_keys import normalize_time
from models.booking import BookingAttempt, BookingAttemptCreate
from models.dispatch import BookingLock, QueueWatermark
from models.message import MessageLogCreate, MessageLogEntry
from models.preset import BasePreset, PresetCatalog, PresetType, preset_adapter
from models.queue_entry import RANKED_STATUSES, QueueEntry
from models.selection import Location, UserLocationPreference, UserTargetWindowSelection
from models.slot import SlotState
from utils.constants import UNIQUE_VIOLATION_CODE
from utils.datetime_utils import to_iso_string, utc_now
from utils.exceptions import (
    DatabaseError,
    LockError,
    MessageLogError,
    QueueTransitionError,
    WatermarkError,
)
from utils.logging_config import setup_logging
from waitlist.transitions import QueueTransition

logger = setup_logging(name=__name__, log_level="INFO", log_file="db.log", log_dir="logs")


class SupabaseClient:
    """
    Supabase database client wrapper.

    Uses service_role key which bypasses RLS; the dispatcher is a trusted
    backend job. Location names are cached in memory for a few minutes since
    they change rarely and are looked up once per successful booking.
    """

    def __init__(self):
        self.client: SupabaseClientType = create_client(
            settings.supabase_url, settings.supabase_key
        )

        # Format: {cache_key: (data, expiry_time)}
        self._cache: Dict[str, Tuple[Any, datetime]] = {}
        self._cache_ttl = timedelta(minutes=5)

    # ========== Cache Helpers ==========

    def _get_from_cache(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        if key not in self._cache:
            return None

        data, expiry = self._cache[key]
        if utc_now() > expiry:
            del self._cache[key]
            return None

        return data

    def _set_cache(self, key: str, value: Any) -> None:
        """Set value in cache with TTL."""
        self._cache[key] = (value, utc_now() + self._cache_ttl)

    def _clear_cache(self, pattern: Optional[str] = None) -> None:
        """Clear cache entries matching pattern, or all if pattern is None."""
        if pattern is None:
            self._cache.clear()
        else:
            for k in [k for k in self._cache if pattern in k]:
                del self._cache[k]

    # ========== Preset Operations ==========

    async def fetch_active_presets_by_type(self, preset_type: PresetType) -> list:
        """
        Get active presets of one type ordered by sort_order.

        Rows whose rule payload does not validate are skipped with a warning;
        selections pointing at them simply cannot match.
        """
        try:
            response = (
                self.client.table("target_window_presets")
                .select("*")
                .eq("preset_type", preset_type.value)
                .eq("active", True)
                .order("sort_order", desc=False)
                .execute()
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to fetch presets for type {preset_type.value}: {e}"
            ) from e

        presets = []
        for item in response.data or []:
            try:
                presets.append(preset_adapter.validate_python(item))
            except ModelValidationError as e:
                logger.warning(
                    f"Skipping malformed preset {item.get('preset_type')}/{item.get('key')}: {e}"
                )
        return presets

    async def fetch_preset_catalog(self) -> PresetCatalog:
        """Snapshot every active preset into a catalog."""
        presets = []
        for preset_type in PresetType:
            presets.extend(await self.fetch_active_presets_by_type(preset_type))
        return PresetCatalog.from_presets(presets)

    async def upsert_preset(self, preset: BasePreset) -> None:
        """Create or update a preset by (preset_type, key). Admin tooling only."""
        data = preset.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
        try:
            self.client.table("target_window_presets").upsert(
                data, on_conflict="preset_type,key"
            ).execute()
        except Exception as e:
            raise DatabaseError(f"Failed to upsert preset {preset.key}: {e}") from e

    # ========== Selection / Location Operations ==========

    async def fetch_selections_by_customer_ids(
        self, customer_ids: List[str]
    ) -> Dict[str, UserTargetWindowSelection]:
        """
        Batch fetch target-window selections.

        Returns:
            Dictionary mapping customer_id -> selection
        """
        if not customer_ids:
            return {}

        try:
            response = (
                self.client.table("user_target_window_selections")
                .select("*")
                .in_("customer_id", customer_ids)
                .execute()
            )
        except Exception as e:
            raise DatabaseError(f"Failed to fetch user selections: {e}") from e

        selections: Dict[str, UserTargetWindowSelection] = {}
        for item in response.data or []:
            try:
                selection = UserTargetWindowSelection(**item)
            except ModelValidationError as e:
                logger.warning(
                    f"Skipping malformed selection for customer {item.get('customer_id')}: {e}"
                )
                continue
            selections[selection.customer_id] = selection
        return selections

    async def fetch_location_preferences_by_customer_ids(
        self, customer_ids: List[str]
    ) -> Dict[str, List[UserLocationPreference]]:
        """
        Batch fetch location preferences.

        Returns:
            Dictionary mapping customer_id -> preferences (empty list if none)
        """
        if not customer_ids:
            return {}

        try:
            response = (
                self.client.table("user_location_preferences")
                .select("*")
                .in_("customer_id", customer_ids)
                .execute()
            )
        except Exception as e:
            raise DatabaseError(f"Failed to fetch location preferences: {e}") from e

        preferences: Dict[str, List[UserLocationPreference]] = {
            customer_id: [] for customer_id in customer_ids
        }
        for item in response.data or []:
            pref = UserLocationPreference(**item)
            preferences.setdefault(pref.customer_id, []).append(pref)
        return preferences

    async def fetch_location_by_id(self, location_id: str) -> Optional[Location]:
        """Get a location's display name (cached)."""
        cache_key = f"location:{location_id}"
        cached = self._get_from_cache(cache_key)
        if cached is not None:
            return cached

        try:
            response = (
                self.client.table("locations")
                .select("id, name")
                .eq("id", location_id)
                .execute()
            )
        except Exception as e:
            raise DatabaseError(f"Failed to fetch location {location_id}: {e}") from e

        if not response.data:
            return None

        location = Location(**response.data[0])
        self._set_cache(cache_key, location)
        return location

    async def upsert_location(self, location: Location) -> None:
        try:
            self.client.table("locations").upsert(location.model_dump()).execute()
        except Exception as e:
            raise DatabaseError(f"Failed to upsert location {location.id}: {e}") from e
        self._clear_cache(f"location:{location.id}")

    # ========== Queue Operations ==========

    async def fetch_ordered_queue_entries(self) -> List[QueueEntry]:
        """Get waiting queue entries ordered by created_at ascending."""
        try:
            response = (
                self.client.table("queue_entries")
                .select("*")
                .in_("status", [status.value for status in RANKED_STATUSES])
                .order("created_at", desc=False)
                .execute()
            )
        except Exception as e:
            raise DatabaseError(f"Failed to fetch ordered queue entries: {e}") from e

        return [QueueEntry(**item) for item in response.data or []]

    async def fetch_queue_entry_by_id(self, queue_entry_id: str) -> Optional[QueueEntry]:
        """Get queue entry by ID."""
        try:
            response = (
                self.client.table("queue_entries")
                .select("*")
                .eq("id", queue_entry_id)
                .execute()
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to fetch queue entry {queue_entry_id}: {e}"
            ) from e

        if response.data:
            return QueueEntry(**response.data[0])
        return None

    async def apply_queue_transition(
        self,
        queue_entry_id: str,
        transition: QueueTransition,
        changes: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Conditionally update a queue entry, using the transition guard as WHERE.

        Args:
            queue_entry_id: Queue entry to update
            transition: Transition whose guard must still hold in the store
            changes: Column values to write (see QueueTransition.changes)
            now: Reference instant for expiry guards

        Returns:
            True if a row was updated, False if the guard no longer held
        """
        now = now or utc_now()
        try:
            query = (
                self.client.table("queue_entries")
                .update(changes)
                .eq("id", queue_entry_id)
            )
            if transition.from_deposit_status is not None:
                query = query.eq("deposit_status", transition.from_deposit_status.value)
            if transition.from_statuses is not None:
                query = query.in_(
                    "status", sorted(status.value for status in transition.from_statuses)
                )
            if transition.excluded_status is not None:
                query = query.neq("status", transition.excluded_status.value)
            if transition.requires_expired_deposit:
                query = query.lt("deposit_expires_at", to_iso_string(now))

            response = query.execute()
        except Exception as e:
            raise QueueTransitionError(
                f"Failed to apply {transition.name} to queue entry {queue_entry_id}: {e}"
            ) from e

        return bool(response.data)

    # ========== Slot Feed ==========

    async def fetch_opened_slots_since(
        self, watermark: datetime, lookback_minutes: int
    ) -> List[SlotState]:
        """
        Get slots first seen after the watermark and still seen within the lookback.

        Rows with a null date or time, or an unparseable timestamp, are dropped;
        times are normalized to HH:MM:SS. Ordered by first_seen ascending.
        """
        try:
            response = self.client.rpc(
                "fetch_opened_slots_since",
                {
                    "p_watermark": to_iso_string(watermark),
                    "p_lookback_minutes": lookback_minutes,
                },
            ).execute()
        except Exception as e:
            raise DatabaseError(f"Failed to fetch opened slots since watermark: {e}") from e

        slots = []
        for item in response.data or []:
            if not item.get("slot_date") or not item.get("slot_time"):
                continue
            try:
                slots.append(
                    SlotState(
                        location_id=item["location_id"],
                        slot_date=item["slot_date"],
                        slot_time=normalize_time(item["slot_time"]),
                        first_seen=item.get("first_seen"),
                        last_seen=item.get("last_seen"),
                    )
                )
            except ModelValidationError as e:
                logger.warning(f"Skipping malformed slot row {item}: {e}")
        slots.sort(key=lambda slot: slot.first_seen)
        return slots

    # ========== Watermark Operations ==========

    async def fetch_watermark(self, key: str) -> Optional[QueueWatermark]:
        """Get the watermark row for a stream, if any."""
        try:
            response = (
                self.client.table("queue_watermarks").select("*").eq("key", key).execute()
            )
        except Exception as e:
            raise WatermarkError(f"Failed to fetch watermark {key}: {e}") from e

        if response.data:
            return QueueWatermark(**response.data[0])
        return None

    async def update_watermark(self, key: str, last_processed_at: datetime) -> None:
        """Advance the watermark; the database never moves it backwards."""
        try:
            self.client.rpc(
                "advance_queue_watermark",
                {
                    "p_key": key,
                    "p_last_processed_at": to_iso_string(last_processed_at),
                },
            ).execute()
        except Exception as e:
            raise WatermarkError(f"Failed to update watermark {key}: {e}") from e

    # ========== Lock Operations ==========

    async def acquire_lock(self, lock_key: str, owner_run_id: str, ttl_seconds: int) -> bool:
        """
        Try to take the booking lock for a slot.

        Returns:
            True if acquired, False if another run holds an unexpired lock
        """
        try:
            response = self.client.rpc(
                "acquire_booking_lock",
                {
                    "p_lock_key": lock_key,
                    "p_owner_run_id": owner_run_id,
                    "p_ttl_seconds": ttl_seconds,
                },
            ).execute()
        except Exception as e:
            raise LockError(f"Failed to acquire lock {lock_key}: {e}") from e

        return response.data is True

    async def release_lock(self, lock_key: str) -> None:
        """Expire a lock now so the slot can be retried by a later cycle."""
        try:
            self.client.rpc("release_booking_lock", {"p_lock_key": lock_key}).execute()
        except Exception as e:
            raise LockError(f"Failed to release lock {lock_key}: {e}") from e

    async def fetch_lock(self, lock_key: str) -> Optional[BookingLock]:
        """Get a lock row by key."""
        try:
            response = (
                self.client.table("booking_locks")
                .select("*")
                .eq("lock_key", lock_key)
                .execute()
            )
        except Exception as e:
            raise LockError(f"Failed to fetch lock {lock_key}: {e}") from e

        if response.data:
            return BookingLock(**response.data[0])
        return None

    # ========== Booking Attempts ==========

    async def insert_booking_attempt(self, attempt: BookingAttemptCreate) -> BookingAttempt:
        """Append a booking attempt audit row."""
        try:
            data = attempt.model_dump(mode="json")
            response = self.client.table("booking_attempts").insert(data).execute()
        except Exception as e:
            raise DatabaseError(f"Failed to insert booking attempt: {e}") from e

        if not response.data:
            raise DatabaseError("Failed to insert booking attempt: no data returned")

        return BookingAttempt(**response.data[0])

    # ========== Message Log ==========

    async def insert_message_with_dedupe(
        self, message: MessageLogCreate
    ) -> Optional[MessageLogEntry]:
        """
        Insert a message log row unless its dedupe key already exists.

        Returns:
            The stored entry, or None if the message was already sent
        """
        try:
            data = message.model_dump(mode="json")
            response = self.client.table("message_log").insert(data).execute()
        except APIError as e:
            if str(e.code) == UNIQUE_VIOLATION_CODE:
                logger.debug(f"Message already sent: {message.dedupe_key}")
                return None
            raise MessageLogError(f"Failed to insert message: {e}") from e
        except Exception as e:
            raise MessageLogError(f"Failed to insert message: {e}") from e

        if not response.data:
            raise MessageLogError("Failed to insert message: no data returned")

        return MessageLogEntry(**response.data[0])


# Global database client instance
_db_client: Optional[SupabaseClient] = None


def get_db_client() -> SupabaseClient:
    """Get or create database client instance."""
    global _db_client
    if _db_client is None:
        _db_client = SupabaseClient()
    return _db_client
