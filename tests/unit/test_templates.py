"""
Unit tests for customer message templates and dedupe keys.
"""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from dispatcher.templates import (
    booked_key,
    deposit_needed_key,
    get_booked_message,
    get_deposit_needed_message,
    get_opportunity_passed_message,
    log_message_with_dedupe,
    opportunity_passed_key,
)
from models.message import MessageLogCreate, MessageType
from utils.datetime_utils import format_local_datetime


def test_booked_message_renders_local_time():
    slot = datetime(2026, 1, 13, 18, 30, tzinfo=timezone.utc)
    message = get_booked_message("Kapolei Center", slot, ZoneInfo("Pacific/Honolulu"), "HST")

    assert message.type == MessageType.BOOKED
    assert "Kapolei Center" in message.body
    assert "Tue, Jan 13, 2026, 8:30 AM HST" in message.body


def test_format_local_datetime_afternoon_and_midnight():
    zone = ZoneInfo("Pacific/Honolulu")
    assert (
        format_local_datetime(datetime(2026, 1, 14, 1, 5, tzinfo=timezone.utc), zone, "HST")
        == "Tue, Jan 13, 2026, 3:05 PM HST"
    )
    assert (
        format_local_datetime(datetime(2026, 1, 13, 10, 0, tzinfo=timezone.utc), zone, "HST")
        == "Tue, Jan 13, 2026, 12:00 AM HST"
    )


def test_deposit_and_opportunity_messages():
    deposit = get_deposit_needed_message("https://pay.example/abc")
    assert deposit.type == MessageType.DEPOSIT_NEEDED
    assert "https://pay.example/abc" in deposit.body

    passed = get_opportunity_passed_message()
    assert passed.type == MessageType.OPPORTUNITY_PASSED
    assert "never book outside" in passed.body


def test_dedupe_keys():
    assert deposit_needed_key("q1") == "deposit_needed:q1"
    assert booked_key("c1", date(2026, 1, 13), "08:30:00") == "booked:c1:2026-01-13:08:30:00"
    assert booked_key("c1", "2026-01-13", "08:30:00") == "booked:c1:2026-01-13:08:30:00"
    assert opportunity_passed_key("c1", "2026-01-06") == "opportunity_passed:c1:2026-01-06"


@pytest.mark.asyncio
async def test_log_message_with_dedupe_builds_payload():
    db = AsyncMock()
    db.insert_message_with_dedupe.return_value = None
    template = get_opportunity_passed_message()

    result = await log_message_with_dedupe(db, "c1", template, "opportunity_passed:c1:2026-01-06")

    assert result is None
    [message] = db.insert_message_with_dedupe.await_args.args
    assert isinstance(message, MessageLogCreate)
    assert message.message_type == MessageType.OPPORTUNITY_PASSED
    assert message.meta_json["template"]["body"] == template.body


@pytest.mark.asyncio
async def test_same_event_logged_once(store):
    template = get_deposit_needed_message("https://pay.example")
    first = await log_message_with_dedupe(store, "c1", template, deposit_needed_key("q1"))
    second = await log_message_with_dedupe(store, "c1", template, deposit_needed_key("q1"))

    assert first is not None
    assert second is None
    assert len(store.messages) == 1
