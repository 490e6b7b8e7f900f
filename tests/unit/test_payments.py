"""
Unit tests for Stripe deposit integration.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import stripe
from stripe import PaymentIntent

from models.message import MessageType
from models.queue_entry import DepositStatus, QueueEntryStatus
from payments import create_deposit_payment_intent, handle_webhook
from utils.constants import DEPOSIT_PAYMENT_PURPOSE
from utils.exceptions import PaymentIntentError


def _deposit_event(event_type="payment_intent.succeeded", queue_entry_id="q1", purpose=DEPOSIT_PAYMENT_PURPOSE):
    return {
        "id": "evt_test_123",
        "type": event_type,
        "data": {
            "object": {
                "id": "pi_test_123",
                "metadata": {"queue_entry_id": queue_entry_id, "purpose": purpose},
            }
        },
    }


class TestCreateDepositPaymentIntent:
    """Test deposit payment intent creation."""

    @pytest.mark.asyncio
    async def test_create_deposit_success(self):
        mock_payment_intent = MagicMock(spec=PaymentIntent)
        mock_payment_intent.id = "pi_test_123"

        with patch("payments.stripe.stripe.PaymentIntent.create") as mock_create:
            mock_create.return_value = mock_payment_intent

            result = await create_deposit_payment_intent(
                "q1", "cust-1", amount_cents=2500, currency="usd"
            )

            assert result.id == "pi_test_123"
            call_kwargs = mock_create.call_args[1]
            assert call_kwargs["amount"] == 2500
            assert call_kwargs["currency"] == "usd"
            assert call_kwargs["metadata"] == {
                "queue_entry_id": "q1",
                "customer_id": "cust-1",
                "purpose": DEPOSIT_PAYMENT_PURPOSE,
            }
            assert call_kwargs["idempotency_key"] == "deposit-q1"

    @pytest.mark.asyncio
    async def test_invalid_amount(self):
        with pytest.raises(ValueError, match="Invalid amount"):
            await create_deposit_payment_intent("q1", "cust-1", amount_cents=0)

    @pytest.mark.asyncio
    async def test_missing_queue_entry(self):
        with pytest.raises(ValueError, match="Queue entry ID is required"):
            await create_deposit_payment_intent("", "cust-1", amount_cents=2500)

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        with patch("payments.stripe.stripe.PaymentIntent.create") as mock_create:
            mock_create.side_effect = stripe.InvalidRequestError(
                "Invalid request", "amount", http_status=400
            )

            with pytest.raises(PaymentIntentError, match="Payment processing error"):
                await create_deposit_payment_intent("q1", "cust-1", amount_cents=2500)

            assert mock_create.call_count == 1

    @pytest.mark.asyncio
    async def test_transient_error_retried(self):
        mock_payment_intent = MagicMock(spec=PaymentIntent)
        mock_payment_intent.id = "pi_test_123"

        with patch("payments.stripe.stripe.PaymentIntent.create") as mock_create, patch(
            "payments.stripe.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            mock_create.side_effect = [
                stripe.APIConnectionError("network down"),
                mock_payment_intent,
            ]

            result = await create_deposit_payment_intent("q1", "cust-1", amount_cents=2500)

            assert result.id == "pi_test_123"
            assert mock_create.call_count == 2
            mock_sleep.assert_awaited_once()


class TestHandleWebhook:
    """Test deposit webhook handling."""

    @pytest.fixture
    def awaiting_deposit(self, store, make_queue_entry, now):
        entry = make_queue_entry(
            "q1",
            status=QueueEntryStatus.DEPOSIT_REQUIRED,
            deposit_status=DepositStatus.REQUIRED,
            deposit_expires_at=now + timedelta(hours=1),
        )
        store.queue[entry.id] = entry
        return entry

    @pytest.mark.asyncio
    async def test_succeeded_activates_entry(self, store, awaiting_deposit):
        with patch("db.get_db_client", return_value=store):
            result = await handle_webhook(_deposit_event())

        assert result == {"status": "success", "queue_entry_id": "q1"}
        entry = store.queue["q1"]
        assert entry.status == QueueEntryStatus.ACTIVE
        assert entry.deposit_status == DepositStatus.PAID
        assert entry.deposit_paid_at is not None
        [message] = store.messages_of_type(MessageType.DEPOSIT_RECEIVED)
        assert message.dedupe_key == "deposit_received:q1"

    @pytest.mark.asyncio
    async def test_redelivery_is_unchanged(self, store, awaiting_deposit):
        with patch("db.get_db_client", return_value=store):
            await handle_webhook(_deposit_event())
            result = await handle_webhook(_deposit_event())

        assert result["status"] == "unchanged"
        assert len(store.messages_of_type(MessageType.DEPOSIT_RECEIVED)) == 1

    @pytest.mark.asyncio
    async def test_unknown_entry_ignored(self, store):
        with patch("db.get_db_client", return_value=store):
            result = await handle_webhook(_deposit_event(queue_entry_id="missing"))

        assert result["status"] == "ignored"

    @pytest.mark.asyncio
    async def test_foreign_payment_ignored(self):
        with patch("db.get_db_client") as mock_get_db:
            result = await handle_webhook(_deposit_event(purpose="something_else"))

        assert result["status"] == "ignored"
        mock_get_db.assert_not_called()

    @pytest.mark.asyncio
    async def test_payment_failed(self, store, awaiting_deposit):
        result = await handle_webhook(_deposit_event("payment_intent.payment_failed"))

        assert result == {"status": "failed", "queue_entry_id": "q1"}
        assert store.queue["q1"].status == QueueEntryStatus.DEPOSIT_REQUIRED

    @pytest.mark.asyncio
    async def test_invalid_event(self):
        result = await handle_webhook({"type": "payment_intent.succeeded", "data": {}})
        assert result["status"] == "error"
