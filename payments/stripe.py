"""
Stripe integration for queue deposits.

A customer near the front of the queue pays a deposit; the succeeded webhook
moves their queue entry from deposit_required to active so the dispatcher will
start booking for them.
"""

import asyncio
from typing import Optional

import stripe
from stripe import PaymentIntent, StripeError

from config import settings
from dispatcher.templates import (
    deposit_received_key,
    get_deposit_received_message,
    log_message_with_dedupe,
)
from utils.constants import DEPOSIT_PAYMENT_PURPOSE
from utils.datetime_utils import utc_now
from utils.exceptions import PaymentIntentError
from utils.logging_config import setup_logging
from waitlist.transitions import CONFIRM_DEPOSIT

logger = setup_logging(
    name=__name__,
    log_level="INFO",
    log_file="payments.log",
    log_dir="logs"
)

stripe.api_key = settings.stripe_secret_key

# Retry configuration
_MAX_RETRIES = 3
_RETRY_DELAY = 1.0  # seconds
_RETRY_BACKOFF = 2.0  # exponential backoff multiplier


async def create_deposit_payment_intent(
    queue_entry_id: str,
    customer_id: str,
    amount_cents: Optional[int] = None,
    currency: Optional[str] = None,
) -> PaymentIntent:
    """
    Create a Stripe payment intent for a queue deposit.

    Runs the synchronous Stripe call in a thread and retries transient
    failures with exponential backoff.

    Args:
        queue_entry_id: Queue entry the deposit is for
        customer_id: Customer paying the deposit
        amount_cents: Amount in the smallest currency unit (default from settings)
        currency: Currency code (default from settings)

    Returns:
        Stripe PaymentIntent object

    Raises:
        ValueError: If input validation fails
        PaymentIntentError: If Stripe API call fails after retries
    """
    amount = settings.deposit_amount_cents if amount_cents is None else amount_cents
    currency = currency or settings.deposit_currency

    if amount <= 0:
        raise ValueError(f"Invalid amount: {amount} must be positive")
    if not queue_entry_id:
        raise ValueError("Queue entry ID is required")
    if not customer_id:
        raise ValueError("Customer ID is required")

    last_error: Optional[Exception] = None
    delay = _RETRY_DELAY

    for attempt in range(_MAX_RETRIES):
        try:
            payment_intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=amount,
                currency=currency,
                metadata={
                    "queue_entry_id": queue_entry_id,
                    "customer_id": customer_id,
                    "purpose": DEPOSIT_PAYMENT_PURPOSE,
                },
                description=f"Queue deposit - {queue_entry_id[:8]}",
                automatic_payment_methods={"enabled": True},
                idempotency_key=f"deposit-{queue_entry_id}",
            )

            logger.info(
                f"Created deposit payment intent {payment_intent.id} for queue entry {queue_entry_id}"
            )
            return payment_intent

        except StripeError as e:
            last_error = e
            # Don't retry on client errors (4xx), only on server errors (5xx) or network issues
            if e.http_status and 400 <= e.http_status < 500:
                logger.error(
                    f"Stripe client error creating deposit for queue entry {queue_entry_id}: {e}",
                    exc_info=True
                )
                raise PaymentIntentError(f"Payment processing error: {e}") from e

            if attempt < _MAX_RETRIES - 1:
                logger.warning(
                    f"Stripe error (attempt {attempt + 1}/{_MAX_RETRIES}) for queue entry {queue_entry_id}: {e}. Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)
                delay *= _RETRY_BACKOFF
            else:
                logger.error(
                    f"Stripe error creating deposit for queue entry {queue_entry_id} after {_MAX_RETRIES} attempts: {e}",
                    exc_info=True
                )
                raise PaymentIntentError(
                    f"Payment processing error after {_MAX_RETRIES} attempts: {e}"
                ) from e

    raise PaymentIntentError(f"Failed to create deposit payment intent: {last_error}") from last_error


async def handle_webhook(event_data: dict) -> dict:
    """
    Handle Stripe webhook events for queue deposits.

    Args:
        event_data: Stripe webhook event data

    Returns:
        Response dict
    """
    event_type = event_data.get("type")
    payment_intent = event_data.get("data", {}).get("object")

    if not payment_intent:
        return {"status": "error", "message": "Invalid webhook data"}

    metadata = payment_intent.get("metadata") or {}
    queue_entry_id = metadata.get("queue_entry_id")

    if not queue_entry_id or metadata.get("purpose") != DEPOSIT_PAYMENT_PURPOSE:
        logger.warning("Webhook received without a queue deposit in metadata")
        return {"status": "ignored", "message": "No queue_entry_id in metadata"}

    if event_type == "payment_intent.succeeded":
        from db import get_db_client

        db = get_db_client()
        now = utc_now()
        entry = await db.fetch_queue_entry_by_id(queue_entry_id)
        if entry is None:
            logger.warning(f"Deposit paid for unknown queue entry {queue_entry_id}")
            return {"status": "ignored", "queue_entry_id": queue_entry_id}

        applied = await db.apply_queue_transition(
            queue_entry_id, CONFIRM_DEPOSIT, CONFIRM_DEPOSIT.changes(now), now
        )
        if not applied:
            logger.warning(
                f"Deposit paid but queue entry {queue_entry_id} is no longer awaiting one "
                f"(status={entry.status.value}, deposit_status={entry.deposit_status.value})"
            )
            return {"status": "unchanged", "queue_entry_id": queue_entry_id}

        await log_message_with_dedupe(
            db,
            entry.customer_id,
            get_deposit_received_message(),
            deposit_received_key(queue_entry_id),
        )
        logger.info(f"Deposit confirmed for queue entry {queue_entry_id}")
        return {"status": "success", "queue_entry_id": queue_entry_id}

    elif event_type == "payment_intent.payment_failed":
        logger.warning(f"Deposit payment failed for queue entry {queue_entry_id}")
        return {"status": "failed", "queue_entry_id": queue_entry_id}

    return {"status": "processed", "event_type": event_type}
