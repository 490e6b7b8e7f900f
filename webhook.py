"""
HTTP surface of the worker: Stripe deposit webhooks, deposit intents and health.

Stripe events are signature-verified and deduplicated by event id before they
reach the payments module. Duplicate deliveries answer 200 so Stripe stops
retrying them.
"""

import json
import time
from typing import Dict, Optional

import stripe
from aiohttp import web
from aiohttp.web import Request, Response
from stripe import SignatureVerificationError

from config import settings
from db import get_db_client
from dispatcher import get_last_summary
from payments import create_deposit_payment_intent, handle_webhook
from utils.exceptions import (
    DatabaseError,
    PaymentIntentError,
    ValidationError,
    WebhookVerificationError,
)
from utils.logging_config import setup_logging

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="webhook.log", log_dir="logs"
)

MAX_REQUEST_BODY_SIZE = 1024 * 1024  # 1MB
_EVENT_ID_MAX_AGE = 86400  # seconds
_EVENT_ID_CLEANUP_INTERVAL = 3600  # seconds

# event_id -> time first seen
_processed_event_ids: Dict[str, float] = {}
_last_cleanup_time = time.time()

_webhook_metrics = {
    "total_events": 0,
    "successful_events": 0,
    "failed_events": 0,
    "verification_failures": 0,
    "validation_failures": 0,
    "duplicate_events": 0,
    "start_time": time.time(),
}


def _error_response(error: str, message: str, status: int) -> Response:
    return web.json_response(
        {"status": "error", "error": error, "message": message}, status=status
    )


def _cleanup_old_event_ids() -> None:
    """Forget event ids older than a day, at most once an hour."""
    global _last_cleanup_time
    current_time = time.time()
    if current_time - _last_cleanup_time < _EVENT_ID_CLEANUP_INTERVAL:
        return

    cutoff_time = current_time - _EVENT_ID_MAX_AGE
    expired_ids = [
        event_id for event_id, seen_at in _processed_event_ids.items() if seen_at < cutoff_time
    ]
    for event_id in expired_ids:
        _processed_event_ids.pop(event_id, None)

    _last_cleanup_time = current_time
    if expired_ids:
        logger.debug(f"Cleaned up {len(expired_ids)} expired event IDs")


def _verify_webhook_signature(payload: bytes, signature: Optional[str]) -> Dict:
    """
    Verify the Stripe-Signature header and parse the event.

    Without a webhook secret, unsigned events are accepted only with a test
    secret key.

    Raises:
        WebhookVerificationError: If the signature or payload is invalid
        ValidationError: If no webhook secret is configured with a live key
    """
    if not settings.stripe_webhook_secret:
        if settings.stripe_secret_key.startswith("sk_test_"):
            logger.warning(
                "STRIPE_WEBHOOK_SECRET not set - skipping signature verification"
            )
            try:
                return json.loads(payload.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise ValidationError(f"Webhook payload is not valid JSON: {e}") from e
        raise ValidationError(
            "Stripe webhook secret is required for production webhook verification"
        )

    if not signature:
        raise WebhookVerificationError("Missing Stripe-Signature header")

    try:
        return stripe.Webhook.construct_event(
            payload, signature, settings.stripe_webhook_secret
        )
    except ValueError as e:
        raise WebhookVerificationError(f"Invalid payload: {e}") from e
    except SignatureVerificationError as e:
        raise WebhookVerificationError(f"Invalid signature: {e}") from e


def _validate_webhook_payload(payload: Dict) -> None:
    """Require a dict event with string id/type and an object data field."""
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")

    for field in ("id", "type"):
        value = payload.get(field)
        if not isinstance(value, str) or not value:
            raise ValidationError(f"Webhook '{field}' must be a non-empty string")

    if not isinstance(payload.get("data"), dict):
        raise ValidationError("Webhook payload 'data' field must be an object")


def _check_and_mark_idempotency(event_id: str) -> bool:
    """Return True if the event was seen before; otherwise remember it."""
    _cleanup_old_event_ids()
    if event_id in _processed_event_ids:
        return True
    _processed_event_ids[event_id] = time.time()
    return False


@web.middleware
async def security_headers_middleware(request: Request, handler):
    response = await handler(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    if request.path.startswith("/webhook/"):
        response.headers["Allow"] = "POST"
    return response


async def stripe_webhook_handler(request: Request) -> Response:
    """Verify, deduplicate and apply a Stripe deposit event."""
    event_id: Optional[str] = None

    try:
        content_length = request.content_length
        if content_length is not None and content_length > MAX_REQUEST_BODY_SIZE:
            _webhook_metrics["validation_failures"] += 1
            return _error_response(
                "request_too_large",
                f"Request body exceeds maximum size of {MAX_REQUEST_BODY_SIZE} bytes",
                413,
            )

        raw_body = await request.read()
        if len(raw_body) > MAX_REQUEST_BODY_SIZE:
            _webhook_metrics["validation_failures"] += 1
            return _error_response(
                "request_too_large",
                f"Request body exceeds maximum size of {MAX_REQUEST_BODY_SIZE} bytes",
                413,
            )
        if not raw_body:
            _webhook_metrics["validation_failures"] += 1
            return _error_response("empty_payload", "Empty payload", 400)

        payload = _verify_webhook_signature(raw_body, request.headers.get("Stripe-Signature"))
        _validate_webhook_payload(payload)

        event_id = str(payload["id"])
        event_type = str(payload["type"])
        logger.info(f"Received Stripe webhook: event_id={event_id}, type={event_type}")

        if _check_and_mark_idempotency(event_id):
            _webhook_metrics["duplicate_events"] += 1
            logger.info(f"Duplicate webhook event {event_id} ignored")
            return web.json_response(
                {
                    "status": "success",
                    "message": "Event already processed",
                    "event_id": event_id,
                    "event_type": event_type,
                }
            )

        _webhook_metrics["total_events"] += 1
        result = await handle_webhook(payload)
        _webhook_metrics["successful_events"] += 1

        return web.json_response(
            {
                "status": "success",
                "event_id": event_id,
                "event_type": event_type,
                "result": result,
            }
        )

    except WebhookVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        _webhook_metrics["verification_failures"] += 1
        return _error_response("verification_failed", "Invalid webhook signature", 401)

    except ValidationError as e:
        logger.warning(f"Invalid webhook payload: {e}")
        _webhook_metrics["validation_failures"] += 1
        return _error_response("validation_failed", str(e), 400)

    except Exception as e:
        logger.error(f"Unexpected webhook error: {e}", exc_info=True)
        _webhook_metrics["failed_events"] += 1
        # Let Stripe redeliver this event
        if event_id:
            _processed_event_ids.pop(event_id, None)
        return _error_response(
            "processing_failed", "Internal server error while processing webhook", 500
        )


async def create_deposit_handler(request: Request) -> Response:
    """Create (or reuse) the deposit payment intent for a queue entry."""
    queue_entry_id = request.match_info["queue_entry_id"]

    try:
        entry = await get_db_client().fetch_queue_entry_by_id(queue_entry_id)
    except DatabaseError as e:
        logger.error(f"Could not load queue entry {queue_entry_id}: {e}")
        return _error_response("database_error", "Could not load queue entry", 503)

    if entry is None:
        return _error_response("not_found", "Unknown queue entry", 404)
    if not entry.awaits_deposit:
        return _error_response("deposit_not_required", "Queue entry does not need a deposit", 409)

    try:
        intent = await create_deposit_payment_intent(entry.id, entry.customer_id)
    except PaymentIntentError as e:
        logger.error(f"Deposit intent failed for queue entry {queue_entry_id}: {e}")
        return _error_response("payment_failed", "Could not create deposit payment", 502)

    return web.json_response(
        {
            "status": "success",
            "queue_entry_id": entry.id,
            "payment_intent_id": intent.id,
            "client_secret": intent.client_secret,
            "publishable_key": settings.stripe_publishable_key,
        },
        status=201,
    )


async def health_check(request: Request) -> Response:
    """Service status, webhook counters and the last dispatch summary."""
    _cleanup_old_event_ids()
    summary = get_last_summary()

    return web.json_response(
        {
            "status": "ok",
            "service": "queue-dispatcher",
            "environment": settings.environment,
            "timestamp": time.time(),
            "uptime_hours": round((time.time() - _webhook_metrics["start_time"]) / 3600, 2),
            "webhooks": {
                key: value for key, value in _webhook_metrics.items() if key != "start_time"
            },
            "last_dispatch": summary.model_dump(mode="json") if summary else None,
            "configuration": {
                "webhook_secret_configured": bool(settings.stripe_webhook_secret),
                "dispatch_interval_seconds": settings.dispatch_interval_seconds,
            },
        }
    )


def create_app() -> web.Application:
    app = web.Application(
        middlewares=[security_headers_middleware],
        client_max_size=MAX_REQUEST_BODY_SIZE,
    )
    app.router.add_post("/webhook/stripe", stripe_webhook_handler)
    app.router.add_post("/deposits/{queue_entry_id}", create_deposit_handler)
    app.router.add_get("/health", health_check)
    return app


if __name__ == "__main__":
    logger.info(f"Starting webhook server on {settings.host}:{settings.port}")
    web.run_app(create_app(), host=settings.host, port=settings.port)
