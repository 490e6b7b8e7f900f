"""
Scheduler for the queue dispatch cycle using APScheduler.
Runs one dispatch cycle every DISPATCH_INTERVAL_SECONDS.

Supports Redis backend for horizontal scaling (multiple worker instances).
Overlapping runs across instances are safe: slots are locked individually and
queue updates are conditional.
"""

from typing import Optional
from urllib.parse import urlparse

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from dispatcher import run_dispatch_cycle
from models.dispatch import DispatchSummary
from utils.exceptions import DatabaseError
from utils.logging_config import setup_logging

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="scheduler.log", log_dir="logs"
)

DISPATCH_JOB_ID = "queue_dispatch"


def _create_scheduler() -> AsyncIOScheduler:
    """
    Create scheduler with Redis backend for clustering support.

    Uses the default in-memory job store when Redis is not configured.
    """
    redis_url = settings.redis_url

    if not redis_url:
        logger.info("Scheduler using in-memory backend (single instance mode)")
        return AsyncIOScheduler()

    from apscheduler.jobstores.redis import RedisJobStore

    # redis://host:port/db or redis://:password@host:port/db
    parsed = urlparse(redis_url)
    host = parsed.hostname or "localhost"
    port = parsed.port or 6379
    db = int(parsed.path.lstrip("/")) if parsed.path.lstrip("/") else 0

    jobstores = {
        "default": RedisJobStore(host=host, port=port, db=db, password=parsed.password)
    }
    logger.info(f"Scheduler using Redis backend: {host}:{port}/{db}")
    return AsyncIOScheduler(jobstores=jobstores)


scheduler = _create_scheduler()


async def run_scheduled_dispatch() -> Optional[DispatchSummary]:
    """
    Run one dispatch cycle from the scheduler.

    Store failures abort the cycle; they are logged here so the scheduler keeps
    ticking and the next run retries from the last advanced watermark.
    """
    try:
        return await run_dispatch_cycle()
    except DatabaseError as e:
        logger.error(f"Database error during dispatch cycle: {e}", exc_info=True)
    except Exception as e:
        logger.error(f"Unexpected error during dispatch cycle: {e}", exc_info=True)
    return None


def setup_scheduler(interval_seconds: Optional[int] = None) -> None:
    """Register the dispatch job and start the scheduler."""
    interval = interval_seconds or settings.dispatch_interval_seconds

    scheduler.add_job(
        run_scheduled_dispatch,
        trigger=IntervalTrigger(seconds=interval),
        id=DISPATCH_JOB_ID,
        name="Dispatch opened slots to queued customers",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(f"Scheduler started (dispatch every {interval}s)")


def shutdown_scheduler():
    """Shutdown the scheduler."""
    scheduler.shutdown()
    logger.info("Scheduler stopped")
