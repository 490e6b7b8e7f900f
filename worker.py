"""
Main entry point for the queue dispatcher worker.

    python worker.py             # scheduled dispatch every DISPATCH_INTERVAL_SECONDS
    python worker.py --webhook   # same, plus the Stripe webhook/health server
    python worker.py --once      # run a single dispatch cycle and exit
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from aiohttp import web

from config import settings
from dispatcher import run_dispatch_cycle
from scheduler import setup_scheduler, shutdown_scheduler
from utils.exceptions import DatabaseError
from utils.logging_config import setup_logging
from webhook import create_app

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="worker.log", log_dir="logs"
)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Queue slot dispatcher")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once", action="store_true", help="run one dispatch cycle and exit"
    )
    mode.add_argument(
        "--webhook",
        action="store_true",
        help="also serve the Stripe webhook and health endpoints",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="seconds between dispatch cycles (default from settings)",
    )
    return parser.parse_args(argv)


async def run_once() -> int:
    """Run a single cycle; returns the process exit code."""
    try:
        summary = await run_dispatch_cycle()
    except DatabaseError as e:
        logger.error(f"Dispatch cycle failed: {e}", exc_info=True)
        return 1

    logger.info(
        f"Dispatch cycle {summary.dispatcher_run_id} done: "
        f"{summary.opened_slots_count} opened, "
        f"{summary.booking_success_count}/{summary.booking_attempt_count} booked, "
        f"{summary.notifications_sent} notifications"
    )
    return 0


async def run_forever(serve_webhook: bool, interval: Optional[int]) -> None:
    runner: Optional[web.AppRunner] = None

    setup_scheduler(interval_seconds=interval)
    try:
        if serve_webhook:
            runner = web.AppRunner(create_app())
            await runner.setup()
            await web.TCPSite(runner, host=settings.host, port=settings.port).start()
            logger.info(f"Webhook server listening on {settings.host}:{settings.port}")

        logger.info("Worker running. Press Ctrl+C to stop.")
        await asyncio.Event().wait()
    finally:
        logger.info("Shutting down...")
        if runner is not None:
            await runner.cleanup()
        shutdown_scheduler()
        logger.info("Worker shutdown complete")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        settings.validate_all_required()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.once:
        return asyncio.run(run_once())

    try:
        asyncio.run(run_forever(args.webhook, args.interval))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
