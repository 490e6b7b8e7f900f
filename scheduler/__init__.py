"""Task scheduler for the dispatch cycle."""

from .dispatch_job import run_scheduled_dispatch, setup_scheduler, shutdown_scheduler

__all__ = ["run_scheduled_dispatch", "setup_scheduler", "shutdown_scheduler"]
