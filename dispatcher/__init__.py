"""Dispatch cycle orchestration, booking call and customer messages."""

from .booking import book_slot
from .cycle import get_last_summary, run_dispatch_cycle

__all__ = ["book_slot", "get_last_summary", "run_dispatch_cycle"]
