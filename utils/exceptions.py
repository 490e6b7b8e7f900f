"""
Custom exception classes for better error handling.
Provides specific error types instead of generic exceptions.

Store failures (DatabaseError and subclasses) abort the current dispatch
cycle; the next scheduled run retries it wholesale.
"""


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class LockError(DatabaseError):
    """Raised when a booking lock cannot be acquired or released due to a store failure."""

    pass


class QueueTransitionError(DatabaseError):
    """Raised when a conditional queue entry update fails at the store level."""

    pass


class WatermarkError(DatabaseError):
    """Raised when the slot watermark cannot be read or advanced."""

    pass


class MessageLogError(DatabaseError):
    """Raised when a message log insert fails for a reason other than dedupe."""

    pass


class PaymentError(Exception):
    """Base exception for payment operations."""

    pass


class PaymentIntentError(PaymentError):
    """Raised when payment intent creation/retrieval fails."""

    pass


class WebhookVerificationError(Exception):
    """Raised when webhook signature verification fails."""

    pass


class ValidationError(Exception):
    """Raised when input validation fails."""

    pass


class ConfigurationError(ValueError):
    """Raised when dispatch tunables are inconsistent."""

    pass
