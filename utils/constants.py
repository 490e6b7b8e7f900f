"""
Application-wide constants.
Centralizes magic numbers and identifiers shared across components.
"""

# Weekday numbering used by custom weekday selections (ISO: Monday=1 .. Sunday=7)
BUSINESS_WEEKDAYS = frozenset({1, 2, 3, 4, 5})
WEEKEND_WEEKDAYS = frozenset({6, 7})

# Weekday rule preset keys
WEEKDAY_RULE_ANY = "any_weekday"
WEEKDAY_RULE_CUSTOM = "custom_weekdays"

# Time formatting
DEFAULT_SLOT_TIME = "00:00:00"
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600

# Booking call
BOOKING_ERROR_NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
BOOKING_ERROR_EXCEPTION = "EXCEPTION"

# Display
UNKNOWN_LOCATION_NAME = "Unknown Location"

# Stripe metadata
DEPOSIT_PAYMENT_PURPOSE = "queue_deposit"

# Postgres unique_violation SQLSTATE
UNIQUE_VIOLATION_CODE = "23505"
