"""Booking error kinds.

Every error carries a stable ``code`` that routers and other callers branch
on, plus a client-facing message.
"""

from typing import Optional


class BookingError(Exception):
    code = "booking_error"
    message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class MissingFieldsError(BookingError):
    code = "missing_fields"
    message = "Please fill in all required fields."

    def __init__(self, fields: Optional[list[str]] = None):
        super().__init__()
        self.fields = fields or []


class InvalidEmailError(BookingError):
    code = "invalid_email"
    message = "Please enter a valid email address."


class InvalidDateError(BookingError):
    code = "invalid_date"
    message = "Invalid date."


class InvalidTimeError(BookingError):
    code = "invalid_time"
    message = "Invalid time."


class InvalidServiceError(BookingError):
    code = "invalid_service"
    message = "This service is no longer available."


class SlotTakenError(BookingError):
    """Raised identically whether the fresh re-check or the atomic insert caught the conflict."""

    code = "slot_taken"
    message = "Sorry, this time slot is no longer available. Please choose another time."


class ServerBusyError(BookingError):
    """Transient; the client may retry."""

    code = "server_busy"
    message = "Server is busy. Please try again in a moment."


class RateLimitedError(BookingError):
    code = "rate_limited"
    message = "Too many booking attempts. Please try again later."

    def __init__(self, retry_after: int = 0):
        super().__init__()
        self.retry_after = retry_after
