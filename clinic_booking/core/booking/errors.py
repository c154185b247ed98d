"""
Booking failure classification.

Every fatal booking outcome is a BookingError subclass carrying a stable
``error_code`` and a message safe to show the patient.
"""

from typing import Optional


class BookingError(Exception):
    """Base class for booking failures."""

    error_code = "booking_failed"
    default_message = "Error booking appointment. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BookingValidationError(BookingError):
    """Bad or missing input, rejected before any store call."""

    error_code = "validation_error"
    default_message = "Please fill in all required fields."

    def __init__(self, message: Optional[str] = None, fields: Optional[list[str]] = None):
        super().__init__(message)
        self.fields = fields or []


class SlotNoLongerAvailable(BookingError):
    """Another booking claimed the slot first."""

    error_code = "slot_unavailable"
    default_message = (
        "This time slot is no longer available. "
        "Please refresh the available times and choose another slot."
    )


class InvalidReference(BookingError):
    """The doctor or slot referenced by the booking does not exist."""

    error_code = "invalid_reference"
    default_message = "The selected doctor or time slot no longer exists."


class DuplicateAppointment(BookingError):
    """An appointment for this slot already exists."""

    error_code = "duplicate_appointment"
    default_message = "An appointment for this time slot already exists."


class TransientStoreError(BookingError):
    """Network or timeout problem; the patient may retry manually."""

    error_code = "temporarily_unavailable"
    default_message = (
        "We couldn't reach the booking system. Please try again in a moment."
    )


class UnclassifiedBookingError(BookingError):
    """Anything else the store reported; surfaced verbatim."""

    error_code = "booking_failed"
