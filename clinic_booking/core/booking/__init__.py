"""
Booking Module

The booking transaction (availability re-check, appointment insert,
conditional slot claim, detached admin notification) and the sweep that
cleans up after bookings that lost their slot.

Usage:
    from clinic_booking.core.booking import BookingCoordinator, PatientInfo

    coordinator = BookingCoordinator(store, dispatcher=dispatcher, cache=cache)
    confirmation = await coordinator.book_appointment(
        slot_id="slot-1",
        patient=PatientInfo("Jane", "Doe", "jane@example.com", "555-0100"),
    )
"""

# Models
from clinic_booking.core.booking.models import (
    ACTIVE_STATUSES,
    EDUCATION_LEVELS,
    AppointmentConfirmation,
    AppointmentStatus,
    Doctor,
    PatientInfo,
    ReconciliationReport,
    TimeSlot,
)

# Errors
from clinic_booking.core.booking.errors import (
    BookingError,
    BookingValidationError,
    DuplicateAppointment,
    InvalidReference,
    SlotNoLongerAvailable,
    TransientStoreError,
    UnclassifiedBookingError,
)

# Coordination
from clinic_booking.core.booking.dispatch import NotificationDispatcher
from clinic_booking.core.booking.coordinator import BookingCoordinator
from clinic_booking.core.booking.reconciler import AppointmentReconciler

__all__ = [
    # Models
    "ACTIVE_STATUSES",
    "EDUCATION_LEVELS",
    "AppointmentConfirmation",
    "AppointmentStatus",
    "Doctor",
    "PatientInfo",
    "ReconciliationReport",
    "TimeSlot",
    # Errors
    "BookingError",
    "BookingValidationError",
    "DuplicateAppointment",
    "InvalidReference",
    "SlotNoLongerAvailable",
    "TransientStoreError",
    "UnclassifiedBookingError",
    # Coordination
    "NotificationDispatcher",
    "BookingCoordinator",
    "AppointmentReconciler",
]
