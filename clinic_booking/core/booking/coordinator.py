"""
Booking Coordinator.

Runs the patient booking transaction against the Table Store:

1. re-check the slot is still available
2. insert the appointment as pending
3. claim the slot with a conditional update (is_available = true)
4. notify admins without waiting

The store offers no multi-statement transaction to this client, so step 3
is the only thing standing between two patients and the same slot: the
update only matches while the slot is still free, and whoever sees zero
affected rows lost the race. Nothing here retries; the writes are not
idempotent.
"""

import logging
from typing import Optional

from clinic_booking.core import cache_keys
from clinic_booking.core.booking.dispatch import NotificationDispatcher
from clinic_booking.core.booking.errors import (
    BookingValidationError,
    DuplicateAppointment,
    InvalidReference,
    SlotNoLongerAvailable,
    TransientStoreError,
    UnclassifiedBookingError,
)
from clinic_booking.core.booking.models import (
    EDUCATION_LEVELS,
    AppointmentConfirmation,
    AppointmentStatus,
    PatientInfo,
    TimeSlot,
)
from clinic_booking.core.resilience.cache import Cache
from clinic_booking.infra.table_store import (
    APPOINTMENTS,
    TIME_SLOTS,
    ForeignKeyViolation,
    PermissionDenied,
    StoreError,
    StoreUnavailable,
    TableStore,
    UniqueViolation,
    eq,
)

logger = logging.getLogger(__name__)


def _transient_or_unclassified(error: StoreError, action: str):
    if isinstance(error, StoreUnavailable):
        return TransientStoreError()
    return UnclassifiedBookingError(f"Error {action}: {error.message}")


class BookingCoordinator:
    """
    Orchestrates a single booking attempt.

    Args:
        store: Table Store used with the booking credential
        dispatcher: Notification dispatcher (None disables notifications)
        cache: Cache whose slot lists are invalidated after a booking
        trust_unconfirmed_inserts: Continue when the backend refuses to
            read back the inserted appointment. Disable when the booking
            path has its own write credential and every insert must be
            confirmed.
    """

    def __init__(
        self,
        store: TableStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        cache: Optional[Cache] = None,
        trust_unconfirmed_inserts: bool = True,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.cache = cache
        self.trust_unconfirmed_inserts = trust_unconfirmed_inserts

    async def book_appointment(
        self,
        slot_id: str,
        patient: PatientInfo,
        doctor_id: Optional[str] = None,
    ) -> AppointmentConfirmation:
        """Book ``slot_id`` for ``patient``.

        Args:
            slot_id: Time slot the patient picked (possibly from a stale list)
            patient: Patient details
            doctor_id: When given, the slot must belong to this doctor

        Returns:
            AppointmentConfirmation

        Raises:
            BookingValidationError: missing input, before any store call
            SlotNoLongerAvailable: the slot was taken before or during booking
            DuplicateAppointment / InvalidReference: constraint violations
            TransientStoreError: the store could not be reached
            UnclassifiedBookingError: anything else
        """
        slot_id = (slot_id or "").strip()
        patient = self._validate(slot_id, patient)

        slot = await self._recheck_availability(slot_id, doctor_id)
        appointment = await self._create_appointment(slot, patient)
        await self._claim_slot(slot, appointment.get("id"))

        logger.info(
            f"Booked slot {slot.id} for doctor {slot.doctor_id} "
            f"(appointment {appointment.get('id') or 'unconfirmed'})"
        )

        confirmation = AppointmentConfirmation(
            appointment_id=appointment.get("id"),
            slot_id=slot.id,
            doctor_id=slot.doctor_id,
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            status=appointment.get("status", AppointmentStatus.PENDING.value),
        )

        if self.dispatcher is not None:
            self.dispatcher.dispatch(
                {
                    **appointment,
                    "date": slot.date,
                    "start_time": slot.start_time,
                    "end_time": slot.end_time,
                },
                slot.doctor_id,
            )
            confirmation.notification_scheduled = True

        if self.cache is not None:
            await self.cache.clear(cache_keys.slots_key(slot.doctor_id, slot.date))

        return confirmation

    def _validate(self, slot_id: str, patient: PatientInfo) -> PatientInfo:
        if not slot_id:
            raise BookingValidationError("Please select a time slot", fields=["slot_id"])

        missing = patient.missing_fields()
        if missing:
            raise BookingValidationError(
                f"Missing required fields: {', '.join(missing)}",
                fields=missing,
            )

        patient = patient.normalized()
        if "@" not in patient.email:
            raise BookingValidationError(
                "Please enter a valid email address",
                fields=["email"],
            )
        if (
            patient.education_level is not None
            and patient.education_level not in EDUCATION_LEVELS
        ):
            raise BookingValidationError(
                "Please choose an education level from the list",
                fields=["education_level"],
            )
        return patient

    async def _recheck_availability(
        self,
        slot_id: str,
        doctor_id: Optional[str],
    ) -> TimeSlot:
        filters = [eq("id", slot_id), eq("is_available", True)]
        if doctor_id:
            filters.append(eq("doctor_id", doctor_id))

        try:
            rows = await self.store.select(TIME_SLOTS, filters, limit=1)
        except StoreError as e:
            logger.error(f"Availability check for slot {slot_id} failed: {e}")
            raise _transient_or_unclassified(e, "checking slot availability") from e

        if not rows:
            logger.warning(f"Slot {slot_id} no longer available at re-check")
            raise SlotNoLongerAvailable()

        return TimeSlot.from_dict(rows[0])

    async def _create_appointment(self, slot: TimeSlot, patient: PatientInfo) -> dict:
        record = {
            "doctor_id": slot.doctor_id,
            "time_slot_id": slot.id,
            "patient_first_name": patient.first_name,
            "patient_last_name": patient.last_name,
            "patient_email": patient.email,
            "patient_phone": patient.phone,
            "education_level": patient.education_level,
            "status": AppointmentStatus.PENDING.value,
        }

        try:
            return await self.store.insert(APPOINTMENTS, record)
        except PermissionDenied as e:
            if not self.trust_unconfirmed_inserts:
                logger.error(f"Appointment insert for slot {slot.id} denied: {e}")
                raise UnclassifiedBookingError(
                    "The booking could not be confirmed. Please contact the clinic."
                ) from e
            # Row-level security hides the new row from the anon role;
            # the insert most likely went through.
            logger.warning(
                f"Appointment for slot {slot.id} could not be read back "
                f"({e.message}); continuing without an id"
            )
            return dict(record)
        except UniqueViolation as e:
            logger.warning(f"Duplicate appointment for slot {slot.id}: {e}")
            raise DuplicateAppointment() from e
        except ForeignKeyViolation as e:
            logger.warning(f"Appointment for slot {slot.id} references missing rows: {e}")
            raise InvalidReference() from e
        except StoreError as e:
            logger.error(f"Appointment insert for slot {slot.id} failed: {e}")
            raise _transient_or_unclassified(e, "creating appointment") from e

    async def _claim_slot(self, slot: TimeSlot, appointment_id: Optional[str]) -> None:
        try:
            claimed = await self.store.update(
                TIME_SLOTS,
                {"is_available": False},
                [eq("id", slot.id), eq("is_available", True)],
            )
        except StoreError as e:
            logger.error(f"Claiming slot {slot.id} failed: {e}")
            await self._release_appointment(appointment_id)
            raise _transient_or_unclassified(e, "reserving the time slot") from e

        if claimed == 0:
            logger.warning(f"Lost the race for slot {slot.id}")
            await self._release_appointment(appointment_id)
            raise SlotNoLongerAvailable()

    async def _release_appointment(self, appointment_id: Optional[str]) -> None:
        """Best-effort cancel of our own pending appointment after a failed claim.

        Leftovers (unknown id, or this update failing) are picked up by
        AppointmentReconciler.
        """
        if not appointment_id:
            return
        try:
            await self.store.update(
                APPOINTMENTS,
                {"status": AppointmentStatus.CANCELLED.value},
                [eq("id", appointment_id), eq("status", AppointmentStatus.PENDING.value)],
            )
        except StoreError as e:
            logger.error(f"Could not cancel orphaned appointment {appointment_id}: {e}")
