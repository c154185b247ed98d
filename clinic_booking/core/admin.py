"""
Admin service.

CRUD for doctors, time slots and appointments, run with the admin's own
access token so the backend's row-level security decides what is allowed.
Keeps slot availability in step with appointment state: deleting or
cancelling an appointment re-opens its slot, and a slot cannot be deleted
while an active appointment holds it.
"""

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from clinic_booking.core import cache_keys
from clinic_booking.core.booking.models import ACTIVE_STATUSES, AppointmentStatus
from clinic_booking.core.resilience.cache import Cache
from clinic_booking.infra.table_store import (
    ADMIN_USERS,
    APPOINTMENTS,
    DOCTORS,
    TIME_SLOTS,
    Order,
    RecordNotFound,
    TableStore,
    eq,
    in_,
    neq,
)

logger = logging.getLogger(__name__)

DOCTOR_FIELDS = ("first_name", "last_name", "specialty", "description", "profile_picture_url")

APPOINTMENT_SELECT = (
    "*,doctors(first_name,last_name,specialty),time_slots(date,start_time,end_time)"
)


class AdminOperationError(ValueError):
    """An admin request that conflicts with current data or is malformed."""


@dataclass
class DashboardStats:
    """Counts shown on the admin dashboard."""

    doctors: int
    appointments: int
    pending_appointments: int
    available_slots: int

    def to_dict(self) -> dict:
        return {
            "doctors": self.doctors,
            "appointments": self.appointments,
            "pending_appointments": self.pending_appointments,
            "available_slots": self.available_slots,
        }


def _parse_time(value: str) -> time:
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError):
        raise AdminOperationError(f"Invalid time: {value!r}")


class AdminService:
    """Admin operations bound to one admin's store."""

    def __init__(self, store: TableStore, cache: Optional[Cache] = None):
        self.store = store
        self.cache = cache

    async def _invalidate(self, *keys: str) -> None:
        if self.cache is None:
            return
        for key in keys:
            await self.cache.clear(key)

    # === Admin users ===

    async def is_admin(self, email: Optional[str]) -> bool:
        """True when ``email`` is listed in admin_users."""
        if not email:
            return False
        rows = await self.store.select(ADMIN_USERS, [eq("email", email)], columns="email")
        return bool(rows)

    # === Doctors ===

    async def list_doctors(self) -> list[dict]:
        return await self.store.select(DOCTORS, order=[Order("first_name")])

    async def create_doctor(self, data: dict) -> dict:
        record = {k: data.get(k) for k in DOCTOR_FIELDS if k in data}
        if not (record.get("first_name") or "").strip() or not (record.get("last_name") or "").strip():
            raise AdminOperationError("First and last name are required")

        doctor = await self.store.insert(DOCTORS, record)
        await self._invalidate(cache_keys.DOCTORS_LIST)
        logger.info(f"Doctor created: {doctor.get('id')}")
        return doctor

    async def update_doctor(self, doctor_id: str, data: dict) -> None:
        patch = {k: data[k] for k in DOCTOR_FIELDS if k in data}
        if not patch:
            raise AdminOperationError("Nothing to update")

        updated = await self.store.update(DOCTORS, patch, [eq("id", doctor_id)])
        if not updated:
            raise RecordNotFound(f"Doctor {doctor_id} not found", code="not_found")
        await self._invalidate(cache_keys.DOCTORS_LIST, cache_keys.doctor_key(doctor_id))

    async def delete_doctor(self, doctor_id: str) -> None:
        deleted = await self.store.delete(DOCTORS, [eq("id", doctor_id)])
        if not deleted:
            raise RecordNotFound(f"Doctor {doctor_id} not found", code="not_found")
        await self._invalidate(cache_keys.DOCTORS_LIST, cache_keys.doctor_key(doctor_id))
        logger.info(f"Doctor deleted: {doctor_id}")

    # === Time slots ===

    async def list_time_slots(self, doctor_id: str) -> list[dict]:
        return await self.store.select(
            TIME_SLOTS,
            [eq("doctor_id", doctor_id)],
            columns="*,doctors(first_name,last_name)",
            order=[Order("date"), Order("start_time")],
        )

    async def create_time_slot(
        self,
        doctor_id: str,
        day: str,
        start_time: str,
        end_time: str,
    ) -> dict:
        try:
            date.fromisoformat(day)
        except (TypeError, ValueError):
            raise AdminOperationError(f"Invalid date: {day!r}")
        if _parse_time(end_time) <= _parse_time(start_time):
            raise AdminOperationError("End time must be after start time")

        slot = await self.store.insert(TIME_SLOTS, {
            "doctor_id": doctor_id,
            "date": day,
            "start_time": start_time,
            "end_time": end_time,
            "is_available": True,
        })
        await self._invalidate(cache_keys.slots_key(doctor_id, day))
        return slot

    async def _get_slot(self, slot_id: str) -> dict:
        return await self.store.select_one(TIME_SLOTS, [eq("id", slot_id)])

    async def delete_time_slot(self, slot_id: str) -> None:
        """Delete a slot unless an active appointment still holds it."""
        slot = await self._get_slot(slot_id)

        active = await self.store.select(
            APPOINTMENTS,
            [eq("time_slot_id", slot_id), in_("status", ACTIVE_STATUSES)],
            columns="id",
        )
        if active:
            raise AdminOperationError(
                "This time slot has an active appointment; cancel it first"
            )

        await self.store.delete(TIME_SLOTS, [eq("id", slot_id)])
        await self._invalidate(cache_keys.slots_key(slot["doctor_id"], slot["date"]))

    async def toggle_availability(self, slot_id: str) -> bool:
        """Flip is_available and return the new value."""
        slot = await self._get_slot(slot_id)
        new_value = not slot.get("is_available", False)

        await self.store.update(TIME_SLOTS, {"is_available": new_value}, [eq("id", slot_id)])
        await self._invalidate(cache_keys.slots_key(slot["doctor_id"], slot["date"]))
        return new_value

    async def _reopen_slot(self, slot_id: Optional[str]) -> None:
        if not slot_id:
            return
        slot = await self._get_slot(slot_id)
        await self.store.update(TIME_SLOTS, {"is_available": True}, [eq("id", slot_id)])
        await self._invalidate(cache_keys.slots_key(slot["doctor_id"], slot["date"]))

    # === Appointments ===

    async def list_appointments(self, status: Optional[str] = None) -> list[dict]:
        """Appointments with doctor and slot details, newest first."""
        filters = []
        if status and status != "all":
            filters.append(eq("status", AppointmentStatus(status).value))

        return await self.store.select(
            APPOINTMENTS,
            filters,
            columns=APPOINTMENT_SELECT,
            order=[Order("created_at", ascending=False)],
        )

    async def update_appointment_status(self, appointment_id: str, status: str) -> None:
        """Change status; cancelling re-opens the slot.

        Cancellation is final: the slot may already belong to another
        patient, so a cancelled appointment cannot become active again.
        """
        new_status = AppointmentStatus(status)
        appointment = await self.store.select_one(
            APPOINTMENTS,
            [eq("id", appointment_id)],
            columns="id,status,time_slot_id",
        )

        if appointment.get("status") == AppointmentStatus.CANCELLED.value:
            if new_status == AppointmentStatus.CANCELLED:
                return
            raise AdminOperationError(
                "Cancelled appointments cannot be reopened; the patient must book again"
            )

        updated = await self.store.update(
            APPOINTMENTS,
            {"status": new_status.value},
            [eq("id", appointment_id), neq("status", AppointmentStatus.CANCELLED.value)],
        )
        if not updated:
            raise AdminOperationError(
                f"Appointment {appointment_id} was cancelled in the meantime"
            )

        if new_status == AppointmentStatus.CANCELLED:
            await self._reopen_slot(appointment.get("time_slot_id"))

        logger.info(f"Appointment {appointment_id} status -> {new_status.value}")

    async def delete_appointment(self, appointment_id: str) -> None:
        """Delete an appointment and make its slot available again."""
        appointment = await self.store.select_one(
            APPOINTMENTS,
            [eq("id", appointment_id)],
            columns="id,status,time_slot_id",
        )

        await self.store.delete(APPOINTMENTS, [eq("id", appointment_id)])

        if appointment.get("status") != AppointmentStatus.CANCELLED.value:
            await self._reopen_slot(appointment.get("time_slot_id"))
        logger.info(f"Appointment deleted: {appointment_id}")

    # === Dashboard ===

    async def dashboard_stats(self) -> DashboardStats:
        doctors = await self.store.select(DOCTORS, columns="id")
        appointments = await self.store.select(APPOINTMENTS, columns="id,status")
        slots = await self.store.select(
            TIME_SLOTS,
            [eq("is_available", True)],
            columns="id",
        )
        return DashboardStats(
            doctors=len(doctors),
            appointments=len(appointments),
            pending_appointments=sum(
                1 for a in appointments if a.get("status") == AppointmentStatus.PENDING.value
            ),
            available_slots=len(slots),
        )
