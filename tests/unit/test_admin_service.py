"""Tests for admin operations."""

import pytest

from clinic_booking.core.admin import AdminOperationError, AdminService
from clinic_booking.core.resilience.cache import Cache, MemoryCacheBackend
from clinic_booking.infra.table_store import (
    APPOINTMENTS,
    DOCTORS,
    TIME_SLOTS,
    RecordNotFound,
)


class TestAdminService:
    """Test AdminService."""

    @pytest.fixture
    def cache(self):
        return Cache(MemoryCacheBackend())

    @pytest.fixture
    def admin(self, store, cache):
        return AdminService(store, cache=cache)

    @pytest.fixture
    def booked(self, store):
        """slot-1 held by a pending appointment."""
        store.rows(TIME_SLOTS)[0]["is_available"] = False
        store.rows(APPOINTMENTS).append({
            "id": "appt-1",
            "doctor_id": "doc-1",
            "time_slot_id": "slot-1",
            "status": "pending",
            "created_at": "2024-01-10T00:00:00+00:00",
        })
        return store

    # === Admin users ===

    @pytest.mark.asyncio
    async def test_is_admin(self, admin):
        assert await admin.is_admin("admin@clinic.com")
        assert not await admin.is_admin("patient@example.com")
        assert not await admin.is_admin(None)

    # === Doctors ===

    @pytest.mark.asyncio
    async def test_create_doctor_invalidates_list(self, admin, store, cache):
        await cache.set("doctors_list", [])

        doctor = await admin.create_doctor({"first_name": "Ben", "last_name": "Ng", "extra": 1})

        assert doctor["first_name"] == "Ben"
        assert "extra" not in store.rows(DOCTORS)[-1]
        assert await cache.get("doctors_list") is None

    @pytest.mark.asyncio
    async def test_create_doctor_requires_names(self, admin):
        with pytest.raises(AdminOperationError):
            await admin.create_doctor({"first_name": " ", "last_name": "Ng"})

    @pytest.mark.asyncio
    async def test_update_doctor(self, admin, store, cache):
        await cache.set("doctor_doc-1", [{"id": "doc-1"}])

        await admin.update_doctor("doc-1", {"specialty": "Neurology"})

        assert store.rows(DOCTORS)[0]["specialty"] == "Neurology"
        assert await cache.get("doctor_doc-1") is None

    @pytest.mark.asyncio
    async def test_update_missing_doctor(self, admin):
        with pytest.raises(RecordNotFound):
            await admin.update_doctor("doc-404", {"specialty": "Neurology"})

    @pytest.mark.asyncio
    async def test_update_doctor_needs_fields(self, admin):
        with pytest.raises(AdminOperationError):
            await admin.update_doctor("doc-1", {})

    @pytest.mark.asyncio
    async def test_delete_doctor(self, admin, store):
        await admin.delete_doctor("doc-1")

        assert store.rows(DOCTORS) == []

    # === Time slots ===

    @pytest.mark.asyncio
    async def test_create_time_slot(self, admin, store):
        slot = await admin.create_time_slot("doc-1", "2030-02-01", "10:00", "10:30")

        assert slot["is_available"] is True
        assert slot["date"] == "2030-02-01"
        assert len(store.rows(TIME_SLOTS)) == 2

    @pytest.mark.asyncio
    async def test_create_time_slot_rejects_inverted_range(self, admin):
        with pytest.raises(AdminOperationError, match="after start"):
            await admin.create_time_slot("doc-1", "2030-02-01", "10:30", "10:00")

    @pytest.mark.asyncio
    async def test_create_time_slot_rejects_bad_date(self, admin):
        with pytest.raises(AdminOperationError, match="Invalid date"):
            await admin.create_time_slot("doc-1", "02/01/2030", "10:00", "10:30")

    @pytest.mark.asyncio
    async def test_delete_slot_with_active_appointment(self, admin, booked):
        with pytest.raises(AdminOperationError):
            await admin.delete_time_slot("slot-1")

        assert len(booked.rows(TIME_SLOTS)) == 1

    @pytest.mark.asyncio
    async def test_delete_slot_with_cancelled_appointment(self, admin, booked):
        booked.rows(APPOINTMENTS)[0]["status"] = "cancelled"

        await admin.delete_time_slot("slot-1")

        assert booked.rows(TIME_SLOTS) == []

    @pytest.mark.asyncio
    async def test_toggle_availability(self, admin, store, cache):
        await cache.set("slots_doc-1_2030-01-15", [{"id": "slot-1"}])

        assert await admin.toggle_availability("slot-1") is False
        assert store.rows(TIME_SLOTS)[0]["is_available"] is False
        assert await cache.get("slots_doc-1_2030-01-15") is None

        assert await admin.toggle_availability("slot-1") is True

    # === Appointments ===

    @pytest.mark.asyncio
    async def test_cancel_reopens_slot(self, admin, booked):
        await admin.update_appointment_status("appt-1", "cancelled")

        assert booked.rows(APPOINTMENTS)[0]["status"] == "cancelled"
        assert booked.rows(TIME_SLOTS)[0]["is_available"] is True

    @pytest.mark.asyncio
    async def test_confirm_keeps_slot_claimed(self, admin, booked):
        await admin.update_appointment_status("appt-1", "confirmed")

        assert booked.rows(APPOINTMENTS)[0]["status"] == "confirmed"
        assert booked.rows(TIME_SLOTS)[0]["is_available"] is False

    @pytest.mark.asyncio
    async def test_cancelled_cannot_be_reactivated_after_rebooking(self, admin, booked):
        """Re-confirming a cancelled appointment would double-book its slot."""
        await admin.update_appointment_status("appt-1", "cancelled")
        booked.rows(TIME_SLOTS)[0]["is_available"] = False
        booked.rows(APPOINTMENTS).append({
            "id": "appt-2",
            "doctor_id": "doc-1",
            "time_slot_id": "slot-1",
            "status": "pending",
            "created_at": "2024-01-11T00:00:00+00:00",
        })

        with pytest.raises(AdminOperationError, match="cannot be reopened"):
            await admin.update_appointment_status("appt-1", "confirmed")

        active = [
            a["id"] for a in booked.rows(APPOINTMENTS)
            if a["time_slot_id"] == "slot-1" and a["status"] != "cancelled"
        ]
        assert active == ["appt-2"]

    @pytest.mark.asyncio
    async def test_cancelled_cannot_return_to_pending(self, admin, booked):
        await admin.update_appointment_status("appt-1", "cancelled")

        with pytest.raises(AdminOperationError):
            await admin.update_appointment_status("appt-1", "pending")

        assert booked.rows(APPOINTMENTS)[0]["status"] == "cancelled"
        assert booked.rows(TIME_SLOTS)[0]["is_available"] is True

    @pytest.mark.asyncio
    async def test_cancelling_twice_is_a_no_op(self, admin, booked):
        await admin.update_appointment_status("appt-1", "cancelled")
        booked.rows(TIME_SLOTS)[0]["is_available"] = False

        await admin.update_appointment_status("appt-1", "cancelled")

        assert booked.rows(TIME_SLOTS)[0]["is_available"] is False

    @pytest.mark.asyncio
    async def test_concurrent_cancel_wins(self, admin, booked):
        """A confirm racing a cancel must not overwrite the cancellation."""
        original_select_one = booked.select_one

        async def select_then_cancel(*args, **kwargs):
            row = await original_select_one(*args, **kwargs)
            booked.rows(APPOINTMENTS)[0]["status"] = "cancelled"
            return row

        booked.select_one = select_then_cancel

        with pytest.raises(AdminOperationError, match="in the meantime"):
            await admin.update_appointment_status("appt-1", "confirmed")

        assert booked.rows(APPOINTMENTS)[0]["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_invalid_status(self, admin, booked):
        with pytest.raises(ValueError):
            await admin.update_appointment_status("appt-1", "done")

    @pytest.mark.asyncio
    async def test_delete_appointment_reopens_slot(self, admin, booked):
        await admin.delete_appointment("appt-1")

        assert booked.rows(APPOINTMENTS) == []
        assert booked.rows(TIME_SLOTS)[0]["is_available"] is True

    @pytest.mark.asyncio
    async def test_delete_cancelled_appointment_leaves_slot(self, admin, booked):
        """The slot of a cancelled appointment may already belong to someone else."""
        booked.rows(APPOINTMENTS)[0]["status"] = "cancelled"

        await admin.delete_appointment("appt-1")

        assert booked.rows(TIME_SLOTS)[0]["is_available"] is False

    @pytest.mark.asyncio
    async def test_list_appointments_by_status(self, admin, booked):
        assert len(await admin.list_appointments("pending")) == 1
        assert await admin.list_appointments("confirmed") == []
        assert len(await admin.list_appointments("all")) == 1

    # === Dashboard ===

    @pytest.mark.asyncio
    async def test_dashboard_stats(self, admin, booked):
        stats = await admin.dashboard_stats()

        assert stats.to_dict() == {
            "doctors": 1,
            "appointments": 1,
            "pending_appointments": 1,
            "available_slots": 0,
        }
