"""
Admin Endpoints.

Doctor, time slot and appointment management plus dashboard counts.
Every route requires a bearer token belonging to a user listed in
admin_users (see get_admin_service).
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from clinic_booking.api.dependencies import get_admin_service
from clinic_booking.core.admin import AdminService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


class DoctorCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    specialty: Optional[str] = None
    description: Optional[str] = None
    profile_picture_url: Optional[str] = None


class DoctorUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    specialty: Optional[str] = None
    description: Optional[str] = None
    profile_picture_url: Optional[str] = None


class TimeSlotCreate(BaseModel):
    doctor_id: str
    date: str = Field(..., examples=["2024-01-15"])
    start_time: str = Field(..., examples=["09:00"])
    end_time: str = Field(..., examples=["09:30"])


class StatusUpdate(BaseModel):
    status: Literal["pending", "confirmed", "cancelled"]


# === Dashboard ===

@router.get("/stats", summary="Dashboard counts")
async def dashboard_stats(admin: AdminService = Depends(get_admin_service)) -> dict:
    stats = await admin.dashboard_stats()
    return stats.to_dict()


# === Doctors ===

@router.get("/doctors", summary="List doctors")
async def list_doctors(admin: AdminService = Depends(get_admin_service)) -> list[dict]:
    return await admin.list_doctors()


@router.post("/doctors", status_code=status.HTTP_201_CREATED, summary="Add a doctor")
async def create_doctor(
    body: DoctorCreate,
    admin: AdminService = Depends(get_admin_service),
) -> dict:
    return await admin.create_doctor(body.model_dump())


@router.patch(
    "/doctors/{doctor_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Update a doctor",
)
async def update_doctor(
    doctor_id: str,
    body: DoctorUpdate,
    admin: AdminService = Depends(get_admin_service),
) -> None:
    await admin.update_doctor(doctor_id, body.model_dump(exclude_unset=True))


@router.delete(
    "/doctors/{doctor_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a doctor",
)
async def delete_doctor(
    doctor_id: str,
    admin: AdminService = Depends(get_admin_service),
) -> None:
    await admin.delete_doctor(doctor_id)


# === Time slots ===

@router.get("/time-slots", summary="List a doctor's time slots")
async def list_time_slots(
    doctor_id: str = Query(...),
    admin: AdminService = Depends(get_admin_service),
) -> list[dict]:
    return await admin.list_time_slots(doctor_id)


@router.post("/time-slots", status_code=status.HTTP_201_CREATED, summary="Add a time slot")
async def create_time_slot(
    body: TimeSlotCreate,
    admin: AdminService = Depends(get_admin_service),
) -> dict:
    return await admin.create_time_slot(
        doctor_id=body.doctor_id,
        day=body.date,
        start_time=body.start_time,
        end_time=body.end_time,
    )


@router.post("/time-slots/{slot_id}/toggle", summary="Toggle slot availability")
async def toggle_availability(
    slot_id: str,
    admin: AdminService = Depends(get_admin_service),
) -> dict:
    is_available = await admin.toggle_availability(slot_id)
    return {"id": slot_id, "is_available": is_available}


@router.delete(
    "/time-slots/{slot_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a time slot",
)
async def delete_time_slot(
    slot_id: str,
    admin: AdminService = Depends(get_admin_service),
) -> None:
    await admin.delete_time_slot(slot_id)


# === Appointments ===

@router.get("/appointments", summary="List appointments")
async def list_appointments(
    status_filter: Literal["all", "pending", "confirmed", "cancelled"] = Query(
        default="all",
        alias="status",
    ),
    admin: AdminService = Depends(get_admin_service),
) -> list[dict]:
    return await admin.list_appointments(status_filter)


@router.patch(
    "/appointments/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Update appointment status",
)
async def update_appointment_status(
    appointment_id: str,
    body: StatusUpdate,
    admin: AdminService = Depends(get_admin_service),
) -> None:
    await admin.update_appointment_status(appointment_id, body.status)


@router.delete(
    "/appointments/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an appointment",
)
async def delete_appointment(
    appointment_id: str,
    admin: AdminService = Depends(get_admin_service),
) -> None:
    await admin.delete_appointment(appointment_id)


@router.get("/cache", summary="Cache statistics")
async def cache_stats(admin: AdminService = Depends(get_admin_service)) -> dict:
    if admin.cache is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cache disabled")
    stats = await admin.cache.stats()
    return stats.to_dict()


@router.delete(
    "/cache",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear every cached listing",
)
async def clear_cache(admin: AdminService = Depends(get_admin_service)) -> None:
    if admin.cache is not None:
        await admin.cache.clear_all()
        logger.info("Cache cleared by admin")
