"""
Booking Endpoint.

POST /bookings runs the booking transaction. Failures map to status
codes the booking page can act on: 409 means "pick another slot", 503
means "try again shortly".
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from clinic_booking.api.dependencies import get_services
from clinic_booking.core.booking.models import PatientInfo
from clinic_booking.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


class BookingRequest(BaseModel):
    """Booking form submission."""

    slot_id: str = Field(..., description="Time slot picked by the patient")
    doctor_id: Optional[str] = Field(
        default=None,
        description="Doctor the slot must belong to",
    )
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    email: str = Field(..., max_length=255, examples=["jane@example.com"])
    phone: str = Field(..., max_length=50)
    education_level: Optional[str] = Field(
        default=None,
        examples=["Bachelor's Degree"],
    )


class BookingResponse(BaseModel):
    """Successful booking."""

    message: str
    appointment_id: Optional[str] = None
    slot_id: str
    doctor_id: str
    date: str
    start_time: str
    end_time: str
    status: str
    confirmed_read_back: bool


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment",
    responses={
        409: {"model": ErrorResponse, "description": "Slot taken or duplicate"},
        422: {"model": ErrorResponse, "description": "Invalid input"},
        503: {"model": ErrorResponse, "description": "Booking system unreachable"},
    },
)
async def create_booking(
    request: BookingRequest,
    services: Services = Depends(get_services),
) -> BookingResponse:
    """
    Book the requested slot.

    BookingError subclasses propagate to the handler registered in
    main.py, which turns them into JSON error bodies.
    """
    confirmation = await services.coordinator.book_appointment(
        slot_id=request.slot_id,
        doctor_id=request.doctor_id,
        patient=PatientInfo(
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            phone=request.phone,
            education_level=request.education_level,
        ),
    )

    return BookingResponse(
        message="Appointment booked successfully!",
        appointment_id=confirmation.appointment_id,
        slot_id=confirmation.slot_id,
        doctor_id=confirmation.doctor_id,
        date=confirmation.date,
        start_time=confirmation.start_time,
        end_time=confirmation.end_time,
        status=confirmation.status,
        confirmed_read_back=confirmation.confirmed_read_back,
    )
