"""
Doctor Directory Endpoints.

Public, unauthenticated listing of doctors and their available slots.
Responses say whether the data came from a stale cache so the page can
show a "may be out of date" notice.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from clinic_booking.api.dependencies import get_services
from clinic_booking.core.resilience.read_through import ReadResult
from clinic_booking.infra.table_store import RecordNotFound, StoreError
from clinic_booking.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/doctors", tags=["Doctors"])


class ListResponse(BaseModel):
    """Listing payload with cache provenance."""

    data: Any = Field(..., description="Rows returned by the directory")
    source: str = Field(..., description="cache, network or stale_cache")
    stale: bool = Field(default=False, description="True when served from expired cache")
    notice: Optional[str] = Field(default=None, description="Message to show when stale")


def _to_response(result: ReadResult) -> ListResponse:
    return ListResponse(
        data=result.data,
        source=result.source.value,
        stale=result.stale,
        notice=result.notice,
    )


def _unavailable(what: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Error loading {what}. Please try again.",
    )


@router.get(
    "",
    response_model=ListResponse,
    summary="List doctors",
)
async def list_doctors(services: Services = Depends(get_services)) -> ListResponse:
    """All doctors, newest first."""
    try:
        result = await services.directory.list_doctors()
    except (StoreError, TimeoutError) as e:
        logger.error(f"Error fetching doctors: {e}")
        raise _unavailable("doctors")
    return _to_response(result)


@router.get(
    "/{doctor_id}",
    response_model=ListResponse,
    summary="Get a doctor",
    responses={404: {"description": "Doctor not found"}},
)
async def get_doctor(
    doctor_id: str,
    services: Services = Depends(get_services),
) -> ListResponse:
    """One doctor's profile."""
    try:
        result = await services.directory.get_doctor(doctor_id)
    except RecordNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found",
        )
    except (StoreError, TimeoutError) as e:
        logger.error(f"Error fetching doctor {doctor_id}: {e}")
        raise _unavailable("doctor information")
    return _to_response(result)


@router.get(
    "/{doctor_id}/slots",
    response_model=ListResponse,
    summary="Available time slots",
    description="Available slots for a doctor on a date, ordered by start time.",
)
async def available_slots(
    doctor_id: str,
    date: str = Query(..., description="Date as YYYY-MM-DD", examples=["2024-01-15"]),
    services: Services = Depends(get_services),
) -> ListResponse:
    """Slots a patient can still pick."""
    try:
        result = await services.directory.available_slots(doctor_id, date)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    except (StoreError, TimeoutError) as e:
        logger.error(f"Error fetching slots for doctor {doctor_id}: {e}")
        raise _unavailable("available slots")
    return _to_response(result)
