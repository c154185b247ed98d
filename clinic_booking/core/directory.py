"""
Public doctor directory.

Read paths for the patient-facing pages. Everything goes through the
read-through loader, so a slow or unavailable backend is masked by cached
(and, as a last resort, stale) data.
"""

import logging
from datetime import date, timedelta
from typing import Callable, Optional

from clinic_booking.core import cache_keys
from clinic_booking.core.booking.models import Doctor, TimeSlot
from clinic_booking.core.resilience.read_through import ReadResult, ReadThroughLoader
from clinic_booking.infra.table_store import (
    DOCTORS,
    TIME_SLOTS,
    Order,
    RecordNotFound,
    TableStore,
    eq,
    gte,
)

logger = logging.getLogger(__name__)


class DoctorDirectory:
    """Cached doctor and slot listings."""

    def __init__(
        self,
        store: TableStore,
        loader: ReadThroughLoader,
        doctors_expiration: Optional[float] = None,
        slots_expiration: Optional[float] = None,
        horizon_days: int = 90,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.loader = loader
        self.doctors_expiration = doctors_expiration
        self.slots_expiration = slots_expiration
        self.horizon_days = horizon_days
        self._today = today

    async def list_doctors(self) -> ReadResult[list[dict]]:
        """All doctors, newest first."""

        async def fetch() -> list[dict]:
            rows = await self.store.select(
                DOCTORS,
                order=[Order("created_at", ascending=False)],
            )
            return [Doctor.from_dict(row).to_dict() for row in rows]

        return await self.loader.load(
            cache_keys.DOCTORS_LIST,
            fetch,
            expiration=self.doctors_expiration,
        )

    async def get_doctor(self, doctor_id: str) -> ReadResult[dict]:
        """A single doctor. Raises RecordNotFound if it does not exist."""

        async def fetch() -> list[dict]:
            rows = await self.store.select(DOCTORS, [eq("id", doctor_id)], limit=1)
            return [Doctor.from_dict(row).to_dict() for row in rows]

        result = await self.loader.load(
            cache_keys.doctor_key(doctor_id),
            fetch,
            expiration=self.doctors_expiration,
            cache_if=bool,
        )
        if not result.data:
            raise RecordNotFound(f"Doctor {doctor_id} not found", code="not_found")
        return ReadResult(data=result.data[0], source=result.source)

    def check_bookable_date(self, day: str) -> date:
        """Parse ``day`` and make sure it lies within the booking window.

        Raises:
            ValueError: malformed, in the past, or beyond the horizon
        """
        try:
            parsed = date.fromisoformat(day)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid date: {day!r} (expected YYYY-MM-DD)")

        today = self._today()
        if parsed < today:
            raise ValueError("Date must be today or later")
        if parsed > today + timedelta(days=self.horizon_days):
            raise ValueError(f"Date must be within {self.horizon_days} days")
        return parsed

    async def available_slots(self, doctor_id: str, day: str) -> ReadResult[list[dict]]:
        """Available slots for a doctor on ``day``, ordered by start time."""
        self.check_bookable_date(day)
        today = self._today().isoformat()

        async def fetch() -> list[dict]:
            rows = await self.store.select(
                TIME_SLOTS,
                [
                    eq("doctor_id", doctor_id),
                    eq("date", day),
                    eq("is_available", True),
                    gte("date", today),
                ],
                order=[Order("start_time")],
            )
            return [TimeSlot.from_dict(row).to_dict() for row in rows]

        return await self.loader.load(
            cache_keys.slots_key(doctor_id, day),
            fetch,
            expiration=self.slots_expiration,
        )
