"""Booking domain models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

EDUCATION_LEVELS = (
    "High School",
    "Bachelor's Degree",
    "Master's Degree",
    "Doctorate",
    "Other",
)


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)


@dataclass
class Doctor:
    """Doctor row."""

    id: str
    first_name: str
    last_name: str
    specialty: Optional[str] = None
    description: Optional[str] = None
    profile_picture_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Doctor":
        """Create from a store row."""
        return cls(
            id=str(data.get("id", "")),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            specialty=data.get("specialty"),
            description=data.get("description"),
            profile_picture_url=data.get("profile_picture_url"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "specialty": self.specialty,
            "description": self.description,
            "profile_picture_url": self.profile_picture_url,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class TimeSlot:
    """Bookable slot of a doctor's time."""

    id: str
    doctor_id: str
    date: str  # YYYY-MM-DD
    start_time: str  # HH:MM[:SS]
    end_time: str
    is_available: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "TimeSlot":
        """Create from a store row."""
        return cls(
            id=str(data.get("id", "")),
            doctor_id=str(data.get("doctor_id", "")),
            date=data.get("date", ""),
            start_time=data.get("start_time", ""),
            end_time=data.get("end_time", ""),
            is_available=bool(data.get("is_available", False)),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "doctor_id": self.doctor_id,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "is_available": self.is_available,
        }


@dataclass
class PatientInfo:
    """Patient details captured by the booking form."""

    first_name: str
    last_name: str
    email: str
    phone: str
    education_level: Optional[str] = None

    def normalized(self) -> "PatientInfo":
        """Copy with surrounding whitespace stripped and blanks as None."""
        education = (self.education_level or "").strip()
        return PatientInfo(
            first_name=(self.first_name or "").strip(),
            last_name=(self.last_name or "").strip(),
            email=(self.email or "").strip(),
            phone=(self.phone or "").strip(),
            education_level=education or None,
        )

    def missing_fields(self) -> list[str]:
        """Names of required fields that are empty after trimming."""
        patient = self.normalized()
        return [
            name
            for name in ("first_name", "last_name", "email", "phone")
            if not getattr(patient, name)
        ]


@dataclass
class AppointmentConfirmation:
    """What a successful booking returns to the caller.

    ``appointment_id`` is None when the backend accepted the insert but
    row-level security hid the new row from the booking credential.
    """

    slot_id: str
    doctor_id: str
    date: str
    start_time: str
    end_time: str
    status: str = AppointmentStatus.PENDING.value
    appointment_id: Optional[str] = None
    notification_scheduled: bool = False

    @property
    def confirmed_read_back(self) -> bool:
        return self.appointment_id is not None

    def to_dict(self) -> dict:
        return {
            "appointment_id": self.appointment_id,
            "slot_id": self.slot_id,
            "doctor_id": self.doctor_id,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status,
            "confirmed_read_back": self.confirmed_read_back,
            "notification_scheduled": self.notification_scheduled,
        }


@dataclass
class ReconciliationReport:
    """Outcome of one reconciliation sweep."""

    examined: int = 0
    cancelled: list[str] = field(default_factory=list)
    conflicts: dict[str, list[str]] = field(default_factory=dict)
