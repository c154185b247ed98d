"""
Notification Service

Emails every admin when a patient books an appointment, through the
EmailJS REST API (one request per recipient, sent concurrently).

Admin recipients come from the ADMIN_EMAILS setting first; the
admin_users table is only a fallback because row-level security usually
hides it from the anon key.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

import httpx

from clinic_booking.config import get_settings
from clinic_booking.infra.table_store import ADMIN_USERS, StoreError, TableStore

logger = logging.getLogger(__name__)


class NotifierFailure(Exception):
    """Sending a notification failed. Logged by callers, never shown to patients."""


@dataclass
class NotificationResult:
    """Outcome of notifying admins about one appointment."""

    success: bool
    sent_count: int = 0
    failed_count: int = 0
    total: int = 0
    error: Optional[str] = None


class Notifier(ABC):
    """Sends booking notifications to admins."""

    @abstractmethod
    async def notify(self, appointment: dict, doctor: dict) -> NotificationResult:
        """Notify admins about a new appointment.

        ``appointment["id"]`` may be missing when the booking credential
        could not read the new row back.
        """

    async def close(self) -> None:
        """Release underlying resources."""


def _format_long_date(value: Optional[str]) -> str:
    """'2024-01-15' -> 'Monday, January 15, 2024'."""
    try:
        day = date.fromisoformat(value) if value else date.today()
    except ValueError:
        return value or ""
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


def build_template_params(appointment: dict, doctor: dict, admin_emails: list[str]) -> dict:
    """Render the EmailJS template parameters for one booking."""
    booked_at = datetime.now()
    return {
        "to_email": ",".join(admin_emails),
        "admin_emails": ", ".join(admin_emails),
        "patient_name": (
            f"{appointment.get('patient_first_name', '')} "
            f"{appointment.get('patient_last_name', '')}"
        ).strip(),
        "patient_email": appointment.get("patient_email", ""),
        "patient_phone": appointment.get("patient_phone", ""),
        "doctor_name": f"Dr. {doctor.get('first_name', '')} {doctor.get('last_name', '')}",
        "doctor_specialty": doctor.get("specialty") or "N/A",
        "appointment_date": _format_long_date(appointment.get("date")),
        "appointment_time": (
            f"{appointment.get('start_time', '')} - {appointment.get('end_time', '')}"
        ),
        "education_level": appointment.get("education_level") or "Not specified",
        "appointment_id": appointment.get("id") or "N/A",
        "booking_date": f"{booked_at:%B} {booked_at.day}, {booked_at.year} {booked_at:%I:%M %p}",
    }


class EmailJSNotifier(Notifier):
    """
    Notifier backed by EmailJS.

    POST {emailjs_api_url}
        {"service_id", "template_id", "user_id", "accessToken"?, "template_params"}
    """

    def __init__(
        self,
        store: Optional[TableStore] = None,
        service_id: Optional[str] = None,
        template_id: Optional[str] = None,
        public_key: Optional[str] = None,
        private_key: Optional[str] = None,
        admin_emails: Optional[list[str]] = None,
        api_url: Optional[str] = None,
        timeout: float = 15.0,
    ):
        """Initialize notifier.

        Args:
            store: Table Store used to look up admin_users as a fallback
            service_id / template_id / public_key: EmailJS identifiers
            private_key: Optional EmailJS access token for server-side sends
            admin_emails: Explicit recipients (defaults to settings)
            api_url: EmailJS send endpoint
            timeout: Request timeout in seconds
        """
        settings = get_settings()
        self.store = store
        self.service_id = service_id or settings.emailjs_service_id
        self.template_id = template_id or settings.emailjs_template_id
        self.public_key = public_key or settings.emailjs_public_key
        self.private_key = private_key or settings.emailjs_private_key
        self.admin_emails = (
            admin_emails if admin_emails is not None else settings.admin_emails_list
        )
        self.api_url = api_url or settings.emailjs_api_url
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.service_id and self.template_id and self.public_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_admin_emails(self) -> list[str]:
        """Admin recipients: configured list first, then the admin_users table."""
        if self.admin_emails:
            return list(self.admin_emails)

        if self.store is None:
            return []

        try:
            rows = await self.store.select(ADMIN_USERS, columns="email")
        except StoreError as e:
            logger.warning(
                f"Could not fetch admin emails from the database "
                f"(row-level security may be blocking): {e}"
            )
            return []

        return [row["email"] for row in rows if row.get("email")]

    async def send_email(self, to: str, template_params: dict) -> None:
        """Send one templated email.

        Raises:
            NotifierFailure: if EmailJS rejects the request or is unreachable
        """
        client = await self._get_client()

        payload: dict = {
            "service_id": self.service_id,
            "template_id": self.template_id,
            "user_id": self.public_key,
            "template_params": {**template_params, "to_email": to, "to_name": "Admin"},
        }
        if self.private_key:
            payload["accessToken"] = self.private_key

        try:
            response = await client.post(self.api_url, json=payload)
        except httpx.HTTPError as e:
            raise NotifierFailure(f"EmailJS unreachable: {e}") from e

        if response.status_code != 200:
            raise NotifierFailure(
                f"EmailJS returned {response.status_code}: {response.text}"
            )

    async def notify(self, appointment: dict, doctor: dict) -> NotificationResult:
        """Email every admin about a new appointment."""
        if not self.configured:
            logger.warning(
                "EmailJS is not configured; set EMAILJS_SERVICE_ID, "
                "EMAILJS_TEMPLATE_ID and EMAILJS_PUBLIC_KEY to enable notifications"
            )
            return NotificationResult(success=False, error="EmailJS not configured")

        if not appointment or not doctor:
            logger.warning("Missing appointment or doctor data for email notification")
            return NotificationResult(success=False, error="Missing data")

        admin_emails = await self.get_admin_emails()
        if not admin_emails:
            logger.warning(
                "No admin emails found; set ADMIN_EMAILS or make admin_users readable"
            )
            return NotificationResult(success=False, error="No admin emails found")

        logger.info(f"Sending booking notification to {len(admin_emails)} admin(s)")

        params = build_template_params(appointment, doctor, admin_emails)
        results = await asyncio.gather(
            *(self.send_email(email, params) for email in admin_emails),
            return_exceptions=True,
        )

        failed = 0
        for email, result in zip(admin_emails, results):
            if isinstance(result, BaseException):
                failed += 1
                logger.error(f"Failed to send email to {email}: {result}")

        sent = len(admin_emails) - failed
        if sent:
            logger.info(f"Sent {sent} booking notification(s)")

        return NotificationResult(
            success=sent > 0,
            sent_count=sent,
            failed_count=failed,
            total=len(admin_emails),
            error=None if sent else "All notifications failed",
        )
