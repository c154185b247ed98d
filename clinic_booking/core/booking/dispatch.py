"""
Fire-and-forget booking notifications.

The dispatcher starts one task per booking and never lets the caller wait
on it. Task references are kept until completion so the event loop cannot
drop them, and drain() lets shutdown flush what is still in flight.
"""

import asyncio
import logging
from typing import Optional

from clinic_booking.infra.notifications import NotificationResult, Notifier
from clinic_booking.infra.table_store import DOCTORS, StoreError, TableStore, eq

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Runs Notifier.notify detached from the booking that triggered it."""

    def __init__(self, notifier: Notifier, store: TableStore):
        self.notifier = notifier
        self.store = store
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, appointment: dict, doctor_id: str) -> asyncio.Task:
        """Schedule a notification and return immediately."""
        task = asyncio.create_task(self._run(appointment, doctor_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, appointment: dict, doctor_id: str) -> Optional[NotificationResult]:
        label = appointment.get("id") or "unconfirmed appointment"
        try:
            doctor = await self.store.select_one(DOCTORS, [eq("id", doctor_id)])
        except StoreError as e:
            logger.error(f"Notification for {label} skipped, doctor lookup failed: {e}")
            return None

        try:
            result = await self.notifier.notify(appointment, doctor)
        except Exception as e:
            logger.error(f"Notification for {label} failed: {e}", exc_info=True)
            return None

        if not result.success:
            logger.warning(f"Notification for {label} not delivered: {result.error}")
        return result

    async def drain(self) -> None:
        """Wait for in-flight notifications."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
