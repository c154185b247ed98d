"""
Reconciliation of orphaned pending appointments.

A booking can leave a pending appointment behind when its slot claim
failed and the coordinator could not cancel it (unknown id after a
permission-ambiguous insert, or the cancel itself failed). The sweep:

- cancels pending appointments older than the grace period whose slot
  is still available (the claim never happened)
- logs slots claimed by more than one active appointment for admin review
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from clinic_booking.core.booking.models import (
    ACTIVE_STATUSES,
    AppointmentStatus,
    ReconciliationReport,
)
from clinic_booking.infra.table_store import (
    APPOINTMENTS,
    TIME_SLOTS,
    StoreError,
    TableStore,
    eq,
    in_,
    lt,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class AppointmentReconciler:
    """Periodic sweep keeping appointments and slot availability consistent."""

    def __init__(
        self,
        store: TableStore,
        grace_period: float = 600.0,
        interval: float = 300.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.grace_period = grace_period
        self.interval = interval
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> ReconciliationReport:
        """Run a single sweep and report what it did."""
        report = ReconciliationReport()
        cutoff = (self._clock() - timedelta(seconds=self.grace_period)).isoformat()

        pending = await self.store.select(
            APPOINTMENTS,
            [eq("status", AppointmentStatus.PENDING.value), lt("created_at", cutoff)],
            columns="id,time_slot_id,created_at",
        )
        report.examined = len(pending)
        if not pending:
            return report

        slot_ids = sorted({row["time_slot_id"] for row in pending})
        slots = await self.store.select(
            TIME_SLOTS,
            [in_("id", slot_ids)],
            columns="id,is_available",
        )
        available = {row["id"] for row in slots if row.get("is_available")}

        for row in pending:
            if row["time_slot_id"] not in available:
                continue
            cancelled = await self.store.update(
                APPOINTMENTS,
                {"status": AppointmentStatus.CANCELLED.value},
                [eq("id", row["id"]), eq("status", AppointmentStatus.PENDING.value)],
            )
            if cancelled:
                report.cancelled.append(row["id"])
                logger.info(
                    f"Cancelled orphaned appointment {row['id']} "
                    f"(slot {row['time_slot_id']} was never claimed)"
                )

        claimed_ids = [slot_id for slot_id in slot_ids if slot_id not in available]
        if claimed_ids:
            active = await self.store.select(
                APPOINTMENTS,
                [in_("time_slot_id", claimed_ids), in_("status", ACTIVE_STATUSES)],
                columns="id,time_slot_id",
            )
            by_slot: dict[str, list[str]] = defaultdict(list)
            for row in active:
                by_slot[row["time_slot_id"]].append(row["id"])
            for slot_id, appointment_ids in by_slot.items():
                if len(appointment_ids) > 1:
                    report.conflicts[slot_id] = appointment_ids
                    logger.warning(
                        f"Slot {slot_id} is claimed by {len(appointment_ids)} active "
                        f"appointments ({', '.join(appointment_ids)}); admin review needed"
                    )

        return report

    async def _loop(self) -> None:
        while True:
            try:
                report = await self.run_once()
                if report.cancelled or report.conflicts:
                    logger.info(
                        f"Reconciliation: examined {report.examined}, "
                        f"cancelled {len(report.cancelled)}, "
                        f"conflicts {len(report.conflicts)}"
                    )
            except StoreError as e:
                logger.error(f"Reconciliation sweep failed: {e}")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        """Start the periodic sweep on the running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info(f"Appointment reconciler started (every {self.interval}s)")

    async def stop(self) -> None:
        """Cancel the periodic sweep."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Appointment reconciler stopped")
