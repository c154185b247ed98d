"""Shared fixtures: an in-memory Table Store and a controllable clock."""

import asyncio
import itertools
from datetime import datetime, timezone
from typing import Optional, Sequence

import pytest

from clinic_booking.infra.table_store import (
    Filter,
    Order,
    PermissionDenied,
    TableStore,
)


class FakeTableStore(TableStore):
    """
    Dict-backed Table Store.

    Every call yields to the event loop once before touching data, so
    concurrent bookings interleave the way they would against a real
    backend. Matching and writing happen without a further await, which
    makes update() an atomic conditional write.
    """

    def __init__(self, tables: Optional[dict[str, list[dict]]] = None):
        self.tables: dict[str, list[dict]] = {
            name: [dict(row) for row in rows]
            for name, rows in (tables or {}).items()
        }
        self.calls: list[tuple[str, str]] = []
        self.errors: dict[tuple[str, str], Exception] = {}
        self.hidden_after_insert: set[str] = set()
        self._ids = itertools.count(1)

    def fail(self, method: str, table: str, error: Exception) -> None:
        """Make every ``method`` call on ``table`` raise ``error``."""
        self.errors[(method, table)] = error

    def rows(self, table: str) -> list[dict]:
        return self.tables.setdefault(table, [])

    async def _enter(self, method: str, table: str) -> None:
        self.calls.append((method, table))
        await asyncio.sleep(0)
        error = self.errors.get((method, table))
        if error is not None:
            raise error

    def _matching(self, table: str, filters: Sequence[Filter]) -> list[dict]:
        return [row for row in self.rows(table) if all(f.matches(row) for f in filters)]

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
    ) -> list[dict]:
        await self._enter("select", table)
        rows = [dict(row) for row in self._matching(table, filters)]
        for o in reversed(list(order)):
            rows.sort(key=lambda r: str(r.get(o.column) or ""), reverse=not o.ascending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def insert(self, table: str, record: dict) -> dict:
        await self._enter("insert", table)
        row = {
            "id": f"{table}-{next(self._ids)}",
            "created_at": datetime.now(timezone.utc).isoformat(),
            **record,
        }
        self.rows(table).append(row)
        if table in self.hidden_after_insert:
            raise PermissionDenied(
                f"Inserted {table} row could not be read back",
                code="empty_representation",
            )
        return dict(row)

    async def update(self, table: str, patch: dict, filters: Sequence[Filter]) -> int:
        await self._enter("update", table)
        matched = self._matching(table, filters)
        for row in matched:
            row.update(patch)
        return len(matched)

    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        await self._enter("delete", table)
        matched = self._matching(table, filters)
        self.tables[table] = [row for row in self.rows(table) if row not in matched]
        return len(matched)


class FakeClock:
    """Callable clock returning a settable epoch time in seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def doctor_row():
    return {
        "id": "doc-1",
        "first_name": "Jane",
        "last_name": "Smith",
        "specialty": "Cardiology",
        "description": "Heart specialist",
        "created_at": "2024-01-01T00:00:00+00:00",
    }


@pytest.fixture
def slot_row():
    return {
        "id": "slot-1",
        "doctor_id": "doc-1",
        "date": "2030-01-15",
        "start_time": "09:00",
        "end_time": "09:30",
        "is_available": True,
    }


@pytest.fixture
def store(doctor_row, slot_row):
    return FakeTableStore({
        "doctors": [doctor_row],
        "time_slots": [slot_row],
        "appointments": [],
        "admin_users": [{"id": "admin-1", "email": "admin@clinic.com"}],
    })
