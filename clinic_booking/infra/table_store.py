"""
Table Store interface.

The hosted backend owns every table (doctors, time_slots, appointments,
admin_users). The rest of the application talks to it only through the
narrow interface below, so the backend can be swapped or faked in tests.

Conditional writes are expressed as ordinary filters: an update restricted
by ``eq("is_available", True)`` only touches rows still in that state and
reports how many it changed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence

# Table names
DOCTORS = "doctors"
TIME_SLOTS = "time_slots"
APPOINTMENTS = "appointments"
ADMIN_USERS = "admin_users"

FILTER_OPS = ("eq", "neq", "gt", "gte", "lt", "lte", "in")


class StoreError(Exception):
    """Base error raised by Table Store implementations."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class PermissionDenied(StoreError):
    """Row-level security refused the operation (or its read-back)."""


class UniqueViolation(StoreError):
    """A unique constraint rejected the write."""


class ForeignKeyViolation(StoreError):
    """The record references a row that does not exist."""


class RecordNotFound(StoreError):
    """A single row was expected but none matched."""


class StoreUnavailable(StoreError):
    """Network failure, timeout or server-side outage. Safe to retry reads."""


@dataclass(frozen=True)
class Filter:
    """A single column predicate."""

    column: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, row: dict) -> bool:
        """Evaluate the predicate against a row dict."""
        current = row.get(self.column)
        if self.op == "eq":
            return current == self.value
        if self.op == "neq":
            return current != self.value
        if self.op == "in":
            return current in self.value
        if current is None:
            return False
        if self.op == "gt":
            return current > self.value
        if self.op == "gte":
            return current >= self.value
        if self.op == "lt":
            return current < self.value
        return current <= self.value


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lt(column: str, value: Any) -> Filter:
    return Filter(column, "lt", value)


def in_(column: str, values: Sequence[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


@dataclass(frozen=True)
class Order:
    """Sort instruction for select()."""

    column: str
    ascending: bool = True


class TableStore(ABC):
    """Row store with filter predicates and conditional updates."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Return the rows matching every filter."""

    @abstractmethod
    async def insert(self, table: str, record: dict) -> dict:
        """Insert a row and return it as stored.

        Raises:
            PermissionDenied: when the row cannot be written or read back
            UniqueViolation / ForeignKeyViolation: on constraint errors
        """

    @abstractmethod
    async def update(
        self,
        table: str,
        patch: dict,
        filters: Sequence[Filter],
    ) -> int:
        """Apply patch to matching rows and return the affected count."""

    @abstractmethod
    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        """Delete matching rows and return the affected count."""

    async def select_one(
        self,
        table: str,
        filters: Sequence[Filter],
        columns: str = "*",
    ) -> dict:
        """Return exactly one row or raise RecordNotFound."""
        rows = await self.select(table, filters, columns=columns, limit=1)
        if not rows:
            raise RecordNotFound(f"No {table} row matched", code="not_found")
        return rows[0]

    async def close(self) -> None:
        """Release underlying resources."""
