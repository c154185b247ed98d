"""
Expiring key-value cache.

Entries are stored as JSON ``{"data", "timestamp", "expiration"}`` under a
fixed key prefix in an injected backend (Redis in production, memory in
tests and single-process development). The cache is best-effort: every
failure degrades to a miss or a dropped write and is only logged.

Freshness is decided here from the stored timestamp. Backends are also
given a TTL of expiration plus a stale window, so entries outlive their
expiration long enough to serve as a stale fallback and are then dropped
by the backend itself.
"""

import json
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "health_app_"
DEFAULT_EXPIRATION = 60 * 60  # 1 hour
DEFAULT_STALE_WINDOW = 24 * 60 * 60  # 1 day


class StorageQuotaExceeded(Exception):
    """The backend has no room for the write."""


class CacheBackend(ABC):
    """Raw string storage used by Cache."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored string or None."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store a string, dropped after ``ttl`` seconds if given.

        Raises StorageQuotaExceeded when full.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key if present."""

    @abstractmethod
    async def keys(self, prefix: str) -> list[str]:
        """List stored keys starting with prefix."""


class MemoryCacheBackend(CacheBackend):
    """Dict-backed storage with an optional byte quota and TTLs."""

    def __init__(
        self,
        max_bytes: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._data: dict[str, str] = {}
        self._deadlines: dict[str, float] = {}
        self.max_bytes = max_bytes
        self._clock = clock

    def _purge_dead(self) -> None:
        now = self._clock()
        for key in [k for k, deadline in self._deadlines.items() if deadline <= now]:
            self._data.pop(key, None)
            del self._deadlines[key]

    def _size_without(self, key: str) -> int:
        return sum(len(k) + len(v) for k, v in self._data.items() if k != key)

    async def get(self, key: str) -> Optional[str]:
        self._purge_dead()
        return self._data.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._purge_dead()
        if self.max_bytes is not None:
            needed = self._size_without(key) + len(key) + len(value)
            if needed > self.max_bytes:
                raise StorageQuotaExceeded(
                    f"Storing {key} needs {needed} bytes, quota is {self.max_bytes}"
                )
        self._data[key] = value
        if ttl is None:
            self._deadlines.pop(key, None)
        else:
            self._deadlines[key] = self._clock() + ttl

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)
        self._deadlines.pop(key, None)

    async def keys(self, prefix: str) -> list[str]:
        self._purge_dead()
        return [k for k in self._data if k.startswith(prefix)]

@dataclass
class CacheEntry:
    """A cached value with the time it was stored and its lifetime."""

    data: Any
    timestamp: float
    expiration: float

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_expired(self, now: float) -> bool:
        return self.age(now) > self.expiration

    def to_json(self) -> str:
        return json.dumps({
            "data": self.data,
            "timestamp": self.timestamp,
            "expiration": self.expiration,
        })

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        """Parse a stored entry. Raises ValueError/KeyError/TypeError if malformed."""
        payload = json.loads(raw)
        return cls(
            data=payload["data"],
            timestamp=float(payload["timestamp"]),
            expiration=float(payload["expiration"]),
        )


@dataclass
class CacheStats:
    """Snapshot of the entries under the cache prefix."""

    total_entries: int = 0
    valid_entries: int = 0
    expired_entries: int = 0
    total_size: int = 0

    @property
    def total_size_kb(self) -> str:
        return f"{self.total_size / 1024:.2f}"

    def to_dict(self) -> dict:
        return {
            "total_entries": self.total_entries,
            "valid_entries": self.valid_entries,
            "expired_entries": self.expired_entries,
            "total_size": self.total_size,
            "total_size_kb": self.total_size_kb,
        }


class Cache:
    """
    Time-boxed cache keyed by string.

    Construct once per process and pass it to consumers; the backend and
    clock are injected so tests can control both. ``stale_window`` is how
    long past its expiration an entry is kept for stale fallback.
    """

    def __init__(
        self,
        backend: CacheBackend,
        prefix: str = DEFAULT_PREFIX,
        default_expiration: float = DEFAULT_EXPIRATION,
        stale_window: float = DEFAULT_STALE_WINDOW,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.prefix = prefix
        self.default_expiration = default_expiration
        self.stale_window = stale_window
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def now(self) -> float:
        """Current time on the cache clock, in seconds."""
        return self._clock()

    async def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry, expired or not, without evicting it."""
        try:
            raw = await self.backend.get(self._key(key))
            if raw is None:
                return None
            return CacheEntry.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Error reading from cache ({key}): {e}")
            return None

    async def get(self, key: str) -> Optional[Any]:
        """Return cached data, or None if missing or expired.

        Expired and unparsable entries are evicted.
        """
        full_key = self._key(key)
        raw = await self.backend.get(full_key)
        if raw is None:
            return None

        try:
            entry = CacheEntry.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Error reading from cache ({key}): {e}")
            await self.backend.delete(full_key)
            return None

        if entry.is_expired(self._clock()):
            await self.backend.delete(full_key)
            logger.debug(f"Cache entry expired: {key}")
            return None

        return entry.data

    async def set(
        self,
        key: str,
        data: Any,
        expiration: Optional[float] = None,
    ) -> None:
        """Store data for ``expiration`` seconds (default_expiration if None).

        On quota exhaustion, sweeps expired entries and retries once; if
        that still fails the write is dropped.
        """
        entry = CacheEntry(
            data=data,
            timestamp=self._clock(),
            expiration=self.default_expiration if expiration is None else expiration,
        )

        try:
            raw = entry.to_json()
        except (TypeError, ValueError) as e:
            logger.error(f"Error writing to cache ({key}): {e}")
            return

        full_key = self._key(key)
        ttl = max(1, math.ceil(entry.expiration + self.stale_window))
        try:
            await self.backend.set(full_key, raw, ttl)
            return
        except StorageQuotaExceeded as e:
            logger.warning(f"Cache quota exceeded writing {key}: {e}; clearing old entries")

        await self.sweep_expired()

        try:
            await self.backend.set(full_key, raw, ttl)
        except StorageQuotaExceeded as e:
            logger.error(f"Failed to cache {key} after cleanup: {e}")

    async def clear(self, key: str) -> None:
        """Remove a single entry."""
        await self.backend.delete(self._key(key))

    async def clear_all(self) -> None:
        """Remove every entry under the prefix."""
        for full_key in await self.backend.keys(self.prefix):
            await self.backend.delete(full_key)

    async def sweep_expired(self) -> int:
        """Evict expired and unparsable entries across the whole prefix.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        cleared = 0

        for full_key in await self.backend.keys(self.prefix):
            raw = await self.backend.get(full_key)
            if raw is None:
                continue
            try:
                expired = CacheEntry.from_json(raw).is_expired(now)
            except (ValueError, KeyError, TypeError):
                expired = True
            if expired:
                await self.backend.delete(full_key)
                cleared += 1

        if cleared:
            logger.info(f"Cleared {cleared} expired cache entries")
        return cleared

    async def stats(self) -> CacheStats:
        """Count valid and expired entries and their total size."""
        now = self._clock()
        stats = CacheStats()

        for full_key in await self.backend.keys(self.prefix):
            raw = await self.backend.get(full_key)
            if raw is None:
                continue
            stats.total_entries += 1
            stats.total_size += len(raw)
            try:
                if CacheEntry.from_json(raw).is_expired(now):
                    stats.expired_entries += 1
                else:
                    stats.valid_entries += 1
            except (ValueError, KeyError, TypeError):
                continue

        return stats
