"""
Read-through loading for list views.

Policy:
- fresh cache hit: return it now, refresh in the background (one per key)
- miss: fetch with retry/backoff, populate the cache
- fetch exhausted: fall back to a stale entry if one exists, else raise
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from clinic_booking.core.resilience.cache import Cache
from clinic_booking.core.resilience.retry import RetryPolicy, retry_with_policy

logger = logging.getLogger(__name__)

T = TypeVar("T")

STALE_NOTICE = "Showing saved data. It may be out of date."


class ReadSource(str, Enum):
    """Where a ReadResult's data came from."""
    CACHE = "cache"
    NETWORK = "network"
    STALE_CACHE = "stale_cache"


@dataclass
class ReadResult(Generic[T]):
    """Loaded data plus its provenance."""

    data: T
    source: ReadSource

    @property
    def stale(self) -> bool:
        return self.source == ReadSource.STALE_CACHE

    @property
    def notice(self) -> Optional[str]:
        return STALE_NOTICE if self.stale else None


class ReadThroughLoader:
    """Composes Cache and retry_with_backoff for idempotent reads.

    At most one background refresh runs per key; hits that arrive while
    one is in flight are served from cache without scheduling another.
    """

    def __init__(
        self,
        cache: Cache,
        policy: Optional[RetryPolicy] = None,
    ):
        self.cache = cache
        self.policy = policy or RetryPolicy()
        self._refreshing: dict[str, asyncio.Task] = {}

    async def load(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        expiration: Optional[float] = None,
        cache_if: Optional[Callable[[T], bool]] = None,
    ) -> ReadResult[T]:
        """Load ``key`` through the cache.

        Args:
            key: Cache key
            fetch: Zero-argument coroutine function reading the source of truth
            expiration: Entry lifetime in seconds (cache default if None)
            cache_if: Predicate deciding whether fetched data is cached
                (everything is cached if None)

        Returns:
            ReadResult with data and source

        Raises:
            The last fetch error when neither fresh nor stale data exists
        """
        # Expired entries are left in place as the stale fallback.
        entry = await self.cache.peek(key)
        if entry is not None and not entry.is_expired(self.cache.now()):
            self._schedule_refresh(key, fetch, expiration, cache_if)
            return ReadResult(data=entry.data, source=ReadSource.CACHE)

        try:
            data = await retry_with_policy(
                fetch,
                self.policy,
                on_retry=lambda attempt, delay, error: logger.warning(
                    f"Loading {key} failed (attempt {attempt}): {error}; "
                    f"retrying in {delay}s"
                ),
            )
        except Exception as e:
            if entry is not None:
                logger.warning(f"Serving stale cache for {key} after error: {e}")
                return ReadResult(data=entry.data, source=ReadSource.STALE_CACHE)
            logger.error(f"Failed to load {key}: {e}")
            raise

        await self._store(key, data, expiration, cache_if)
        return ReadResult(data=data, source=ReadSource.NETWORK)

    async def _store(
        self,
        key: str,
        data: Any,
        expiration: Optional[float],
        cache_if: Optional[Callable[[Any], bool]],
    ) -> None:
        if cache_if is not None and not cache_if(data):
            logger.debug(f"Not caching {key}")
            return
        await self.cache.set(key, data, expiration)

    def _schedule_refresh(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        expiration: Optional[float],
        cache_if: Optional[Callable[[Any], bool]],
    ) -> None:
        if key in self._refreshing:
            return

        task = asyncio.create_task(self._refresh(key, fetch, expiration, cache_if))
        self._refreshing[key] = task

        def _done(finished: asyncio.Task) -> None:
            if self._refreshing.get(key) is finished:
                del self._refreshing[key]

        task.add_done_callback(_done)

    async def _refresh(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        expiration: Optional[float],
        cache_if: Optional[Callable[[Any], bool]],
    ) -> None:
        """Background refresh after a hit; errors are logged, never raised."""
        try:
            data = await retry_with_policy(fetch, self.policy)
        except Exception as e:
            logger.debug(f"Background refresh of {key} failed: {e}")
            return
        await self._store(key, data, expiration, cache_if)

    async def drain(self) -> None:
        """Wait for in-flight background refreshes (shutdown and tests)."""
        if self._refreshing:
            await asyncio.gather(*list(self._refreshing.values()), return_exceptions=True)

    async def invalidate(self, key: str) -> None:
        """Drop a cached key so the next load goes to the source."""
        await self.cache.clear(key)
