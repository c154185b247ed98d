"""
Redis Connection Management

Redis connection with graceful degradation, plus the Redis-backed cache
storage. A missing or failing Redis turns cache reads into misses and
cache writes into no-ops; it never fails a request. The connection is
retried on demand, so the cache comes back when Redis does.
"""

import logging
import time
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, RedisError, ResponseError, TimeoutError

from clinic_booking.config import settings
from clinic_booking.core.resilience.cache import CacheBackend, StorageQuotaExceeded

logger = logging.getLogger(__name__)

RECONNECT_INTERVAL = 30.0


class RedisClient:
    """
    Manages Redis connection as a singleton.

    Features:
    - Connection pooling
    - Automatic retries
    - Timeouts
    - Reconnects after a failure, at most once per RECONNECT_INTERVAL
    """

    _client: Optional[Redis] = None
    _connected: bool = False
    _next_attempt: float = 0.0

    @classmethod
    async def get_client(cls) -> Optional[Redis]:
        """
        Get or create Redis client.

        Returns:
            Redis client or None if connection fails
        """
        if cls._client is not None and cls._connected:
            return cls._client

        if time.monotonic() < cls._next_attempt:
            return None

        try:
            retry = Retry(ExponentialBackoff(), retries=3)

            cls._client = redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5.0,
                socket_timeout=5.0,
                retry_on_timeout=True,
                retry=retry,
            )

            await cls._client.ping()
            cls._connected = True
            logger.info("Redis connection established successfully")
            return cls._client

        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.error(
                f"Failed to connect to Redis: {e}; "
                f"retrying in {RECONNECT_INTERVAL:.0f}s"
            )
            cls._connected = False
            cls._client = None
            cls._next_attempt = time.monotonic() + RECONNECT_INTERVAL
            return None

    @classmethod
    async def close(cls) -> None:
        """Close Redis connection."""
        if cls._client is not None:
            try:
                await cls._client.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                cls._client = None
                cls._connected = False

    @classmethod
    def is_connected(cls) -> bool:
        """Check if Redis is connected."""
        return cls._connected


async def get_redis() -> Optional[Redis]:
    """Return the shared Redis client, or None when Redis is unavailable."""
    return await RedisClient.get_client()


def _is_out_of_memory(error: ResponseError) -> bool:
    return str(error).startswith("OOM")


class RedisCacheBackend(CacheBackend):
    """
    Cache storage on Redis strings.

    Freshness is decided by Cache from the stored timestamp; the Redis TTL
    only bounds how long an entry survives as a stale fallback. Redis
    running at maxmemory with a noeviction policy answers writes with an
    OOM error, which is surfaced as StorageQuotaExceeded.

    The client is looked up through get_redis() on every operation unless
    one is passed in.
    """

    def __init__(self, redis_client: Optional[Redis] = None):
        self._redis = redis_client

    async def _client(self) -> Optional[Redis]:
        if self._redis is not None:
            return self._redis
        return await get_redis()

    async def get(self, key: str) -> Optional[str]:
        client = await self._client()
        if client is None:
            return None
        try:
            return await client.get(key)
        except RedisError as e:
            logger.error(f"Cache read failed for {key}: {e}")
            return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        client = await self._client()
        if client is None:
            logger.debug(f"Redis unavailable - not caching {key}")
            return
        try:
            if ttl is None:
                await client.set(key, value)
            else:
                await client.set(key, value, ex=ttl)
        except ResponseError as e:
            if _is_out_of_memory(e):
                raise StorageQuotaExceeded(str(e)) from e
            logger.error(f"Cache write failed for {key}: {e}")
        except RedisError as e:
            logger.error(f"Cache write failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        client = await self._client()
        if client is None:
            return
        try:
            await client.delete(key)
        except RedisError as e:
            logger.error(f"Cache delete failed for {key}: {e}")

    async def keys(self, prefix: str) -> list[str]:
        client = await self._client()
        if client is None:
            return []
        try:
            return [key async for key in client.scan_iter(match=f"{prefix}*")]
        except RedisError as e:
            logger.error(f"Cache key scan failed for {prefix}: {e}")
            return []


async def check_redis_health() -> bool:
    """
    Check Redis connectivity for health checks.

    Returns:
        True if Redis is accessible and responding, False otherwise
    """
    try:
        client = await get_redis()
        if client is None:
            return False

        await client.ping()
        return True

    except RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return False
