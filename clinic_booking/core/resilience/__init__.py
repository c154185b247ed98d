"""
Resilience Module

Retry with backoff, the expiring cache and the read-through loader used
by list views to mask backend latency and outages.

Usage:
    from clinic_booking.core.resilience import (
        Cache,
        MemoryCacheBackend,
        ReadThroughLoader,
        retry_with_backoff,
    )

    cache = Cache(MemoryCacheBackend())
    loader = ReadThroughLoader(cache)
    result = await loader.load("doctors_list", fetch_doctors)
    print(result.data, result.stale)
"""

# Retry
from clinic_booking.core.resilience.retry import (
    OperationTimeoutError,
    RetryPolicy,
    retry_with_backoff,
    retry_with_policy,
)

# Cache
from clinic_booking.core.resilience.cache import (
    Cache,
    CacheBackend,
    CacheEntry,
    CacheStats,
    MemoryCacheBackend,
    StorageQuotaExceeded,
)

# Read-through
from clinic_booking.core.resilience.read_through import (
    ReadResult,
    ReadSource,
    ReadThroughLoader,
)

__all__ = [
    # Retry
    "OperationTimeoutError",
    "RetryPolicy",
    "retry_with_backoff",
    "retry_with_policy",
    # Cache
    "Cache",
    "CacheBackend",
    "CacheEntry",
    "CacheStats",
    "MemoryCacheBackend",
    "StorageQuotaExceeded",
    # Read-through
    "ReadResult",
    "ReadSource",
    "ReadThroughLoader",
]
