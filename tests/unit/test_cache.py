"""Tests for the expiring cache."""

import json

import pytest

from clinic_booking.core.resilience.cache import (
    Cache,
    CacheEntry,
    MemoryCacheBackend,
)


class TestCacheEntry:
    """Test CacheEntry serialization."""

    def test_to_json_shape(self):
        """Stored entries carry data, timestamp and expiration."""
        entry = CacheEntry(data=[{"id": "doc-1"}], timestamp=100.0, expiration=60.0)

        payload = json.loads(entry.to_json())

        assert payload == {
            "data": [{"id": "doc-1"}],
            "timestamp": 100.0,
            "expiration": 60.0,
        }

    def test_is_expired(self):
        """Expired once age exceeds expiration."""
        entry = CacheEntry(data=1, timestamp=100.0, expiration=60.0)

        assert not entry.is_expired(160.0)
        assert entry.is_expired(160.5)


class TestCache:
    """Test Cache."""

    @pytest.fixture
    def backend(self):
        return MemoryCacheBackend()

    @pytest.fixture
    def cache(self, backend, clock):
        return Cache(backend, clock=clock)

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache):
        """Fresh entries are returned."""
        await cache.set("doctors_list", [{"id": "doc-1"}])

        assert await cache.get("doctors_list") == [{"id": "doc-1"}]

    @pytest.mark.asyncio
    async def test_keys_are_prefixed(self, cache, backend):
        """Entries live under the health_app_ prefix."""
        await cache.set("doctors_list", [])

        assert await backend.keys("health_app_") == ["health_app_doctors_list"]

    @pytest.mark.asyncio
    async def test_expired_entry_is_evicted(self, cache, backend, clock):
        """A two-hour-old entry with a one-hour lifetime is a miss and is removed."""
        await cache.set("doctors_list", [{"id": "doc-1"}], expiration=3600)
        clock.advance(2 * 3600)

        assert await cache.get("doctors_list") is None
        assert await backend.get("health_app_doctors_list") is None

    @pytest.mark.asyncio
    async def test_peek_keeps_expired_entry(self, cache, backend, clock):
        """peek returns expired data without evicting it."""
        await cache.set("doctors_list", ["stale"], expiration=10)
        clock.advance(60)

        entry = await cache.peek("doctors_list")

        assert entry is not None
        assert entry.data == ["stale"]
        assert await backend.get("health_app_doctors_list") is not None

    @pytest.mark.asyncio
    async def test_unparsable_entry_is_a_miss(self, cache, backend):
        """Corrupt entries are removed and treated as absent."""
        await backend.set("health_app_broken", "not json")

        assert await cache.get("broken") is None
        assert await backend.get("health_app_broken") is None

    @pytest.mark.asyncio
    async def test_default_expiration(self, backend, clock):
        """Entries without an explicit lifetime use the default."""
        cache = Cache(backend, default_expiration=30, clock=clock)
        await cache.set("key", "value")

        clock.advance(31)

        assert await cache.get("key") is None

    @pytest.mark.asyncio
    async def test_unserializable_data_is_dropped(self, cache, backend):
        """Data that cannot be encoded is not cached and does not raise."""
        await cache.set("bad", {"when": object()})

        assert await backend.keys("health_app_") == []

    @pytest.mark.asyncio
    async def test_quota_sweeps_and_retries(self, cache, backend, clock):
        """A full backend is swept of expired entries before one retry."""
        await cache.set("old", "x" * 100, expiration=10)
        clock.advance(20)
        backend.max_bytes = backend._size_without("") + 50

        await cache.set("new", "y" * 100)

        assert await cache.get("new") == "y" * 100
        assert await backend.get("health_app_old") is None

    @pytest.mark.asyncio
    async def test_quota_still_full_drops_write(self, backend, clock):
        """If the sweep frees nothing the write is dropped silently."""
        backend.max_bytes = 10
        cache = Cache(backend, clock=clock)

        await cache.set("doctors_list", ["too big"])

        assert await cache.get("doctors_list") is None

    @pytest.mark.asyncio
    async def test_clear(self, cache):
        """clear removes one entry."""
        await cache.set("a", 1)
        await cache.set("b", 2)

        await cache.clear("a")

        assert await cache.get("a") is None
        assert await cache.get("b") == 2

    @pytest.mark.asyncio
    async def test_clear_all_only_touches_prefix(self, cache, backend):
        """Keys outside the prefix survive clear_all."""
        await cache.set("a", 1)
        await backend.set("other_app_key", "keep")

        await cache.clear_all()

        assert await cache.get("a") is None
        assert await backend.get("other_app_key") == "keep"

    @pytest.mark.asyncio
    async def test_sweep_expired(self, cache, backend, clock):
        """sweep_expired removes expired and corrupt entries and counts them."""
        await cache.set("short", 1, expiration=5)
        await cache.set("long", 2, expiration=500)
        await backend.set("health_app_corrupt", "{")
        clock.advance(10)

        cleared = await cache.sweep_expired()

        assert cleared == 2
        assert await cache.get("long") == 2

    @pytest.mark.asyncio
    async def test_stats(self, cache, clock):
        """stats counts valid and expired entries."""
        await cache.set("short", 1, expiration=5)
        await cache.set("long", 2, expiration=500)
        clock.advance(10)

        stats = await cache.stats()

        assert stats.total_entries == 2
        assert stats.valid_entries == 1
        assert stats.expired_entries == 1
        assert stats.total_size > 0
        assert stats.to_dict()["total_size_kb"] == stats.total_size_kb


class TestBackendTTL:
    """Entries are dropped by the backend once past their stale window."""

    @pytest.fixture
    def backend(self, clock):
        return MemoryCacheBackend(clock=clock)

    @pytest.fixture
    def cache(self, backend, clock):
        return Cache(backend, stale_window=100, clock=clock)

    @pytest.mark.asyncio
    async def test_ttl_is_expiration_plus_stale_window(self, cache, backend):
        await cache.set("doctor_doc-1", [{"id": "doc-1"}], expiration=60)

        assert backend._deadlines["health_app_doctor_doc-1"] == cache.now() + 160

    @pytest.mark.asyncio
    async def test_expired_entry_kept_for_stale_window(self, cache, clock):
        await cache.set("doctors_list", ["saved"], expiration=60)
        clock.advance(120)

        entry = await cache.peek("doctors_list")

        assert entry is not None
        assert entry.is_expired(cache.now())

    @pytest.mark.asyncio
    async def test_entry_gone_after_stale_window(self, cache, backend, clock):
        await cache.set("doctors_list", ["saved"], expiration=60)
        clock.advance(161)

        assert await cache.peek("doctors_list") is None
        assert await backend.keys("health_app_") == []
