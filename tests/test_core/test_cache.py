import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

from core.cache import CacheEntry, CacheManager, MemoryCacheBackend, cache_key


class TestCacheEntry:
    """Test CacheEntry freshness."""

    def test_fresh_within_max_age(self):
        entry = CacheEntry(key="k", value=1, fetched_at=100.0)
        assert entry.is_fresh(160.0, timedelta(minutes=1)) is True

    def test_fresh_exactly_at_max_age(self):
        entry = CacheEntry(key="k", value=1, fetched_at=100.0)
        assert entry.is_fresh(160.0, timedelta(seconds=60)) is True

    def test_stale_past_max_age(self):
        entry = CacheEntry(key="k", value=1, fetched_at=100.0)
        assert entry.is_fresh(160.5, timedelta(seconds=60)) is False


class TestMemoryCacheBackend:
    """Test MemoryCacheBackend functionality."""

    @pytest.fixture
    def cache_backend(self):
        return MemoryCacheBackend()

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache_backend):
        """Test setting and getting entries."""
        entry = CacheEntry(key="test_key", value="test_value", fetched_at=1.0)
        await cache_backend.set(entry)
        assert await cache_backend.get("test_key") is entry

    @pytest.mark.asyncio
    async def test_get_nonexistent_key(self, cache_backend):
        assert await cache_backend.get("nonexistent_key") is None

    @pytest.mark.asyncio
    async def test_delete(self, cache_backend):
        await cache_backend.set(CacheEntry(key="test_key", value=1, fetched_at=1.0))
        assert await cache_backend.delete("test_key") is True
        assert await cache_backend.delete("test_key") is False
        assert await cache_backend.get("test_key") is None

    @pytest.mark.asyncio
    async def test_keys_with_pattern(self, cache_backend):
        for key in ("videos:page:1:limit:10", "videos:page:2:limit:10", "ads:active"):
            await cache_backend.set(CacheEntry(key=key, value=1, fetched_at=1.0))

        keys = await cache_backend.keys("videos:page:*")
        assert sorted(keys) == ["videos:page:1:limit:10", "videos:page:2:limit:10"]
        assert len(await cache_backend.keys()) == 3

    @pytest.mark.asyncio
    async def test_no_capacity_bound(self, cache_backend):
        """Entries are never evicted by count."""
        for i in range(5000):
            await cache_backend.set(CacheEntry(key=f"k{i}", value=i, fetched_at=1.0))
        stats = await cache_backend.stats()
        assert stats["entries"] == 5000
        assert (await cache_backend.get("k0")).value == 0

    @pytest.mark.asyncio
    async def test_stats_by_type(self, cache_backend):
        await cache_backend.set(CacheEntry(key="a", value=1, fetched_at=1.0, cache_type="videos"))
        await cache_backend.set(CacheEntry(key="b", value=1, fetched_at=1.0, cache_type="ads"))
        await cache_backend.set(CacheEntry(key="c", value=1, fetched_at=1.0, cache_type="videos"))

        stats = await cache_backend.stats()
        assert stats["backend"] == "memory"
        assert stats["entries_by_type"] == {"videos": 2, "ads": 1}


class TestCacheManager:
    """Test the cache-or-fetch behaviour of CacheManager."""

    @pytest.mark.asyncio
    async def test_second_get_within_max_age_does_not_fetch(self, cache_manager):
        fetch = AsyncMock(return_value={"videos": [1, 2]})

        first = await cache_manager.get("k", fetch, max_age=timedelta(minutes=5))
        second = await cache_manager.get("k", fetch, max_age=timedelta(minutes=5))

        assert first == second == {"videos": [1, 2]}
        assert fetch.await_count == 1
        assert cache_manager.hits == 1
        assert cache_manager.misses == 1

    @pytest.mark.asyncio
    async def test_force_refresh_always_fetches(self, cache_manager):
        fetch = AsyncMock(side_effect=["old", "new", "newer"])

        await cache_manager.get("k", fetch)
        assert await cache_manager.get("k", fetch, force_refresh=True) == "new"
        assert await cache_manager.get("k", fetch, force_refresh=True) == "newer"
        assert fetch.await_count == 3
        assert await cache_manager.peek("k") == "newer"

    @pytest.mark.asyncio
    async def test_stale_entry_is_refetched(self, cache_manager, fake_clock):
        fetch = AsyncMock(side_effect=["v1", "v2"])

        await cache_manager.get("k", fetch, max_age=timedelta(seconds=30))
        fake_clock.advance(31)
        value = await cache_manager.get("k", fetch, max_age=timedelta(seconds=30))

        assert value == "v2"
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_zero_max_age_always_refetches(self, cache_manager, fake_clock):
        fetch = AsyncMock(side_effect=["v1", "v2"])

        await cache_manager.get("k", fetch, cache_type="video_metadata")
        fake_clock.advance(1)
        value = await cache_manager.get("k", fetch, cache_type="video_metadata", max_age=timedelta(0))

        assert value == "v2"
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_default_max_age_from_cache_type(self, cache_manager, fake_clock):
        fetch = AsyncMock(side_effect=["v1", "v2"])

        await cache_manager.get("ads", fetch, cache_type="ads")
        fake_clock.advance(9 * 60)
        assert await cache_manager.get("ads", fetch, cache_type="ads") == "v1"
        fake_clock.advance(2 * 60)
        assert await cache_manager.get("ads", fetch, cache_type="ads") == "v2"

    @pytest.mark.asyncio
    async def test_fetch_error_leaves_entry_untouched(self, cache_manager, fake_clock):
        await cache_manager.get("k", AsyncMock(return_value="good"), max_age=timedelta(seconds=10))
        entry_before = await cache_manager.get_entry("k")
        fake_clock.advance(60)

        failing = AsyncMock(side_effect=RuntimeError("backend down"))
        with pytest.raises(RuntimeError):
            await cache_manager.get("k", failing, max_age=timedelta(seconds=10))

        entry_after = await cache_manager.get_entry("k")
        assert entry_after is entry_before
        assert entry_after.value == "good"
        assert cache_manager.fetch_errors == 1

    @pytest.mark.asyncio
    async def test_sync_fetch_function(self, cache_manager):
        fetch = Mock(return_value=42)
        assert await cache_manager.get("k", fetch) == 42
        assert await cache_manager.get("k", fetch) == 42
        fetch.assert_called_once()

    @pytest.mark.asyncio
    async def test_etag_taken_from_value(self, cache_manager):
        value = Mock(etag='"abc"')
        await cache_manager.get("k", Mock(return_value=value))
        entry = await cache_manager.get_entry("k")
        assert entry.etag == '"abc"'

    @pytest.mark.asyncio
    async def test_peek_respects_freshness(self, cache_manager, fake_clock):
        await cache_manager.set("k", "v", cache_type="default")
        fake_clock.advance(11 * 60)
        assert await cache_manager.peek("k") is None
        assert await cache_manager.peek("k", allow_stale=True) == "v"

    @pytest.mark.asyncio
    async def test_invalidate_pattern(self, cache_manager):
        await cache_manager.set("videos:page:1:limit:10", 1)
        await cache_manager.set("videos:page:1:limit:20", 2)
        await cache_manager.set("videos:page:2:limit:10", 3)

        removed = await cache_manager.invalidate_pattern("videos:page:1:*")

        assert removed == 2
        assert await cache_manager.peek("videos:page:2:limit:10") == 3

    @pytest.mark.asyncio
    async def test_backend_read_error_is_treated_as_miss(self, fake_clock):
        backend = Mock(spec=MemoryCacheBackend)
        backend.get = AsyncMock(side_effect=ConnectionError("store down"))
        backend.set = AsyncMock()
        manager = CacheManager(backend, clock=fake_clock)

        assert await manager.get("k", AsyncMock(return_value="fetched")) == "fetched"
        backend.set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stats(self, cache_manager):
        fetch = AsyncMock(return_value="v")
        await cache_manager.get("k", fetch)
        await cache_manager.get("k", fetch)

        stats = await cache_manager.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["entries"] == 1

    @pytest.mark.asyncio
    async def test_health_check(self, cache_manager):
        health = await cache_manager.health_check()
        assert health["status"] == "healthy"
        assert health["backend_type"] == "memory"
        assert await cache_manager.peek("__health_check__") is None


def test_cache_key_skips_none():
    assert cache_key("videos", "page", 1, "limit", 10, None) == "videos:page:1:limit:10"
    assert cache_key("videos", "page", 1, "limit", 10, "yog") == "videos:page:1:limit:10:yog"
