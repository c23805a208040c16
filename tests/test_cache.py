from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from statsgate.services import CacheManager, StoreError
from statsgate.store import MemoryCacheStore


@pytest.fixture
def cache(store, clock) -> CacheManager:
    return CacheManager(store, prefix="t:", stale_ttl_multiplier=24, clock=clock)


@pytest.mark.asyncio
async def test_fresh_hit(cache):
    await cache.set("player:steam:abc", {"id": 1}, ttl=timedelta(seconds=60))
    result = await cache.get("player:steam:abc")
    assert result.data == {"id": 1}
    assert result.from_cache == "fresh"
    assert not result.is_stale


@pytest.mark.asyncio
async def test_stale_copy_outlives_fresh(cache, clock):
    await cache.set("stats:1", {"kills": 3}, ttl=timedelta(seconds=60))
    clock.advance(61)

    assert await cache.get("stats:1") is None
    stale = await cache.get_stale("stats:1")
    assert stale.data == {"kills": 3}
    assert stale.is_stale and stale.from_cache == "stale"

    clock.advance(60 * 24)
    assert await cache.get_stale("stats:1") is None


@pytest.mark.asyncio
async def test_shadow_key_layout(cache, store):
    await cache.set("match:9", {"x": 1}, ttl=timedelta(seconds=5))
    assert await store.exists("t:match:9")
    assert await store.exists("t:stale:match:9")


@pytest.mark.asyncio
async def test_invalidate_removes_both_tiers(cache):
    await cache.set("player:a", 1, ttl=timedelta(seconds=60))
    await cache.set("player:b", 2, ttl=timedelta(seconds=60))
    await cache.set("match:c", 3, ttl=timedelta(seconds=60))

    assert await cache.invalidate("player:") == 4
    assert await cache.get_stale("player:a") is None
    assert (await cache.get("match:c")).data == 3


@pytest.mark.asyncio
async def test_store_failure_is_a_miss(clock):
    store = MemoryCacheStore(clock=clock)
    store.get = AsyncMock(side_effect=StoreError("down"))
    store.set = AsyncMock(side_effect=StoreError("down"))
    cache = CacheManager(store, clock=clock)

    assert await cache.get("k") is None
    assert await cache.set("k", 1, ttl=timedelta(seconds=1)) is False
    assert cache.get_stats().store_errors == 2


def test_long_keys_are_hashed(cache):
    key = cache.generate_key("x" * 300)
    assert key.startswith("t:") and len(key) == len("t:") + 16


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw", [{"value": 1}, {"value": 1, "stored_at": "soon", "ttl_seconds": 5}, "text", [1, 2]]
)
async def test_corrupt_entries_are_misses(cache, store, raw):
    await store.set("t:stats:1", raw, 60)
    await store.set("t:stale:stats:1", raw, 60)

    assert await cache.get("stats:1") is None
    assert await cache.get_stale("stats:1") is None
    assert cache.get_stats().store_errors == 2
