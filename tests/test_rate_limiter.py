from unittest.mock import AsyncMock

import pytest

from statsgate.ratelimit import FixedWindowLimiter, RateLimitConfig
from statsgate.services import StoreError

CONFIG = RateLimitConfig(window_seconds=60, max_requests=100)


@pytest.fixture
def limiter(store, events, clock) -> FixedWindowLimiter:
    clock.now = 1_700_000_020.0  # 40s into the window [1_699_999_980, 1_700_000_040)
    return FixedWindowLimiter(store, CONFIG, events=events, clock=clock)


@pytest.mark.asyncio
async def test_window_cap_and_rollover(limiter, clock, events):
    window_end = 1_700_000_040.0

    remaining = []
    for _ in range(100):
        result = await limiter.check("user-1")
        assert result.allowed
        remaining.append(result.remaining)
    assert remaining == list(range(99, -1, -1))

    denied = await limiter.check("user-1")
    assert not denied.allowed
    assert denied.remaining == 0
    assert denied.reset_at == window_end
    assert denied.total_hits == 101
    assert denied.retry_after == 20
    assert len([e for e in events.events if e[0] == "security"]) == 1

    clock.now = window_end
    fresh = await limiter.check("user-1")
    assert fresh.allowed and fresh.total_hits == 1 and fresh.remaining == 99


@pytest.mark.asyncio
async def test_identifiers_are_independent(limiter):
    for _ in range(100):
        await limiter.check("a")
    assert not (await limiter.check("a")).allowed
    assert (await limiter.check("b")).allowed


@pytest.mark.asyncio
async def test_counter_key_layout(limiter, store):
    await limiter.check("1.2.3.4")
    assert await store.get("ratelimit:1.2.3.4:1699999980000") == 1


@pytest.mark.asyncio
async def test_store_failure_fails_open(limiter, store):
    store.incr = AsyncMock(side_effect=StoreError("down"))
    result = await limiter.check("user-1")
    assert result.allowed
    assert limiter.stats.store_errors == 1


@pytest.mark.asyncio
async def test_get_remaining_and_reset(limiter):
    for _ in range(3):
        await limiter.check("u")
    remaining, _ = await limiter.get_remaining("u")
    assert remaining == 97
    assert await limiter.reset("u")
    remaining, _ = await limiter.get_remaining("u")
    assert remaining == 100


@pytest.mark.asyncio
async def test_presets(limiter):
    for _ in range(5):
        assert (await limiter.check_preset("login", "1.2.3.4")).allowed
    denied = await limiter.check_preset("login", "1.2.3.4")
    assert not denied.allowed and denied.limit == 5

    with pytest.raises(KeyError):
        await limiter.check_preset("nope", "x")


@pytest.mark.asyncio
async def test_stats_track_offenders(limiter):
    for _ in range(103):
        await limiter.check("noisy")
    stats = limiter.stats.to_dict()
    assert stats["total_requests"] == 103
    assert stats["blocked_requests"] == 3
    assert stats["top_offenders"] == [{"identifier": "noisy", "requests": 3}]
