"""
Fixed-window rate limiter on a shared CacheStore.

Each identifier gets one counter per window, keyed
``ratelimit:{identifier}:{window_start_ms}``, incremented atomically by the
store and expiring at the window boundary. Store failures fail open.
"""

import math
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

from statsgate.services.errors import StoreError
from statsgate.services.events import EventCategory, EventSink, Severity
from statsgate.store.base import CacheStore


@dataclass
class RateLimitConfig:
    """Window size and cap for one kind of traffic."""

    window_seconds: float = 60.0
    max_requests: int = 100
    key_prefix: str = "ratelimit"


@dataclass
class RateLimitResult:
    """Outcome of an admission check."""

    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds
    total_hits: int
    limit: int = 0
    blocked: bool = False
    retry_after: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "reset_at": self.reset_at,
            "total_hits": self.total_hits,
            "limit": self.limit,
            "blocked": self.blocked,
            "retry_after": self.retry_after,
        }


@dataclass
class RateLimitStats:
    total_requests: int = 0
    blocked_requests: int = 0
    store_errors: int = 0
    offenders: Counter = field(default_factory=Counter)

    def top_offenders(self, limit: int = 5) -> list[dict[str, Any]]:
        return [
            {"identifier": identifier, "requests": count}
            for identifier, count in self.offenders.most_common(limit)
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "blocked_requests": self.blocked_requests,
            "store_errors": self.store_errors,
            "top_offenders": self.top_offenders(),
        }


# Named traffic classes; None means "use the limiter default"
PRESETS: dict[str, RateLimitConfig | None] = {
    "command": None,
    "api": None,
    "login": RateLimitConfig(window_seconds=15 * 60, max_requests=5),
    "upload": RateLimitConfig(window_seconds=60 * 60, max_requests=10),
    "message": RateLimitConfig(window_seconds=60, max_requests=30),
    "ip": RateLimitConfig(window_seconds=60, max_requests=100),
}


class FixedWindowLimiter:
    """
    Counts requests per identifier in discrete windows.

    Usage:
        limiter = FixedWindowLimiter(store)
        result = await limiter.check("203.0.113.7")
        if not result.allowed:
            ...  # answer 429, retry after result.retry_after seconds

        await limiter.check_preset("login", user_ip)
    """

    def __init__(
        self,
        store: CacheStore,
        default_config: RateLimitConfig | None = None,
        events: EventSink | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.default_config = default_config or RateLimitConfig()
        self.events = events or EventSink()
        self._clock = clock
        self._stats = RateLimitStats()

    def _window(self, identifier: str, config: RateLimitConfig, now: float) -> tuple[str, float]:
        """Counter key and reset time for the window containing now."""
        window_start = math.floor(now / config.window_seconds) * config.window_seconds
        key = f"{config.key_prefix}:{identifier}:{int(window_start * 1000)}"
        return key, window_start + config.window_seconds

    async def check(
        self, identifier: str, config: RateLimitConfig | None = None
    ) -> RateLimitResult:
        """Count one request for identifier and decide whether it is allowed."""
        config = config or self.default_config
        now = self._clock()
        key, reset_at = self._window(identifier, config, now)
        self._stats.total_requests += 1

        try:
            count = await self.store.incr(key, ttl_seconds=max(reset_at - now, 0.001))
        except StoreError as e:
            self._stats.store_errors += 1
            logger.error(f"Rate limit check failed for {identifier}, allowing: {e}")
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests,
                reset_at=reset_at,
                total_hits=0,
                limit=config.max_requests,
            )

        if count > config.max_requests:
            self._on_violation(identifier, config, count, reset_at)
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=reset_at,
                total_hits=count,
                limit=config.max_requests,
                retry_after=max(1, math.ceil(reset_at - now)),
            )

        return RateLimitResult(
            allowed=True,
            remaining=max(0, config.max_requests - count),
            reset_at=reset_at,
            total_hits=count,
            limit=config.max_requests,
        )

    def _on_violation(
        self, identifier: str, config: RateLimitConfig, count: int, reset_at: float
    ) -> None:
        self._stats.blocked_requests += 1
        self._stats.offenders[identifier] += 1
        metadata = {
            "identifier": identifier,
            "requests": count,
            "limit": config.max_requests,
            "window_seconds": config.window_seconds,
            "reset_at": reset_at,
        }
        self.events.log_event(
            EventCategory.SECURITY,
            Severity.WARNING,
            f"Rate limit exceeded for {identifier}",
            metadata,
        )
        # Alert once per window, on the first request over the cap
        if count == config.max_requests + 1:
            self.events.create_alert(
                Severity.WARNING,
                EventCategory.SECURITY.value,
                "Rate limit exceeded",
                metadata,
            )

    async def check_preset(self, name: str, identifier: str) -> RateLimitResult:
        """Check identifier against a named preset (command, api, login, ...)."""
        if name not in PRESETS:
            raise KeyError(f"Unknown rate limit preset: {name}")
        return await self.check(f"{name}:{identifier}", PRESETS[name])

    async def get_remaining(
        self, identifier: str, config: RateLimitConfig | None = None
    ) -> tuple[int, float]:
        """Remaining requests and reset time, without counting a request."""
        config = config or self.default_config
        key, reset_at = self._window(identifier, config, self._clock())
        try:
            count = int(await self.store.get(key) or 0)
        except StoreError as e:
            self._stats.store_errors += 1
            logger.error(f"Failed to get remaining requests for {identifier}: {e}")
            return config.max_requests, reset_at
        return max(0, config.max_requests - count), reset_at

    async def reset(
        self, identifier: str, config: RateLimitConfig | None = None
    ) -> bool:
        """Forget every window of identifier."""
        config = config or self.default_config
        try:
            removed = await self.store.clear_by_prefix(
                f"{config.key_prefix}:{identifier}:"
            )
        except StoreError as e:
            self._stats.store_errors += 1
            logger.error(f"Failed to reset rate limit for {identifier}: {e}")
            return False
        logger.info(f"Rate limit reset for {identifier} ({removed} windows)")
        return True

    @property
    def stats(self) -> RateLimitStats:
        return self._stats
