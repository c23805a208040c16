"""
AdmissionController - inbound admission in front of business logic.

Order of checks for each request:
1. whitelist (always admitted)
2. AbuseBlocker (blocked identifiers are denied outright)
3. FixedWindowLimiter, escalating to a block when an identifier keeps
   hammering well past the cap
4. TokenBucketLimiter, when burst control is configured
"""

import math
import time
from typing import Callable

from loguru import logger

from statsgate.ratelimit.blocker import AbuseBlocker
from statsgate.ratelimit.burst import BurstConfig, TokenBucketLimiter
from statsgate.ratelimit.limiter import (
    FixedWindowLimiter,
    RateLimitConfig,
    RateLimitResult,
)
from statsgate.services.events import EventSink
from statsgate.settings import Settings
from statsgate.store.base import CacheStore


class AdmissionController:
    """
    Usage:
        admission = AdmissionController.from_settings(global_settings, store)
        result = await admission.check(client_ip)
        if not result.allowed:
            ...
    """

    def __init__(
        self,
        limiter: FixedWindowLimiter,
        blocker: AbuseBlocker,
        burst: TokenBucketLimiter | None = None,
        block_multiplier: float = 1.5,
        block_duration_seconds: float = 300.0,
        whitelist: set[str] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.limiter = limiter
        self.blocker = blocker
        self.burst = burst
        # Serves check_burst even when burst control is off in check()
        self.burst_limiter = burst or TokenBucketLimiter(
            limiter.store, events=limiter.events, clock=clock
        )
        self.block_multiplier = block_multiplier
        self.block_duration_seconds = block_duration_seconds
        self.whitelist = whitelist or set()
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: CacheStore,
        events: EventSink | None = None,
        burst_config: BurstConfig | None = None,
    ) -> "AdmissionController":
        events = events or EventSink()
        limiter = FixedWindowLimiter(
            store,
            RateLimitConfig(
                window_seconds=settings.rate_limit_window_seconds,
                max_requests=settings.rate_limit_max_requests,
            ),
            events=events,
        )
        burst = (
            TokenBucketLimiter(store, burst_config, events=events)
            if burst_config is not None
            else None
        )
        return cls(
            limiter,
            AbuseBlocker(store, events=events),
            burst=burst,
            block_multiplier=settings.rate_limit_block_multiplier,
            block_duration_seconds=settings.rate_limit_block_duration_seconds,
            whitelist=settings.whitelisted_identifiers,
        )

    def block_threshold(self, config: RateLimitConfig | None = None) -> int:
        config = config or self.limiter.default_config
        return math.floor(config.max_requests * self.block_multiplier)

    async def check(
        self, identifier: str, config: RateLimitConfig | None = None
    ) -> RateLimitResult:
        config = config or self.limiter.default_config

        if identifier in self.whitelist:
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests,
                reset_at=self._clock() + config.window_seconds,
                total_hits=0,
                limit=config.max_requests,
            )

        block = await self.blocker.get_block(identifier)
        if block is not None:
            logger.debug(f"Rejecting blocked identifier {identifier}")
            return self._blocked_result(config, block.blocked_until)

        result = await self.limiter.check(identifier, config)
        if not result.allowed:
            if result.total_hits > self.block_threshold(config):
                block = await self.blocker.block(
                    identifier,
                    self.block_duration_seconds,
                    reason=f"{result.total_hits} requests against a cap of "
                    f"{config.max_requests}",
                )
                blocked = self._blocked_result(config, block.blocked_until)
                blocked.total_hits = result.total_hits
                return blocked
            return result

        if self.burst is not None:
            burst_result = await self.burst.check(identifier)
            if not burst_result.allowed:
                return burst_result

        return result

    def _blocked_result(
        self, config: RateLimitConfig, blocked_until: float
    ) -> RateLimitResult:
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_at=blocked_until,
            total_hits=0,
            limit=config.max_requests,
            blocked=True,
            retry_after=max(1, math.ceil(blocked_until - self._clock())),
        )

    # Individual checks exposed to collaborators

    async def check_rate_limit(
        self, identifier: str, config: RateLimitConfig | None = None
    ) -> RateLimitResult:
        return await self.limiter.check(identifier, config)

    async def check_burst(
        self, identifier: str, config: BurstConfig | None = None
    ) -> RateLimitResult:
        return await self.burst_limiter.check(identifier, config)

    async def is_blocked(self, identifier: str) -> bool:
        return await self.blocker.is_blocked(identifier)
