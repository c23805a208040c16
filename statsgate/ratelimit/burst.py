"""
Token bucket burst limiter.

The bucket ``{tokens, last_refill}`` lives in the shared store under
``burst:{identifier}`` and is updated with compare-and-set, so concurrent
instances cannot spend the same token twice.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from statsgate.ratelimit.limiter import RateLimitResult
from statsgate.services.errors import StoreError
from statsgate.services.events import EventCategory, EventSink, Severity
from statsgate.store.base import CacheStore


@dataclass
class BurstConfig:
    capacity: int = 10
    refill_rate: float = 1.0  # tokens per second

    def seconds_to_full(self, tokens: float) -> float:
        return max(self.capacity - tokens, 0) / self.refill_rate


class TokenBucketLimiter:
    """Allows bursts up to capacity while enforcing the refill rate."""

    KEY_PREFIX = "burst"

    def __init__(
        self,
        store: CacheStore,
        default_config: BurstConfig | None = None,
        events: EventSink | None = None,
        clock: Callable[[], float] = time.time,
        max_attempts: int = 5,
    ):
        self.store = store
        self.default_config = default_config or BurstConfig()
        self.events = events or EventSink()
        self._clock = clock
        self._max_attempts = max_attempts

    async def check(
        self, identifier: str, config: BurstConfig | None = None
    ) -> RateLimitResult:
        config = config or self.default_config
        key = f"{self.KEY_PREFIX}:{identifier}"

        for _ in range(self._max_attempts):
            now = self._clock()
            try:
                raw = await self.store.get(key)
            except StoreError as e:
                return self._fail_open(identifier, config, now, e)

            if raw is None:
                tokens = float(config.capacity)
            else:
                elapsed = max(now - float(raw["last_refill"]), 0.0)
                tokens = min(
                    float(config.capacity),
                    float(raw["tokens"]) + elapsed * config.refill_rate,
                )

            if tokens < 1:
                reset_at = now + (1 - tokens) / config.refill_rate
                self.events.log_event(
                    EventCategory.SECURITY,
                    Severity.WARNING,
                    f"Burst rate limit exceeded for {identifier}",
                    {"identifier": identifier, "tokens": tokens, "reset_at": reset_at},
                )
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=reset_at,
                    total_hits=0,
                    limit=config.capacity,
                    retry_after=max(1, math.ceil(reset_at - now)),
                )

            left = tokens - 1
            bucket = {"tokens": left, "last_refill": now}
            try:
                swapped = await self.store.compare_and_set(
                    key, raw, bucket, ttl_seconds=config.seconds_to_full(left) + 1
                )
            except StoreError as e:
                return self._fail_open(identifier, config, now, e)

            if swapped:
                return RateLimitResult(
                    allowed=True,
                    remaining=math.floor(left),
                    reset_at=now + config.seconds_to_full(left),
                    total_hits=0,
                    limit=config.capacity,
                )

        # Lost every race: deny rather than overspend
        logger.warning(
            f"Burst bucket for {identifier} under contention after "
            f"{self._max_attempts} attempts, denying"
        )
        now = self._clock()
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_at=now + 1 / config.refill_rate,
            total_hits=0,
            limit=config.capacity,
            retry_after=max(1, math.ceil(1 / config.refill_rate)),
        )

    def _fail_open(
        self, identifier: str, config: BurstConfig, now: float, error: StoreError
    ) -> RateLimitResult:
        logger.error(f"Burst rate limit check failed for {identifier}, allowing: {error}")
        return RateLimitResult(
            allowed=True,
            remaining=config.capacity,
            reset_at=now + config.seconds_to_full(0),
            total_hits=0,
            limit=config.capacity,
        )

    async def reset(self, identifier: str) -> bool:
        try:
            return await self.store.delete(f"{self.KEY_PREFIX}:{identifier}")
        except StoreError as e:
            logger.error(f"Failed to reset burst bucket for {identifier}: {e}")
            return False
