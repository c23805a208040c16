"""
Inbound admission control on the shared store.

Provides:
- FixedWindowLimiter: per-identifier request counts in discrete windows
- TokenBucketLimiter: burst control with a steady refill rate
- AbuseBlocker: temporary blocks for identifiers that keep hammering
- AdmissionController: the three combined in front of business logic
"""

from statsgate.ratelimit.admission import AdmissionController
from statsgate.ratelimit.blocker import AbuseBlocker, BlockRecord
from statsgate.ratelimit.burst import BurstConfig, TokenBucketLimiter
from statsgate.ratelimit.limiter import (
    PRESETS,
    FixedWindowLimiter,
    RateLimitConfig,
    RateLimitResult,
    RateLimitStats,
)

__all__ = [
    "AdmissionController",
    "AbuseBlocker",
    "BlockRecord",
    "BurstConfig",
    "TokenBucketLimiter",
    "PRESETS",
    "FixedWindowLimiter",
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimitStats",
]
