"""
Service layer infrastructure - resilience patterns for external API calls.

Provides:
- CacheManager: Two-tier caching with a stale shadow copy for outages
- CircuitBreaker: Prevents cascading failures
- RequestPacer: Minimum spacing between upstream calls
- RetryExecutor: Bounded retries with exponential backoff and jitter
- HttpTransport: httpx GET mapped onto the error taxonomy
- ServiceClient: Unified client combining all patterns
- HealthAggregator / HealthMonitor: Tri-state health reporting
- EventSink: Structured events and alerts
"""

from statsgate.services.errors import (
    ServiceError,
    ClientError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
    UnrecoverableNetworkError,
    TransientUpstreamError,
    RequestTimeoutError,
    RateLimitedError,
    BreakerOpenError,
    StoreError,
    RetryCancelledError,
    ConfigurationError,
)
from statsgate.services.events import Alert, EventCategory, EventSink, Severity
from statsgate.services.cache import CacheManager, CacheEntry, CacheResult
from statsgate.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from statsgate.services.pacer import RequestPacer
from statsgate.services.retry import RetryExecutor, RetryPolicy, is_retryable
from statsgate.services.transport import HttpTransport, TransportResponse
from statsgate.services.client import RequestResult, ServiceClient, Unavailable
from statsgate.services.health import (
    HealthAggregator,
    HealthMonitor,
    HealthReport,
    HealthStatus,
)

__all__ = [
    # Errors
    "ServiceError",
    "ClientError",
    "InvalidInputError",
    "NotFoundError",
    "UnauthorizedError",
    "UnrecoverableNetworkError",
    "TransientUpstreamError",
    "RequestTimeoutError",
    "RateLimitedError",
    "BreakerOpenError",
    "StoreError",
    "RetryCancelledError",
    "ConfigurationError",
    # Events
    "Alert",
    "EventCategory",
    "EventSink",
    "Severity",
    # Cache
    "CacheManager",
    "CacheEntry",
    "CacheResult",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    # Pacing and retries
    "RequestPacer",
    "RetryExecutor",
    "RetryPolicy",
    "is_retryable",
    # Client
    "HttpTransport",
    "TransportResponse",
    "ServiceClient",
    "RequestResult",
    "Unavailable",
    # Health
    "HealthAggregator",
    "HealthMonitor",
    "HealthReport",
    "HealthStatus",
]
