"""
ServiceClient - resilient async client for one upstream API.

Combines, for every logical fetch:
- CacheManager lookup (fresh tier) before anything else
- RequestPacer to space out upstream calls
- RetryExecutor around a CircuitBreaker-gated transport call
- write-through to both cache tiers on success
- stale shadow copy, or an Unavailable marker, on terminal failure

Callers never see an exception from fetch(); they get a RequestResult that
says where the data came from and what went wrong.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

from statsgate.services.cache import CacheManager
from statsgate.services.circuit_breaker import CircuitBreaker, CircuitState
from statsgate.services.errors import (
    BreakerOpenError,
    ClientError,
    NotFoundError,
    ServiceError,
)
from statsgate.services.events import EventCategory, EventSink, Severity
from statsgate.services.pacer import RequestPacer
from statsgate.services.retry import RetryExecutor
from statsgate.services.transport import HttpTransport, TransportResponse

T = TypeVar("T")


@dataclass
class Unavailable:
    """Marker returned instead of data when every degradation option failed."""

    service_id: str
    reason: str
    error_type: str
    breaker_open: bool = False
    retry_after_seconds: float | None = None

    def __bool__(self) -> bool:
        return False


@dataclass
class RequestResult(Generic[T]):
    """Result from a service request."""

    data: T | None
    from_cache: str | None = None  # 'fresh' | 'stale' | None
    is_stale: bool = False
    service_id: str | None = None
    error: Exception | None = None

    @property
    def not_found(self) -> bool:
        return isinstance(self.error, NotFoundError)

    @property
    def unavailable(self) -> bool:
        """Upstream failed and no cached copy could stand in."""
        return self.error is not None and self.from_cache is None and not self.not_found

    def to_unavailable(self) -> Unavailable:
        error = self.error
        return Unavailable(
            service_id=self.service_id or "",
            reason=str(error) if error else "unknown",
            error_type=type(error).__name__ if error else "None",
            breaker_open=isinstance(error, BreakerOpenError),
            retry_after_seconds=(
                error.reset_after_seconds if isinstance(error, BreakerOpenError) else None
            ),
        )


class ServiceClient:
    """
    Resilient client for a single upstream service.

    Breaker and pacer state belong to this instance; two clients never share
    them.

    Usage:
        client = ServiceClient(
            transport=HttpTransport("pubg", "https://api.pubg.com", api_key=key),
            cache=CacheManager(store, prefix="pubg:"),
        )

        result = await client.fetch(
            cache_key="season:current:steam",
            path="/shards/steam/seasons",
            ttl=timedelta(hours=24),
        )
        if result.data is None:
            ...  # degraded
    """

    def __init__(
        self,
        transport: HttpTransport,
        cache: CacheManager,
        breaker: CircuitBreaker | None = None,
        pacer: RequestPacer | None = None,
        retry: RetryExecutor | None = None,
        events: EventSink | None = None,
    ):
        self.service_id = transport.service_id
        self.transport = transport
        self.cache = cache
        self.events = events or EventSink()
        self.breaker = breaker or CircuitBreaker(self.service_id, events=self.events)
        self.pacer = pacer or RequestPacer()
        self.retry = retry or RetryExecutor(events=self.events)

    async def call_once(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> TransportResponse:
        """
        One breaker-gated transport call with breaker feedback.

        A client error still proves the upstream is answering, so it counts
        as a success for the breaker.

        Raises:
            BreakerOpenError: If the breaker denies the call
            ServiceError: Whatever the transport raised
        """
        if not self.breaker.allow():
            raise BreakerOpenError(
                self.service_id, self.breaker.time_until_reset() or 0.0
            )

        try:
            response = await self.transport.get(path, params=params, timeout=timeout)
        except ClientError:
            self.breaker.on_success()
            raise
        except Exception:
            self.breaker.on_failure()
            raise

        self.breaker.on_success()
        return response

    async def fetch(
        self,
        cache_key: str,
        path: str,
        ttl: timedelta,
        params: dict[str, Any] | None = None,
        stale_ttl: timedelta | None = None,
        transform: Callable[[Any], T] | None = None,
        use_cache: bool = True,
        max_retries: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RequestResult[T]:
        """
        Fetch through cache, pacer, breaker and retries.

        Args:
            cache_key: Key (unprefixed) for both cache tiers
            path: Upstream path relative to the transport base URL
            ttl: Fresh cache TTL for this kind of data
            params: Query parameters
            stale_ttl: Shadow copy TTL (cache default if not given)
            transform: Turns the raw JSON body into the cached value
            use_cache: Skip the fresh lookup (still writes through)
            max_retries: Override the retry budget
            cancel_event: Cancels pending retries when set

        Returns:
            RequestResult; data is None when degraded with nothing cached
        """
        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                self.events.log_event(
                    EventCategory.CACHE,
                    Severity.DEBUG,
                    f"Cache hit for {self.service_id}:{cache_key}",
                    {"service_id": self.service_id, "key": cache_key},
                )
                return RequestResult(
                    data=cached.data,
                    from_cache=cached.from_cache,
                    service_id=self.service_id,
                )

        try:
            await self.pacer.before_request()
            response = await self.retry.execute(
                lambda: self.call_once(path, params=params),
                name=f"{self.service_id}:{path}",
                max_retries=max_retries,
                cancel_event=cancel_event,
            )
            data = transform(response.data) if transform else response.data
        except NotFoundError as e:
            logger.info(f"{self.service_id}: {path} not found ({e})")
            return RequestResult(data=None, service_id=self.service_id, error=e)
        except ClientError as e:
            # Rejected input is the caller's problem; no stale copy stands in
            logger.warning(f"{self.service_id}: {path} rejected ({e})")
            return RequestResult(data=None, service_id=self.service_id, error=e)
        except (ValueError, KeyError, TypeError) as e:
            error = ServiceError(
                f"Malformed payload from {path}: {e}", service_id=self.service_id
            )
            return await self._degrade(cache_key, error)
        except ServiceError as e:
            return await self._degrade(cache_key, e)
        except Exception as e:
            logger.exception(f"Unexpected error fetching {self.service_id}:{path}")
            return await self._degrade(cache_key, e)

        await self.cache.set(cache_key, data, ttl, stale_ttl)
        return RequestResult(data=data, service_id=self.service_id)

    async def _degrade(self, cache_key: str, error: Exception) -> RequestResult[Any]:
        """Serve the stale shadow copy if there is one."""
        stale = await self.cache.get_stale(cache_key)
        metadata = {
            "service_id": self.service_id,
            "key": cache_key,
            "error_type": type(error).__name__,
            "breaker_state": self.breaker.state.value,
        }

        if stale is not None:
            self.events.log_event(
                EventCategory.CACHE,
                Severity.WARNING,
                f"Request to {self.service_id} failed, serving stale data for "
                f"{cache_key}: {error}",
                {**metadata, "stored_at": stale.stored_at},
            )
            return RequestResult(
                data=stale.data,
                from_cache="stale",
                is_stale=True,
                service_id=self.service_id,
                error=error,
            )

        self.events.log_event(
            EventCategory.API,
            Severity.ERROR,
            f"Request to {self.service_id} failed with nothing cached for "
            f"{cache_key}: {error}",
            metadata,
        )
        return RequestResult(data=None, service_id=self.service_id, error=error)

    async def close(self) -> None:
        """Close the HTTP transport."""
        await self.transport.close()
        logger.debug(f"ServiceClient '{self.service_id}' closed")

    async def __aenter__(self) -> "ServiceClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    # Health and status methods

    def get_health_status(self) -> dict[str, Any]:
        """Breaker and cache status for this service."""
        return {
            "service_id": self.service_id,
            "cache": self.cache.get_stats().to_dict(),
            "circuit_breaker": self.breaker.get_status(),
            "circuit_open": self.breaker.state == CircuitState.OPEN,
        }

    def reset_circuit(self) -> None:
        """Reset the circuit breaker for this service."""
        self.breaker.reset()

    async def clear_cache(self, prefix: str = "") -> int:
        """Clear cache entries (both tiers) starting with prefix."""
        return await self.cache.invalidate(prefix)
