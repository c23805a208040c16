"""
RetryExecutor - bounded retries with exponential backoff and jitter.

Errors are classified before every retry:
- never retried: ClientError (400/401/403/404/422, invalid input),
  UnrecoverableNetworkError (DNS, certificates), BreakerOpenError
- retried: TransientUpstreamError (timeouts, 5xx, resets) and
  RateLimitedError, whose retry_after hint overrides the computed delay

Exhaustion re-raises the last error unchanged.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx

from statsgate.services.errors import (
    BreakerOpenError,
    ClientError,
    RateLimitedError,
    RetryCancelledError,
    TransientUpstreamError,
    UnrecoverableNetworkError,
)
from statsgate.services.events import EventCategory, EventSink, Severity

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]

NON_RETRYABLE_STATUS = frozenset({400, 401, 403, 404, 422})


@dataclass
class RetryPolicy:
    """Backoff parameters. Delays are in seconds."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter_factor: float = 0.1
    min_delay: float = 0.1

    def compute_delay(self, attempt: int, rng: random.Random | None = None) -> float:
        """
        Delay before the retry that follows failed attempt number `attempt` (0-based).

        min(base * 2**attempt, max) ± jitter, never below min_delay and never
        above max_delay.
        """
        _rng = rng or random
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        delay += delay * self.jitter_factor * _rng.uniform(-1.0, 1.0)
        return min(max(delay, self.min_delay), self.max_delay)


def is_retryable(error: BaseException) -> bool:
    """Classify an error as worth another attempt."""
    if isinstance(
        error, (ClientError, UnrecoverableNetworkError, BreakerOpenError)
    ):
        return False
    if isinstance(error, (TransientUpstreamError, RateLimitedError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status not in NON_RETRYABLE_STATUS and (status == 429 or status >= 500)
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return True
    if isinstance(error, (ConnectionResetError, ConnectionAbortedError)):
        return True
    return False


class RetryExecutor:
    """
    Runs an async operation with bounded retries.

    Usage:
        executor = RetryExecutor(RetryPolicy(max_retries=3))
        data = await executor.execute(lambda: transport.get("/status"), "status")
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        events: EventSink | None = None,
        sleep: SleepFunc | None = None,
        rng: random.Random | None = None,
    ):
        self.policy = policy or RetryPolicy()
        self._events = events or EventSink()
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    async def execute(
        self,
        op: Callable[[], Awaitable[T]],
        name: str,
        max_retries: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> T:
        """
        Execute op, retrying retryable failures.

        Args:
            op: Zero-argument coroutine factory, called once per attempt
            name: Operation name used in events
            max_retries: Override policy.max_retries (total attempts = retries + 1)
            cancel_event: When set, stops before the next sleep or attempt

        Raises:
            RetryCancelledError: If cancel_event was set
            Exception: The last error from op, unchanged
        """
        retries = self.policy.max_retries if max_retries is None else max_retries
        attempt = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise RetryCancelledError(name, attempt)

            try:
                result = await op()
            except Exception as e:
                if not is_retryable(e):
                    raise

                if attempt >= retries:
                    self._events.log_event(
                        EventCategory.RELIABILITY,
                        Severity.ERROR,
                        f"'{name}' failed after {attempt + 1} attempts: {e}",
                        {
                            "operation": name,
                            "event": "retry_exhausted",
                            "attempts": attempt + 1,
                            "error_type": type(e).__name__,
                        },
                    )
                    raise

                delay = self._delay_for(e, attempt)
                self._events.log_event(
                    EventCategory.RELIABILITY,
                    Severity.WARNING,
                    f"'{name}' attempt {attempt + 1} failed, retrying in {delay:.2f}s: {e}",
                    {
                        "operation": name,
                        "event": "retry_scheduled",
                        "attempt": attempt + 1,
                        "delay_seconds": delay,
                        "error_type": type(e).__name__,
                    },
                )

                if cancel_event is not None and cancel_event.is_set():
                    raise RetryCancelledError(name, attempt + 1) from e
                await self._sleep(delay)
                attempt += 1
                continue

            if attempt > 0:
                self._events.log_event(
                    EventCategory.RELIABILITY,
                    Severity.INFO,
                    f"'{name}' succeeded after {attempt} retries",
                    {
                        "operation": name,
                        "event": "retry_recovered",
                        "attempts": attempt + 1,
                    },
                )
            return result

    def _delay_for(self, error: Exception, attempt: int) -> float:
        if isinstance(error, RateLimitedError) and error.retry_after:
            return max(float(error.retry_after), self.policy.min_delay)
        return self.policy.compute_delay(attempt, self._rng)
