"""
CircuitBreaker - Prevents cascading failures by stopping requests to failing services.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Service is failing, requests are blocked
- HALF_OPEN: Testing if service has recovered with a limited number of probes

Transitions:
- CLOSED → OPEN: When failure_threshold consecutive failures are reached
- OPEN → HALF_OPEN: On the first allow() after open_timeout expires
- HALF_OPEN → CLOSED: After half_open_max_probes successes
- HALF_OPEN → OPEN: On any failed request
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable

from statsgate.services.events import EventCategory, EventSink, Severity


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Consecutive failures before opening
    open_timeout: timedelta = timedelta(seconds=60)  # Time before half-open
    half_open_max_probes: int = 3  # Probes allowed (and successes needed) in half-open


class CircuitBreaker:
    """
    Circuit breaker for a single upstream service.

    Owned by one client instance; state is process-local and starts CLOSED.

    Usage:
        cb = CircuitBreaker("pubg")

        if not cb.allow():
            raise BreakerOpenError(...)

        try:
            result = await make_request()
            cb.on_success()
            return result
        except Exception:
            cb.on_failure()
            raise
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        events: EventSink | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.service_id = service_id
        self.config = config or CircuitBreakerConfig()
        self._events = events or EventSink()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_at: datetime | None = None
        self._half_open_probes_used = 0
        self._half_open_successes = 0
        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        """Current state. Does not trigger the OPEN → HALF_OPEN transition."""
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def last_failure_at(self) -> datetime | None:
        return self._last_failure_at

    @property
    def half_open_probes_used(self) -> int:
        return self._half_open_probes_used

    def allow(self) -> bool:
        """Check if a request may be attempted, consuming a probe when HALF_OPEN."""
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if not self._open_timeout_elapsed():
                    return False
                self._transition(CircuitState.HALF_OPEN)

            # HALF_OPEN: Allow limited probes
            if self._half_open_probes_used < self.config.half_open_max_probes:
                self._half_open_probes_used += 1
                return True
            return False

    def would_allow(self) -> bool:
        """Like allow() but without side effects."""
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.OPEN:
                return self._open_timeout_elapsed()
            return self._half_open_probes_used < self.config.half_open_max_probes

    def on_success(self) -> None:
        """Record a successful request."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.half_open_max_probes:
                    self._transition(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                # Failures must be consecutive to open the circuit
                self._consecutive_failures = 0

    def on_failure(self) -> None:
        """Record a failed request."""
        with self._lock:
            self._last_failure_at = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                # Any failure in half-open reopens the circuit
                self._consecutive_failures += 1
                self._transition(CircuitState.OPEN)
            elif self._state == CircuitState.CLOSED:
                self._consecutive_failures += 1
                if self._consecutive_failures >= self.config.failure_threshold:
                    self._transition(CircuitState.OPEN)

    def _open_timeout_elapsed(self) -> bool:
        if self._last_failure_at is None:
            return True
        return self._clock() - self._last_failure_at >= self.config.open_timeout

    def _transition(self, new_state: CircuitState) -> None:
        """Apply a legal state change. Caller holds the lock."""
        old_state = self._state
        self._state = new_state

        if new_state == CircuitState.CLOSED:
            self._consecutive_failures = 0
            self._half_open_probes_used = 0
            self._half_open_successes = 0
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_probes_used = 0
            self._half_open_successes = 0
        elif new_state == CircuitState.OPEN:
            self._half_open_probes_used = 0
            self._half_open_successes = 0

        metadata = {
            "service_id": self.service_id,
            "from": old_state.value,
            "to": new_state.value,
            "consecutive_failures": self._consecutive_failures,
        }
        severity = Severity.WARNING if new_state == CircuitState.OPEN else Severity.INFO
        self._events.log_event(
            EventCategory.RELIABILITY,
            severity,
            f"Circuit breaker '{self.service_id}' {old_state.value} -> {new_state.value}",
            metadata,
        )
        if new_state == CircuitState.OPEN:
            self._events.create_alert(
                Severity.WARNING,
                EventCategory.RELIABILITY.value,
                f"Circuit breaker '{self.service_id}' OPENED after "
                f"{self._consecutive_failures} failures",
                metadata,
            )

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        with self._lock:
            if self._state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)
            self._consecutive_failures = 0
            self._last_failure_at = None

    def time_until_reset(self) -> float | None:
        """Get seconds until an OPEN circuit will admit a half-open probe."""
        if self._state != CircuitState.OPEN or not self._last_failure_at:
            return None

        reset_at = self._last_failure_at + self.config.open_timeout
        remaining = (reset_at - self._clock()).total_seconds()
        return max(0.0, remaining)

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        return {
            "service_id": self.service_id,
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "half_open_probes_used": self._half_open_probes_used,
            "last_failure": (
                self._last_failure_at.isoformat() if self._last_failure_at else None
            ),
            "time_until_reset": self.time_until_reset(),
        }
