"""
Health aggregation for the outbound client.

HealthAggregator.check() combines three signals:
- a disposable write+read round-trip on the cache store
- the circuit breaker state
- one lightweight upstream probe, skipped while the breaker denies calls

HealthMonitor runs check() on an APScheduler interval job so the last report
is always at hand, and is stopped explicitly on shutdown.
"""

import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from statsgate.services.circuit_breaker import CircuitState
from statsgate.services.client import ServiceClient
from statsgate.services.events import EventCategory, Severity


class HealthStatus(str, Enum):
    """Aggregated health states."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthReport:
    """Result of a health check."""

    status: HealthStatus
    breaker_state: CircuitState
    cache_ok: bool
    api_ok: bool
    consecutive_failures: int
    last_failure_at: datetime | None
    timeout_remaining_ms: int | None
    api_probe_skipped: bool = False
    offline: bool = False
    checked_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "breaker_state": self.breaker_state.value,
            "cache_ok": self.cache_ok,
            "api_ok": self.api_ok,
            "consecutive_failures": self.consecutive_failures,
            "last_failure_at": (
                self.last_failure_at.isoformat() if self.last_failure_at else None
            ),
            "timeout_remaining_ms": self.timeout_remaining_ms,
            "api_probe_skipped": self.api_probe_skipped,
            "offline": self.offline,
            "checked_at": self.checked_at.isoformat() if self.checked_at else None,
        }


def aggregate_status(cache_ok: bool, api_ok: bool, breaker_open: bool) -> HealthStatus:
    """unhealthy if both failed, degraded if one failed or breaker open."""
    if not cache_ok and not api_ok:
        return HealthStatus.UNHEALTHY
    if not cache_ok or not api_ok or breaker_open:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class HealthAggregator:
    """
    Produces a HealthReport for one ServiceClient.

    The upstream probe bypasses the pacer and retry executor: it is a single
    call with a short timeout whose outcome is fed to the same breaker the
    request path uses.
    """

    PROBE_KEY_PREFIX = "health:probe:"

    def __init__(
        self,
        client: ServiceClient,
        probe_path: str = "/status",
        probe_timeout: float = 5.0,
        offline: bool = False,
    ):
        self.client = client
        self.probe_path = probe_path
        self.probe_timeout = probe_timeout
        self.offline = offline

    async def check_cache(self) -> bool:
        """Write and read back a disposable key."""
        store = self.client.cache.store
        key = f"{self.PROBE_KEY_PREFIX}{uuid.uuid4().hex}"
        token = time.time()
        try:
            await store.set(key, token, ttl_seconds=10)
            ok = await store.get(key) == token
            await store.delete(key)
            return ok
        except Exception as e:
            logger.warning(f"Cache health probe failed: {e}")
            return False

    async def check_api(self) -> tuple[bool, bool]:
        """
        Probe upstream once.

        Returns:
            (api_ok, skipped)
        """
        if self.offline:
            return False, True
        if not self.client.breaker.would_allow():
            return False, True
        try:
            await self.client.call_once(self.probe_path, timeout=self.probe_timeout)
            return True, False
        except Exception as e:
            logger.warning(f"Upstream health probe failed: {type(e).__name__}: {e}")
            return False, False

    async def check(self) -> HealthReport:
        cache_ok = await self.check_cache()
        api_ok, skipped = await self.check_api()

        breaker = self.client.breaker
        remaining = breaker.time_until_reset()
        return HealthReport(
            status=aggregate_status(
                cache_ok, api_ok, breaker.state == CircuitState.OPEN
            ),
            breaker_state=breaker.state,
            cache_ok=cache_ok,
            api_ok=api_ok,
            consecutive_failures=breaker.consecutive_failures,
            last_failure_at=breaker.last_failure_at,
            timeout_remaining_ms=(
                int(remaining * 1000) if remaining is not None else None
            ),
            api_probe_skipped=skipped,
            offline=self.offline,
            checked_at=datetime.now(),
        )


class HealthMonitor:
    """Periodic health polling."""

    def __init__(
        self,
        aggregator: HealthAggregator,
        interval_seconds: int = 60,
        on_change: Callable[[HealthReport], Any] | None = None,
    ):
        self.aggregator = aggregator
        self.interval_seconds = interval_seconds
        self.scheduler = AsyncIOScheduler()
        self.last_report: HealthReport | None = None
        self._on_change = on_change
        self._is_running = False

    async def poll(self) -> HealthReport:
        """Run one check and record it, reporting status changes."""
        report = await self.aggregator.check()
        previous = self.last_report
        self.last_report = report

        if previous is None or previous.status != report.status:
            events = self.aggregator.client.events
            severity = (
                Severity.INFO
                if report.status == HealthStatus.HEALTHY
                else Severity.WARNING
            )
            events.log_event(
                EventCategory.SYSTEM,
                severity,
                f"Health status is now {report.status.value}",
                report.to_dict(),
            )
            if report.status == HealthStatus.UNHEALTHY:
                events.create_alert(
                    Severity.CRITICAL,
                    EventCategory.SYSTEM.value,
                    f"Service '{self.aggregator.client.service_id}' is unhealthy",
                    report.to_dict(),
                )
            if self._on_change is not None:
                self._on_change(report)
        return report

    async def _poll_job(self) -> None:
        try:
            await self.poll()
        except Exception as e:
            logger.error(f"Error in scheduled health check: {e}")

    def start(self) -> None:
        if self._is_running:
            logger.warning("Health monitor is already running")
            return

        self.scheduler.add_job(
            self._poll_job,
            trigger="interval",
            seconds=self.interval_seconds,
            id="health_check_job",
            name="Upstream Health Check",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(f"Health monitor started: checking every {self.interval_seconds}s")

    def stop(self) -> None:
        if not self._is_running:
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Health monitor stopped")

    def is_running(self) -> bool:
        return self._is_running
