"""FastAPI app exposing health and resilience status."""

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from statsgate.api.middleware import RateLimitMiddleware
from statsgate.datasource.base import BaseDataSource
from statsgate.ratelimit.admission import AdmissionController
from statsgate.services.health import HealthMonitor, HealthStatus


class StatsgateServer:
    """HTTP server for health checks and operational status."""

    def __init__(
        self,
        source: BaseDataSource,
        admission: AdmissionController,
        monitor: HealthMonitor | None = None,
    ):
        self.source = source
        self.admission = admission
        self.monitor = monitor
        self.app = FastAPI(title="Statsgate")

        self.app.middleware("http")(
            RateLimitMiddleware(admission, exempt_paths={"/health"})
        )

        # Register routes
        self.app.get("/health")(self.health_check)
        self.app.get("/status")(self.status)

    async def health_check(self):
        """Health check endpoint.

        Serves the monitor's last report when one exists, otherwise checks
        now. Unhealthy answers 503.
        """
        report = None
        if self.monitor is not None:
            report = self.monitor.last_report
        if report is None:
            report = await self.source.health_check()

        status_code = 503 if report.status == HealthStatus.UNHEALTHY else 200
        return JSONResponse(
            status_code=status_code,
            content={"service": self.source.service_id, **report.to_dict()},
        )

    async def status(self):
        """Breaker, cache and admission counters."""
        client = self.source.client
        return {
            **client.get_health_status(),
            "rate_limit": self.admission.limiter.stats.to_dict(),
            "alerts": [alert.to_dict() for alert in client.events.recent_alerts(10)],
            "events": client.events.event_counts(),
        }


def create_app(
    source: BaseDataSource,
    admission: AdmissionController,
    monitor: HealthMonitor | None = None,
) -> FastAPI:
    """Create FastAPI app.

    Args:
        source: Data source whose client is reported on
        admission: Admission control applied to every non-health route
        monitor: Optional running HealthMonitor

    Returns:
        FastAPI app
    """
    server = StatsgateServer(source, admission, monitor)
    return server.app
