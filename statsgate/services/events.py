"""
EventSink - structured observability events and alerts on top of loguru.

Every breaker transition, retry, stale cache serve and rate limit
violation goes through log_event(); conditions an operator should act on
also go through create_alert().
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from loguru import logger


class EventCategory(str, Enum):
    """Event categories."""

    RELIABILITY = "reliability"
    CACHE = "cache"
    SECURITY = "security"
    API = "api"
    SYSTEM = "system"


class Severity(str, Enum):
    """Event and alert severities."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


_LOGURU_LEVELS = {
    Severity.DEBUG: "DEBUG",
    Severity.INFO: "INFO",
    Severity.WARNING: "WARNING",
    Severity.ERROR: "ERROR",
    Severity.CRITICAL: "CRITICAL",
}


@dataclass
class Alert:
    """An alert raised for operators."""

    severity: Severity
    domain: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "domain": self.domain,
            "message": self.message,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


class EventSink:
    """
    Structured event logger with a bounded buffer of recent alerts.

    Usage:
        events = EventSink()
        events.log_event(EventCategory.RELIABILITY, Severity.WARNING,
                         "Circuit opened", {"service_id": "pubg"})
        events.create_alert(Severity.CRITICAL, "security", "IP blocked",
                            {"identifier": "1.2.3.4"})
    """

    def __init__(self, max_alerts: int = 100):
        self._alerts: deque[Alert] = deque(maxlen=max_alerts)
        self._counts: dict[str, int] = {}

    def log_event(
        self,
        category: EventCategory | str,
        severity: Severity | str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Log a structured event."""
        category = EventCategory(category)
        severity = Severity(severity)
        metadata = metadata or {}

        self._counts[category.value] = self._counts.get(category.value, 0) + 1
        logger.bind(category=category.value, metadata=metadata).log(
            _LOGURU_LEVELS[severity], f"[{category.value}] {message}"
        )

    def create_alert(
        self,
        severity: Severity | str,
        domain: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> Alert:
        """Record an alert and log it at its severity."""
        alert = Alert(
            severity=Severity(severity),
            domain=domain,
            message=message,
            metadata=metadata or {},
        )
        self._alerts.append(alert)
        logger.bind(alert=True, domain=domain, metadata=alert.metadata).log(
            _LOGURU_LEVELS[alert.severity], f"ALERT [{domain}] {message}"
        )
        return alert

    def recent_alerts(self, limit: int | None = None) -> list[Alert]:
        """Most recent alerts, newest last."""
        alerts = list(self._alerts)
        if limit is not None:
            alerts = alerts[-limit:]
        return alerts

    def event_counts(self) -> dict[str, int]:
        return dict(self._counts)
