from unittest.mock import AsyncMock, MagicMock

import pytest

from statsgate.services import (
    CircuitState,
    HealthAggregator,
    HealthMonitor,
    HealthStatus,
    StoreError,
)
from statsgate.services.health import aggregate_status
from tests.conftest import timeout_error


@pytest.mark.parametrize(
    "cache_ok, api_ok, breaker_open, expected",
    [
        (True, True, False, HealthStatus.HEALTHY),
        (True, False, False, HealthStatus.DEGRADED),
        (False, True, False, HealthStatus.DEGRADED),
        (True, True, True, HealthStatus.DEGRADED),
        (False, False, False, HealthStatus.UNHEALTHY),
        (False, False, True, HealthStatus.UNHEALTHY),
    ],
)
def test_aggregate_status(cache_ok, api_ok, breaker_open, expected):
    assert aggregate_status(cache_ok, api_ok, breaker_open) == expected


@pytest.mark.asyncio
async def test_healthy_probe_hits_status_once(make_client, upstream):
    upstream.routes["/status"] = {"data": {"id": "pubg-api"}}
    client = make_client()

    report = await HealthAggregator(client).check()

    assert report.status == HealthStatus.HEALTHY
    assert report.breaker_state == CircuitState.CLOSED
    assert report.timeout_remaining_ms is None
    assert upstream.count("/status") == 1


@pytest.mark.asyncio
async def test_probe_failure_feeds_breaker(make_client, upstream):
    upstream.routes["/status"] = timeout_error()
    client = make_client(max_retries=3)

    report = await HealthAggregator(client, probe_timeout=1.0).check()

    assert report.status == HealthStatus.DEGRADED
    assert not report.api_ok and not report.api_probe_skipped
    assert upstream.count("/status") == 1
    assert client.breaker.consecutive_failures == 1


@pytest.mark.asyncio
async def test_unhealthy_when_cache_and_api_fail(make_client, upstream, store):
    upstream.routes["/status"] = timeout_error()
    store.set = AsyncMock(side_effect=StoreError("down"))
    client = make_client()

    report = await HealthAggregator(client).check()
    assert report.status == HealthStatus.UNHEALTHY
    assert report.to_dict()["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_offline_skips_probe(make_client, upstream):
    client = make_client()
    report = await HealthAggregator(client, offline=True).check()

    assert report.api_probe_skipped and report.offline
    assert upstream.calls == []


@pytest.mark.asyncio
async def test_monitor_reports_changes_and_alerts(make_client, upstream, store, events):
    upstream.routes["/status"] = {"data": {}}
    client = make_client()
    on_change = MagicMock()
    monitor = HealthMonitor(HealthAggregator(client), interval_seconds=60, on_change=on_change)

    assert (await monitor.poll()).status == HealthStatus.HEALTHY
    await monitor.poll()
    assert on_change.call_count == 1

    upstream.routes["/status"] = timeout_error()
    store.set = AsyncMock(side_effect=StoreError("down"))
    assert (await monitor.poll()).status == HealthStatus.UNHEALTHY
    assert on_change.call_count == 2
    assert events.recent_alerts()[-1].severity.value == "critical"


@pytest.mark.asyncio
async def test_monitor_start_stop(make_client):
    monitor = HealthMonitor(HealthAggregator(make_client()), interval_seconds=60)
    monitor.start()
    assert monitor.is_running()
    assert monitor.scheduler.get_job("health_check_job") is not None
    monitor.stop()
    assert not monitor.is_running()
