from datetime import timedelta

import pytest

from statsgate.services import CircuitBreaker, CircuitBreakerConfig, CircuitState
from tests.conftest import FakeClock, RecordingEventSink


@pytest.fixture
def breaker(clock: FakeClock, events: RecordingEventSink) -> CircuitBreaker:
    return CircuitBreaker(
        "pubg",
        config=CircuitBreakerConfig(
            failure_threshold=5,
            open_timeout=timedelta(seconds=60),
            half_open_max_probes=3,
        ),
        events=events,
        clock=clock.datetime,
    )


def trip(breaker: CircuitBreaker, failures: int = 5) -> None:
    for _ in range(failures):
        assert breaker.allow()
        breaker.on_failure()


def test_opens_after_threshold_consecutive_failures(breaker):
    trip(breaker, 4)
    assert breaker.state == CircuitState.CLOSED
    trip(breaker, 1)
    assert breaker.state == CircuitState.OPEN
    assert breaker.last_failure_at is not None


def test_success_resets_consecutive_count(breaker):
    trip(breaker, 4)
    breaker.on_success()
    trip(breaker, 4)
    assert breaker.state == CircuitState.CLOSED
    assert breaker.consecutive_failures == 4


def test_open_fails_fast_until_timeout(breaker, clock):
    trip(breaker)
    clock.advance(10)
    assert breaker.allow() is False
    assert breaker.state == CircuitState.OPEN
    assert breaker.time_until_reset() == pytest.approx(50)


def test_half_open_after_timeout_then_closes(breaker, clock):
    trip(breaker)
    clock.advance(60.001)

    assert breaker.allow() is True
    assert breaker.state == CircuitState.HALF_OPEN
    breaker.on_success()
    assert breaker.allow() and breaker.allow()
    assert breaker.allow() is False  # probe budget spent
    breaker.on_success()
    breaker.on_success()

    assert breaker.state == CircuitState.CLOSED
    assert breaker.consecutive_failures == 0
    assert breaker.half_open_probes_used == 0


def test_failure_in_half_open_reopens(breaker, clock):
    trip(breaker)
    clock.advance(61)
    assert breaker.allow()
    breaker.on_failure()

    assert breaker.state == CircuitState.OPEN
    assert breaker.half_open_probes_used == 0
    assert breaker.allow() is False


def test_would_allow_has_no_side_effects(breaker, clock):
    trip(breaker)
    clock.advance(61)
    assert breaker.would_allow() is True
    assert breaker.state == CircuitState.OPEN


def test_transitions_emit_events_and_alert(breaker, events, clock):
    trip(breaker)
    clock.advance(61)
    breaker.allow()

    reliability = [e for e in events.events if e[0] == "reliability"]
    assert any("CLOSED -> OPEN" in e[2] for e in reliability)
    assert any("OPEN -> HALF_OPEN" in e[2] for e in reliability)
    alerts = events.recent_alerts()
    assert len(alerts) == 1
    assert alerts[0].domain == "reliability"


def test_reset(breaker):
    trip(breaker)
    breaker.reset()
    assert breaker.state == CircuitState.CLOSED
    assert breaker.get_status()["last_failure"] is None
