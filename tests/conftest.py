from datetime import datetime, timedelta

import httpx
import pytest

from statsgate.services import (
    CacheManager,
    CircuitBreaker,
    CircuitBreakerConfig,
    EventSink,
    HttpTransport,
    RequestPacer,
    RetryExecutor,
    RetryPolicy,
    ServiceClient,
)
from statsgate.store import MemoryCacheStore


class FakeClock:
    """Manually advanced clock usable as both a float and a datetime source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def datetime(self) -> datetime:
        return datetime.fromtimestamp(self.now)

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingEventSink(EventSink):
    """EventSink that also keeps every event for assertions."""

    def __init__(self):
        super().__init__()
        self.events: list[tuple[str, str, str, dict]] = []

    def log_event(self, category, severity, message, metadata=None):
        super().log_event(category, severity, message, metadata)
        self.events.append(
            (str(getattr(category, "value", category)),
             str(getattr(severity, "value", severity)),
             message,
             metadata or {})
        )

    def names(self) -> list[str]:
        return [meta.get("event") for _, _, _, meta in self.events if meta.get("event")]


class MockUpstream:
    """httpx.MockTransport handler driven by a route table."""

    def __init__(self):
        self.routes: dict[str, object] = {}
        self.calls: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"errors": [{"title": "Not Found", "detail": "no route"}]})
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    def count(self, path: str) -> int:
        return sum(1 for call in self.calls if call.url.path == path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def store(clock) -> MemoryCacheStore:
    return MemoryCacheStore(max_size=100, clock=clock)


@pytest.fixture
def upstream() -> MockUpstream:
    return MockUpstream()


@pytest.fixture
def make_client(clock, events, store, upstream):
    """Build a ServiceClient on the mock upstream with deterministic timing."""

    def _make(
        max_retries: int = 0,
        failure_threshold: int = 5,
        open_timeout: float = 60.0,
    ) -> ServiceClient:
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(upstream), base_url="https://api.test"
        )
        transport = HttpTransport("pubg", "https://api.test", api_key="k", client=http)
        return ServiceClient(
            transport=transport,
            cache=CacheManager(store, prefix="test:", clock=clock),
            breaker=CircuitBreaker(
                "pubg",
                config=CircuitBreakerConfig(
                    failure_threshold=failure_threshold,
                    open_timeout=timedelta(seconds=open_timeout),
                ),
                events=events,
                clock=clock.datetime,
            ),
            pacer=RequestPacer(min_interval=0.0, clock=clock, sleep=clock.sleep),
            retry=RetryExecutor(
                RetryPolicy(max_retries=max_retries), events=events, sleep=clock.sleep
            ),
            events=events,
        )

    return _make


def timeout_error() -> httpx.ConnectTimeout:
    return httpx.ConnectTimeout("timed out")


