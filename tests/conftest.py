"""Shared pytest fixtures for event sync tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Union

import pytest
import pytest_asyncio

from servers.event_sync.models import EnabledCity, ExternalEvent, Page
from servers.event_sync.normalize import build_event, clean_str, parse_timestamp
from servers.event_sync.providers.base import Provider
from servers.event_sync.resilience.throttle import ProviderThrottle
from servers.event_sync.store import SqlEventStore


NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeTimer:
    """Monotonic clock plus sleep that records delays instead of waiting."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


PageResult = Union[Page, Exception]


class StubProvider(Provider):
    """Provider that replays scripted pages and records every call."""

    def __init__(
        self,
        name: str = "stub",
        responses: Optional[list[PageResult]] = None,
        handler: Optional[Callable[[str, str, int], PageResult]] = None,
        start_page: int = 0,
        max_pages: int = 3,
    ):
        super().__init__(client=None, api_key="test-key", max_pages=max_pages)
        self.name = name
        self.start_page = start_page
        self.responses = list(responses or [])
        self.handler = handler
        self.calls: list[tuple[str, str, int]] = []

    async def fetch_page(self, city: str, state: str, radius_miles: int, page: int) -> Page:
        self.calls.append((city, state, page))
        if self.handler is not None:
            result = self.handler(city, state, page)
        elif self.responses:
            result = self.responses.pop(0)
        else:
            result = Page(is_last_page=True)

        if isinstance(result, Exception):
            raise result
        return result

    def normalize_record(self, raw: dict[str, Any]) -> Optional[ExternalEvent]:
        return build_event(
            external_id=clean_str(raw.get("id")),
            title=clean_str(raw.get("name")),
            description=clean_str(raw.get("description")),
            start_time=parse_timestamp(raw.get("start")),
            venue_name=clean_str(raw.get("venue")),
            external_url=clean_str(raw.get("url")),
        )

    @property
    def pages_requested(self) -> list[int]:
        return [page for _, _, page in self.calls]


def raw_event(event_id: str, name: Optional[str] = None, **overrides: Any) -> dict[str, Any]:
    """Raw record in the shape StubProvider understands."""
    record = {
        "id": event_id,
        "name": name or f"Event {event_id}",
        "start": "2025-02-01T20:00:00Z",
        "url": f"https://events.example.com/{event_id}",
        "venue": "Mohawk",
    }
    record.update(overrides)
    return record


def make_event(external_id: str, title: Optional[str] = None, **overrides: Any) -> ExternalEvent:
    fields = {
        "external_id": external_id,
        "title": title or f"Event {external_id}",
        "description": "Live music",
        "start_time": datetime(2025, 2, 1, 20, 0, tzinfo=timezone.utc),
        "end_time": None,
        "venue_name": "Mohawk",
        "external_url": f"https://events.example.com/{external_id}",
    }
    fields.update(overrides)
    return ExternalEvent(**fields)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def throttle(timer: FakeTimer) -> ProviderThrottle:
    """Throttle that never really sleeps."""
    return ProviderThrottle("stub", min_interval=0.35, sleep=timer.sleep, clock=timer.clock)


@pytest.fixture
def austin() -> EnabledCity:
    return EnabledCity(city="Austin", state="TX")


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'events.db'}"


@pytest_asyncio.fixture
async def store(database_url: str):
    """SQLite-backed event store with tables created."""
    event_store = SqlEventStore.from_url(database_url)
    await event_store.create_schema()
    yield event_store
    await event_store.close()


@pytest.fixture
def stub_provider() -> type[StubProvider]:
    """Factory for scripted providers."""
    return StubProvider


@pytest.fixture(name="raw_event")
def raw_event_factory() -> Callable[..., dict[str, Any]]:
    return raw_event


@pytest.fixture(name="make_event")
def make_event_factory() -> Callable[..., ExternalEvent]:
    return make_event
