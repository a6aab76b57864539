"""
Shared fixtures: a controllable clock, in-memory storage and a geolocation
stub so service tests never touch the network.
"""

from datetime import datetime, timedelta, timezone

import pytest

from shortener.schemas import Location
from shortener.service import UrlShortenerService
from shortener.storage import MemoryStorage

BASE_URL = "http://sho.rt"
START = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class StubResolver:
    """Resolves every click to the same location and remembers the contexts."""

    def __init__(self, location: Location | None = None):
        self.location = location or Location(country="Testland", city="Testville", region="Test Region")
        self.contexts = []
        self.closed = False

    async def resolve(self, context=None) -> Location:
        self.contexts.append(context)
        return self.location

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def resolver() -> StubResolver:
    return StubResolver()


@pytest.fixture
def make_service(storage, resolver, clock):
    def _make(**overrides) -> UrlShortenerService:
        kwargs = dict(
            base_url=BASE_URL,
            storage_key="shortened-urls",
            code_length=6,
            default_validity_minutes=30,
            max_urls=None,
            clock=clock,
        )
        kwargs.update(overrides)
        return UrlShortenerService(
            kwargs.pop("storage", storage),
            kwargs.pop("resolver", resolver),
            **kwargs,
        )

    return _make


@pytest.fixture
def service(make_service) -> UrlShortenerService:
    return make_service()
