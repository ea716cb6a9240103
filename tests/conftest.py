"""Shared test fixtures."""

from datetime import UTC, datetime

import pytest

from guard_chain import ErrorHandler, GuardChain, GuardChainSettings, RequestContext
from guard_chain.stores import InMemoryCacheStore, InMemoryCounterStore


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self._now = start

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._now, tz=UTC)

    def advance(self, seconds: float) -> None:
        self._now += seconds


class RecordingObserver:
    def __init__(self):
        self.events = []

    def record(self, event):
        self.events.append(event)

    def named(self, name):
        return [e for e in self.events if e.name == name]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def settings():
    return GuardChainSettings(environment="development")


@pytest.fixture
def error_handler(observer, clock):
    return ErrorHandler(observer=observer, clock=clock)


@pytest.fixture
def chain(error_handler, observer, settings):
    return GuardChain(error_handler=error_handler, observer=observer, settings=settings)


@pytest.fixture
def counter_store(clock):
    return InMemoryCounterStore(clock)


@pytest.fixture
def cache_store(clock):
    return InMemoryCacheStore(clock=clock)


@pytest.fixture
def alice_ctx():
    return RequestContext(
        method="GET",
        path="/items",
        headers={"Authorization": "Bearer alice-token"},
        client="10.0.0.1",
    )


@pytest.fixture
def bob_ctx():
    return RequestContext(method="GET", path="/items", client="10.0.0.2")


@pytest.fixture
def post_ctx():
    return RequestContext(
        method="POST",
        path="/items",
        body={"name": "widget"},
        client="10.0.0.1",
    )
