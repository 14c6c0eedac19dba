"""Pytest configuration and fixtures."""

import pytest

from tickstream.market.bus import UpdateBus
from tickstream.market.store import TickerStore


@pytest.fixture
def event_loop_policy():
    """Use the default event loop policy for all async tests."""
    import asyncio

    return asyncio.DefaultEventLoopPolicy()


@pytest.fixture
def store() -> TickerStore:
    """A freshly seeded ticker store."""
    return TickerStore()


@pytest.fixture
def bus() -> UpdateBus:
    return UpdateBus()


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
