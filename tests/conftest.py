"""Shared fixtures for governor tests."""

import pytest

from governor.app.core.store import InMemoryWindowStore, reset_window_store


class FakeClock:
    """Controllable time source returning UNIX seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return InMemoryWindowStore()


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset the global store before and after each test."""
    reset_window_store()
    yield
    reset_window_store()
