"""Pytest configuration and fixtures."""

from collections.abc import Generator

import pytest

from quotagate.config import get_settings


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeManager:
    """Quota manager double with an externally controlled admission gate."""

    def __init__(self, max_delay: float = 0.0) -> None:
        self.allow = True
        self.max_delay = max_delay
        self.active_count = 0
        self.start_calls = 0
        self.close_calls = 0

    def start(self) -> bool:
        self.start_calls += 1
        if not self.allow or self.close_calls:
            return False
        self.active_count += 1
        return True

    def end(self) -> None:
        self.active_count -= 1

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def fake_manager() -> FakeManager:
    """Create a fake quota manager that admits everything."""
    return FakeManager()


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Make every test read settings from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
