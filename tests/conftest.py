"""
Pytest configuration and shared fixtures.
"""
import random
from typing import List

import pytest

from locintel.core import database
from locintel.core.cache import CacheAsideStore, InMemoryCacheBackend
from locintel.core.config import reset_settings
from locintel.core.rate_limiter import SlidingWindowRateLimiter
from locintel.core.repository import SqlAlchemyReportRepository
from locintel.core.retry import RetryPolicy
from helpers import FakeClock


@pytest.fixture(scope="function")
def clean_env(monkeypatch):
    """
    Clean environment for testing.

    Removes all app-related env vars to ensure clean state.
    """
    env_vars = [
        "DATABASE_URL",
        "LOCATION_PROVIDER",
        "FOURSQUARE_API_KEY",
        "GOOGLE_PLACES_API_KEY",
        "LOG_LEVEL",
        "MAX_RETRIES",
        "CACHE_ENABLED",
        "CACHE_TTL__TRAFFIC",
        "FOURSQUARE_REQUESTS_PER_WINDOW",
        "RATE_LIMIT_WINDOW_SECONDS",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)

    # Keep a developer's .env out of the tests
    monkeypatch.chdir("/")

    # Reset settings singleton
    reset_settings()

    yield

    # Reset again after test
    reset_settings()


@pytest.fixture(scope="function")
def test_db():
    """
    In-memory SQLite engine with all tables.

    Fresh database for each test.
    """
    engine = database.create_db_engine("sqlite:///:memory:")
    database.create_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def repository(test_db):
    return SqlAlchemyReportRepository(test_db)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def cache():
    return CacheAsideStore(InMemoryCacheBackend())


@pytest.fixture
def limiter():
    return SlidingWindowRateLimiter(capacity=100, window_seconds=60, name="test")


@pytest.fixture
def no_sleep_retry():
    """Retry policy that records delays instead of sleeping."""
    delays: List[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    policy = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0, rng=random.Random(7), sleep=_sleep)
    policy.delays = delays
    return policy
