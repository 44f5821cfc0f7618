"""Global pytest fixtures and environment overrides.

This file establishes the baseline test environment, ensuring that NO real
network calls are performed during the test suite and that every test sees
the same settings regardless of the developer's local .env file.
"""

import os

import pytest

from tests.helpers import SESSION_OPEN_TS, WEEKEND_TS, FakeClock, make_history
from trade_scoring.config import get_settings
from trade_scoring.domain.schemas import PriceHistory, Quote

# Set env vars at module level so they are loaded BEFORE any settings object
# is constructed during collection.
os.environ["FINNHUB_API_KEY"] = "test_finnhub_key"
os.environ["FINNHUB_BASE_URL"] = "https://finnhub.test/api/v1"
os.environ["TEST_MODE"] = "True"


@pytest.fixture(autouse=True)
def mock_env_vars():
    """
    Reset the variables and the cached settings for every test, in case a
    test modifies os.environ and doesn't clean up.
    """
    os.environ["FINNHUB_API_KEY"] = "test_finnhub_key"
    os.environ["FINNHUB_BASE_URL"] = "https://finnhub.test/api/v1"
    os.environ["TEST_MODE"] = "True"
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def open_clock() -> FakeClock:
    return FakeClock(SESSION_OPEN_TS)


@pytest.fixture
def closed_clock() -> FakeClock:
    return FakeClock(WEEKEND_TS)


@pytest.fixture
def rising_history() -> PriceHistory:
    """30 closes rising by exactly 1 per bar (100..129)."""
    return make_history(range(100, 130))


@pytest.fixture
def flat_history() -> PriceHistory:
    """30 identical closes with no intraday range and constant volume."""
    return make_history([50.0] * 30, spread=0.0)


@pytest.fixture
def flat_quote() -> Quote:
    return Quote(
        price=50.0,
        open=50.0,
        high=50.0,
        low=50.0,
        previous_close=50.0,
        change_percent=0.0,
        volume=1_000_000.0,
    )
