"""
Pytest configuration and shared fixtures.
"""
import pytest

from quotebot.core.config.settings import AppSettings, MarketMakingSettings, Settings
from quotebot.core.models import Position, PositionSide
from quotebot.utils.logging import setup_logging
from tests.mocks import FakeAccountClient, FakeMarketData, simple_board
from tests.utils.base_test import UnitTestCase

REFERENCE_PRICES = [99, 100, 101, 100, 100]


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """Route every log event through the real stdlib configuration."""
    setup_logging(Settings(app=AppSettings(log_level="DEBUG")))


@pytest.fixture
def mm_settings():
    """Fast cycle settings: 20 ms interval and hold."""
    return MarketMakingSettings(interval=0.02, risk_rate=1.0, lot_size=0.01)


@pytest.fixture
def reference_market_data():
    """Window [99, 100, 101, 100, 100] around a mid of 100."""
    return FakeMarketData(UnitTestCase.make_executions(REFERENCE_PRICES), simple_board(100.0))


@pytest.fixture
def flat_account():
    return FakeAccountClient()


@pytest.fixture
def long_account():
    return FakeAccountClient([Position(PositionSide.LONG, 0.03)])
