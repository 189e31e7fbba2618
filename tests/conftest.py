"""
Pytest configuration and shared fixtures.
"""

import os
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from pathlib import Path

# Set test environment
os.environ["DEBUG_MODE"] = "true"
os.environ["DATABASE_PATH"] = "./test_data/trades.db"
os.environ["ENABLE_TRADE_JOURNAL"] = "false"
os.environ["ENABLE_NOTIFICATIONS"] = "false"
os.environ["SEED_DEFAULT_MARKET"] = "true"


class FakeClock:
    """Manually advanced clock for TTL and daily-boundary tests."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment."""
    # Create test data directory
    test_dir = Path("./test_data")
    test_dir.mkdir(exist_ok=True)

    yield

    # Cleanup
    import shutil
    if test_dir.exists():
        shutil.rmtree(test_dir)


@pytest.fixture
def config():
    """Fresh configuration so tests can tweak it without leaking."""
    from arbitrage_bot.config import reload_config
    return reload_config()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 17, 12, 0, 0))


@pytest.fixture
def store(config, clock):
    from arbitrage_bot.storage import MarketStateStore
    return MarketStateStore(config, clock=clock)


async def build_market(store, exchanges=("Exchange A", "Exchange B"), symbol="ETH/USDT"):
    """Create exchanges and one trading pair, returned as a namespace."""
    created = [await store.create_exchange(name) for name in exchanges]
    pair = await store.create_trading_pair(symbol)
    return SimpleNamespace(exchanges=created, pair=pair)


async def configure_settings(store, **overrides):
    """Create the settings singleton with test-friendly values."""
    from arbitrage_bot.models import BotSettingsUpdate

    values = {
        "min_profit_margin": Decimal("1.0"),
        "max_position_size": Decimal("5000"),
        "auto_pause_on_loss": False,
    }
    values.update(overrides)
    return await store.create_or_update_bot_settings(BotSettingsUpdate(**values))


async def make_opportunity(store, market, margin, profit=Decimal("10"), buy=0, sell=1):
    """Insert an active opportunity directly, bypassing the scanner."""
    return await store.create_opportunity(
        pair_id=market.pair.pair_id,
        buy_exchange_id=market.exchanges[buy].exchange_id,
        sell_exchange_id=market.exchanges[sell].exchange_id,
        buy_price=Decimal("2845.00000000"),
        sell_price=Decimal("2880.00000000"),
        profit_margin=Decimal(str(margin)),
        potential_profit=profit,
    )
