"""
End-to-end tests for the wired engine.
"""

import asyncio

import pytest
from decimal import Decimal

from arbitrage_bot.engine.arbitrage_system import ArbitrageSystem
from arbitrage_bot.models import BotState
from arbitrage_bot.price_feed import PriceSource, QuoteData


class SpreadSource(PriceSource):
    """Kraken always quotes 2% above everyone else."""

    async def get_quote(self, exchange, pair):
        price = Decimal("102") if exchange.name == "Kraken" else Decimal("100")
        return QuoteData(price=price, volume=Decimal("1000000"), change_24h=Decimal("0"))


@pytest.fixture
def fast_config(config):
    config.engine.price_feed_interval_seconds = 0.01
    config.engine.scan_interval_seconds = 0.02
    config.engine.execution_interval_seconds = 0.05
    return config


class TestArbitrageSystem:
    """Tests for ArbitrageSystem."""

    @pytest.mark.asyncio
    async def test_start_seeds_default_market(self, config):
        system = ArbitrageSystem(config=config)

        async with system:
            assert system.is_running
            assert len(await system.store.get_all_exchanges()) == 4
            assert len(await system.store.get_all_trading_pairs()) == 3
            assert await system.store.get_bot_settings() is not None

        assert not system.is_running
        assert not system.price_feed.ticker.is_running
        assert not system.scanner.ticker.is_running

    @pytest.mark.asyncio
    async def test_seeding_can_be_disabled(self, config):
        config.market.seed_default_market = False

        async with ArbitrageSystem(config=config) as system:
            assert await system.store.get_all_exchanges() == []

    @pytest.mark.asyncio
    async def test_pipeline_executes_trades(self, fast_config):
        async with ArbitrageSystem(config=fast_config, price_source=SpreadSource()) as system:
            await system.controller.update_settings({"auto_pause_on_loss": False})
            await system.controller.start()
            await asyncio.sleep(0.5)

            status = await system.controller.get_status()
            assert status.state is BotState.RUNNING
            assert status.runtime.trades_executed > 0
            assert status.daily_profit > 0

        assert system.controller.state is BotState.STOPPED
        assert not system.controller.ticker.is_running

    @pytest.mark.asyncio
    async def test_no_trades_while_stopped(self, fast_config):
        async with ArbitrageSystem(config=fast_config, price_source=SpreadSource()) as system:
            await asyncio.sleep(0.2)

            assert await system.store.get_active_opportunities()
            assert await system.store.get_all_trades() == []

    @pytest.mark.asyncio
    async def test_instances_are_independent(self, config):
        config.market.seed_default_market = False
        first = ArbitrageSystem(config=config)
        second = ArbitrageSystem(config=config)

        await first.store.create_exchange("Binance")

        assert len(await first.store.get_all_exchanges()) == 1
        assert await second.store.get_all_exchanges() == []
