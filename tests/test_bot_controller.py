"""
Tests for the bot lifecycle and status reporting.
"""

import asyncio

import pytest
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

from arbitrage_bot.engine.bot_controller import BotController, summarize_trades
from arbitrage_bot.engine.execution_engine import BatchResult
from arbitrage_bot.exceptions import ConfigurationError, ValidationError
from arbitrage_bot.models import BotSettingsUpdate, BotState, TradeStatus

from conftest import build_market, configure_settings, make_opportunity


def make_controller(store, config):
    return BotController(store, config=config)


async def record_trade(store, market, profit, status=TradeStatus.COMPLETED, amount="1"):
    return await store.create_trade(
        pair_id=market.pair.pair_id,
        buy_exchange_id=market.exchanges[0].exchange_id,
        sell_exchange_id=market.exchanges[1].exchange_id,
        buy_price=Decimal("100"),
        sell_price=Decimal("101"),
        amount=Decimal(amount),
        profit=Decimal(profit),
        status=status,
    )


class TestLifecycle:
    """Tests for start, pause and stop."""

    @pytest.mark.asyncio
    async def test_start_requires_settings(self, store, config):
        bot = make_controller(store, config)

        with pytest.raises(ConfigurationError):
            await bot.start()

        assert bot.state is BotState.STOPPED

    @pytest.mark.asyncio
    async def test_start_activates_bot(self, store, config):
        bot = make_controller(store, config)
        await build_market(store)
        await configure_settings(store)

        status = await bot.start()

        assert status.state is BotState.RUNNING
        assert status.is_active
        assert status.start_time == store.now()
        assert status.active_pairs == 1
        assert bot.ticker.is_running
        assert (await store.get_bot_settings()).is_active

        await bot.shutdown()

    @pytest.mark.asyncio
    async def test_double_start_keeps_counters(self, store, config):
        bot = make_controller(store, config)
        market = await build_market(store)
        await configure_settings(store)
        await bot.start()

        await make_opportunity(store, market, "1.5", profit=Decimal("12.5"))
        await bot.ticker.run_once()
        status = await bot.start()

        assert status.trades_executed == 1
        assert status.total_profit == Decimal("12.5")

        await bot.shutdown()

    @pytest.mark.asyncio
    async def test_pause_keeps_counters(self, store, config):
        bot = make_controller(store, config)
        market = await build_market(store)
        await configure_settings(store)
        await bot.start()
        await make_opportunity(store, market, "1.5", profit=Decimal("12.5"))
        await bot.ticker.run_once()

        status = await bot.pause()

        assert status.state is BotState.PAUSED
        assert not status.is_active
        assert status.trades_executed == 1
        assert not bot.ticker.is_running
        assert not (await store.get_bot_settings()).is_active

        await bot.shutdown()

    @pytest.mark.asyncio
    async def test_pause_when_stopped_does_nothing(self, store, config):
        bot = make_controller(store, config)
        await configure_settings(store)

        status = await bot.pause()

        assert status.state is BotState.STOPPED

    @pytest.mark.asyncio
    async def test_start_from_paused_resets_counters(self, store, config):
        bot = make_controller(store, config)
        market = await build_market(store)
        await configure_settings(store)
        await bot.start()
        await make_opportunity(store, market, "1.5")
        await bot.ticker.run_once()
        await bot.pause()

        status = await bot.start()

        assert status.state is BotState.RUNNING
        assert status.trades_executed == 0
        assert status.total_profit == Decimal("0")

        await bot.shutdown()

    @pytest.mark.asyncio
    async def test_stop_clears_runtime(self, store, config):
        bot = make_controller(store, config)
        market = await build_market(store)
        await configure_settings(store)
        await bot.start()
        await make_opportunity(store, market, "1.5")
        await bot.ticker.run_once()

        status = await bot.stop()
        await bot.ticker.wait_closed()

        assert status.state is BotState.STOPPED
        assert status.start_time is None
        assert status.trades_executed == 0
        assert not bot.ticker.is_running
        assert not (await store.get_bot_settings()).is_active

        # Stopping twice is harmless
        await bot.stop()

    @pytest.mark.asyncio
    async def test_emergency_stop_deactivates_opportunities(self, store, config):
        bot = make_controller(store, config)
        market = await build_market(store)
        await configure_settings(store)
        await bot.start()
        for margin in ("1.1", "1.2", "1.3"):
            await make_opportunity(store, market, margin)

        message = await bot.emergency_stop()
        await bot.ticker.wait_closed()

        assert message == "Emergency stop executed successfully"
        assert bot.state is BotState.STOPPED
        assert await store.get_active_opportunities() == []
        assert not (await store.get_bot_settings()).is_active

    @pytest.mark.asyncio
    async def test_emergency_stop_when_stopped(self, store, config):
        bot = make_controller(store, config)

        message = await bot.emergency_stop()

        assert message == "Emergency stop executed successfully"
        assert bot.state is BotState.STOPPED

    @pytest.mark.asyncio
    async def test_tick_from_previous_run_is_discarded(self, store, config):
        release = asyncio.Event()

        class SlowEngine:
            async def execute_top_opportunities(self):
                await release.wait()
                return BatchResult(trades=[SimpleNamespace(profit=Decimal("5"))])

        bot = BotController(store, execution_engine=SlowEngine(), config=config)
        await build_market(store)
        await configure_settings(store)
        await bot.start()

        tick = asyncio.create_task(bot.ticker.run_once())
        await asyncio.sleep(0)
        await bot.stop()
        await bot.start()
        release.set()
        await tick

        assert bot.runtime_status().trades_executed == 0

        await bot.shutdown()


class TestLossLimit:
    """Tests for the daily loss guard."""

    @pytest.mark.asyncio
    async def test_loss_limit_pauses_bot(self, store, config):
        bot = make_controller(store, config)
        market = await build_market(store)
        await configure_settings(
            store, daily_loss_limit=Decimal("5"), auto_pause_on_loss=True
        )
        await bot.start()
        await make_opportunity(store, market, "1.5", profit=Decimal("-10"))

        await bot.ticker.run_once()

        assert bot.state is BotState.PAUSED
        assert not (await store.get_bot_settings()).is_active

        await bot.shutdown()

    @pytest.mark.asyncio
    async def test_loss_limit_ignored_when_disabled(self, store, config):
        bot = make_controller(store, config)
        market = await build_market(store)
        await configure_settings(
            store, daily_loss_limit=Decimal("5"), auto_pause_on_loss=False
        )
        await bot.start()
        await make_opportunity(store, market, "1.5", profit=Decimal("-10"))

        await bot.ticker.run_once()

        assert bot.state is BotState.RUNNING

        await bot.shutdown()


class TestStatus:
    """Tests for status metrics."""

    @pytest.mark.asyncio
    async def test_status_metrics_from_ledger(self, store, config):
        bot = make_controller(store, config)
        market = await build_market(store)
        await record_trade(store, market, "10", amount="2")
        await record_trade(store, market, "-3")
        await record_trade(store, market, "0", status=TradeStatus.FAILED)

        status = await bot.get_status()

        assert status.state is BotState.STOPPED
        assert status.daily_profit == Decimal("7")
        assert status.daily_volume == Decimal("300")
        assert status.total_trades == 3
        assert status.success_rate == pytest.approx(33.333, rel=1e-3)

    @pytest.mark.asyncio
    async def test_status_without_trades(self, store, config):
        bot = make_controller(store, config)

        status = await bot.get_status()

        assert status.success_rate == 0.0
        assert status.daily_profit == Decimal("0")
        assert status.total_trades == 0
        assert not status.is_active

    @pytest.mark.asyncio
    async def test_daily_figures_reset_at_midnight(self, store, config, clock):
        bot = make_controller(store, config)
        market = await build_market(store)
        await record_trade(store, market, "10")
        clock.advance(24 * 3600)
        await record_trade(store, market, "4")

        status = await bot.get_status()

        assert status.daily_profit == Decimal("4")
        assert status.total_trades == 2
        assert status.success_rate == pytest.approx(100.0)

    def test_summarize_trades_empty(self):
        summary = summarize_trades([], datetime(2026, 10, 17))

        assert summary["total_trades"] == 0
        assert summary["success_rate"] == 0.0


class TestSettingsAndQueries:
    """Tests for settings updates and read pass-throughs."""

    @pytest.mark.asyncio
    async def test_update_settings_from_dict(self, store, config):
        bot = make_controller(store, config)

        settings = await bot.update_settings({"min_profit_margin": "0.5", "gas_limit": 250000})

        assert settings.min_profit_margin == Decimal("0.5")
        assert settings.gas_limit == 250000
        assert (await bot.get_settings()).gas_limit == 250000

    @pytest.mark.asyncio
    async def test_update_settings_accepts_model(self, store, config):
        bot = make_controller(store, config)

        settings = await bot.update_settings(BotSettingsUpdate(stop_loss=Decimal("3")))

        assert settings.stop_loss == Decimal("3")

    @pytest.mark.asyncio
    async def test_update_settings_rejects_bad_values(self, store, config):
        bot = make_controller(store, config)

        with pytest.raises(ValidationError) as exc_info:
            await bot.update_settings({"max_position_size": "-1"})

        assert exc_info.value.errors
        assert await store.get_bot_settings() is None

    @pytest.mark.asyncio
    async def test_update_settings_rejects_unknown_fields(self, store, config):
        bot = make_controller(store, config)

        with pytest.raises(ValidationError):
            await bot.update_settings({"leverage": 10})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["max_position_size", "daily_loss_limit"])
    async def test_update_settings_rejects_oversized_amounts(self, store, config, field):
        bot = make_controller(store, config)

        with pytest.raises(ValidationError):
            await bot.update_settings({field: "1e22"})

        assert await store.get_bot_settings() is None

    @pytest.mark.asyncio
    async def test_largest_position_size_still_scans(self, store, config):
        from arbitrage_bot.engine.opportunity_scanner import OpportunityScanner

        bot = make_controller(store, config)
        market = await build_market(store)
        await bot.update_settings({"max_position_size": "1e15", "min_profit_margin": "1"})
        for exchange, price in zip(market.exchanges, ("2845", "2880")):
            await store.upsert_price(
                exchange.exchange_id, market.pair.pair_id, Decimal(price), Decimal("1")
            )

        result = await OpportunityScanner(store, config).scan()

        assert result.created == 1

    @pytest.mark.asyncio
    async def test_manual_execution_through_controller(self, store, config):
        bot = make_controller(store, config)
        market = await build_market(store)
        await configure_settings(store, is_active=True)
        opportunity = await make_opportunity(store, market, "1.5")

        trade = await bot.execute_opportunity(opportunity.opportunity_id)

        assert trade.opportunity_id == opportunity.opportunity_id
        assert await bot.list_active_opportunities() == []
        assert bot.runtime_status().trades_executed == 0

    @pytest.mark.asyncio
    async def test_recent_trades_default_limit(self, store, config):
        bot = make_controller(store, config)
        market = await build_market(store)
        for _ in range(12):
            await record_trade(store, market, "1")

        assert len(await bot.get_recent_trades()) == 10
        assert len(await bot.get_recent_trades(limit=5)) == 5
        assert len(await bot.get_all_trades()) == 12

    @pytest.mark.asyncio
    async def test_reference_listings(self, store, config):
        bot = make_controller(store, config)
        market = await build_market(store)
        await store.set_exchange_active(market.exchanges[1].exchange_id, False)

        assert [e.name for e in await bot.list_exchanges()] == ["Exchange A"]
        assert [p.symbol for p in await bot.list_trading_pairs()] == ["ETH/USDT"]
