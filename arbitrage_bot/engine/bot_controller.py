"""
Bot lifecycle control and status reporting.
"""

import asyncio
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, TYPE_CHECKING, Union

import pydantic

from arbitrage_bot.config import BotConfig, get_config
from arbitrage_bot.engine.execution_engine import ExecutionEngine
from arbitrage_bot.exceptions import ConfigurationError, ValidationError
from arbitrage_bot.logger import get_logger, trade_logger
from arbitrage_bot.models import (
    BotRuntimeStatus,
    BotSettings,
    BotSettingsUpdate,
    BotState,
    BotStatusReport,
    Exchange,
    OpportunityWithDetails,
    PriceQuoteWithDetails,
    Trade,
    TradeStatus,
    TradeWithDetails,
    TradingPair,
)
from arbitrage_bot.scheduler import Ticker
from arbitrage_bot.storage import MarketStateStore

if TYPE_CHECKING:
    from arbitrage_bot.notifications import NotificationService


logger = get_logger("bot")


def summarize_trades(trades: List[TradeWithDetails], now: datetime) -> Dict[str, Any]:
    """
    Aggregate a trade window into the status metrics.

    Daily figures count completed trades executed since local midnight;
    the success rate is completed trades with positive profit over every
    trade in the window.
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    completed_today = [
        t.trade for t in trades
        if t.trade.status is TradeStatus.COMPLETED and t.trade.executed_at >= midnight
    ]

    daily_profit = sum((t.profit for t in completed_today), Decimal("0"))
    daily_volume = sum((t.volume for t in completed_today), Decimal("0"))

    successful = len([
        t for t in trades
        if t.trade.status is TradeStatus.COMPLETED and t.trade.profit > 0
    ])
    success_rate = (successful / len(trades)) * 100 if trades else 0.0

    return {
        "daily_profit": daily_profit,
        "daily_volume": daily_volume,
        "success_rate": success_rate,
        "total_trades": len(trades),
    }


class BotController:
    """
    Owns the run state (stopped / running / paused) and the execution ticker.

    Transitions:
    - start:  stopped|paused -> running (counters reset, ticker started)
    - pause:  running -> paused (ticker stopped, counters kept)
    - stop:   any -> stopped (ticker stopped, counters cleared)
    - emergency_stop: stop, cancel any in-flight tick, deactivate every
      active opportunity
    """

    def __init__(
        self,
        store: MarketStateStore,
        execution_engine: Optional[ExecutionEngine] = None,
        config: Optional[BotConfig] = None,
        notifier: Optional["NotificationService"] = None,
    ):
        self.store = store
        self.config = config or get_config()
        self.execution_engine = execution_engine or ExecutionEngine(store, self.config)
        self.notifier = notifier

        self._status = BotRuntimeStatus()
        self._lifecycle_lock = asyncio.Lock()

        # Bumped on every start/stop so a tick that outlives its run cannot
        # write into the next run's counters
        self._run_id = 0

        self.ticker = Ticker(
            "execution",
            self.config.engine.execution_interval_seconds,
            self._execution_tick,
        )

    @property
    def state(self) -> BotState:
        return self._status.state

    def runtime_status(self) -> BotRuntimeStatus:
        return replace(self._status)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> BotRuntimeStatus:
        """
        Start (or resume) automatic execution.

        Starting an already running bot is a no-op that keeps the current
        run's counters.

        Raises:
            ConfigurationError: no bot settings exist
        """
        async with self._lifecycle_lock:
            if self._status.state is BotState.RUNNING:
                logger.info("Bot already running")
                return self.runtime_status()

            if await self.store.get_bot_settings() is None:
                raise ConfigurationError("Bot settings not configured")

            await self.store.create_or_update_bot_settings(BotSettingsUpdate(is_active=True))

            previous = self._status.state
            self._run_id += 1
            self._status = BotRuntimeStatus(
                is_active=True,
                state=BotState.RUNNING,
                start_time=self.store.now(),
                active_pairs=len(await self.store.get_active_trading_pairs()),
            )
            self.ticker.start()

        await self._announce(previous, BotState.RUNNING)
        return self.runtime_status()

    async def pause(self, reason: str = "") -> BotRuntimeStatus:
        """Pause a running bot. Pausing a stopped or paused bot does nothing."""
        async with self._lifecycle_lock:
            if self._status.state is not BotState.RUNNING:
                return self.runtime_status()

            await self._deactivate_settings()
            self.ticker.stop()
            self._status.state = BotState.PAUSED
            self._status.is_active = False

        await self._announce(BotState.RUNNING, BotState.PAUSED, reason)
        return self.runtime_status()

    async def stop(self) -> BotRuntimeStatus:
        """Stop the bot and clear run counters. Safe to call repeatedly."""
        async with self._lifecycle_lock:
            previous = await self._halt(cancel_inflight=False)

        if previous is not BotState.STOPPED:
            await self._announce(previous, BotState.STOPPED)
        return self.runtime_status()

    async def emergency_stop(self) -> str:
        """Halt immediately and deactivate every active opportunity."""
        async with self._lifecycle_lock:
            previous = await self._halt(cancel_inflight=True)
            deactivated = await self.store.deactivate_all_opportunities()

        message = "Emergency stop executed successfully"
        logger.warning(
            "🚨 Emergency stop",
            previous_state=previous.value,
            opportunities_deactivated=deactivated,
        )
        trade_logger.log_bot_state_changed(previous.value, BotState.STOPPED.value, "emergency_stop")
        if self.notifier is not None:
            await self.notifier.notify_emergency_stop(deactivated)
        return message

    async def shutdown(self) -> None:
        """Stop the bot and wait for the execution loop to exit."""
        await self.stop()
        await self.ticker.wait_closed()

    async def _halt(self, cancel_inflight: bool) -> BotState:
        # Caller holds the lifecycle lock
        previous = self._status.state
        await self._deactivate_settings()
        self.ticker.stop(cancel_inflight=cancel_inflight)
        self._run_id += 1
        self._status = BotRuntimeStatus()
        return previous

    async def _deactivate_settings(self) -> None:
        if await self.store.get_bot_settings() is not None:
            await self.store.create_or_update_bot_settings(BotSettingsUpdate(is_active=False))

    async def _announce(self, previous: BotState, current: BotState, reason: str = "") -> None:
        trade_logger.log_bot_state_changed(previous.value, current.value, reason)
        if self.notifier is not None:
            await self.notifier.notify_bot_state(current.value, reason)

    # ------------------------------------------------------------------
    # Automatic execution
    # ------------------------------------------------------------------

    async def _execution_tick(self) -> None:
        run_id = self._run_id
        result = await self.execution_engine.execute_top_opportunities()
        active_pairs = len(await self.store.get_active_trading_pairs())

        if run_id != self._run_id:
            logger.debug("Discarding results of a tick from a finished run")
            return

        self._status.trades_executed += len(result.trades)
        self._status.total_profit += result.total_profit
        self._status.active_pairs = active_pairs

        if result.trades:
            await self._enforce_loss_limit()

    async def _enforce_loss_limit(self) -> None:
        """Pause when today's realized profit breaches the daily loss limit."""
        settings = await self.store.get_bot_settings()
        if settings is None or not settings.auto_pause_on_loss:
            return

        trades = await self.store.get_recent_trades(self.config.engine.status_trade_window)
        daily_profit = summarize_trades(trades, self.store.now())["daily_profit"]
        if daily_profit <= -settings.daily_loss_limit:
            logger.warning(
                "Daily loss limit reached, pausing bot",
                daily_profit=daily_profit,
                daily_loss_limit=settings.daily_loss_limit,
            )
            await self.pause(reason="daily_loss_limit")

    # ------------------------------------------------------------------
    # Queries and pass-through operations
    # ------------------------------------------------------------------

    async def get_status(self) -> BotStatusReport:
        """Runtime status plus metrics recomputed from the trade ledger."""
        trades = await self.store.get_recent_trades(self.config.engine.status_trade_window)
        return BotStatusReport(
            runtime=self.runtime_status(),
            **summarize_trades(trades, self.store.now()),
        )

    async def get_settings(self) -> Optional[BotSettings]:
        return await self.store.get_bot_settings()

    async def update_settings(
        self, settings: Union[BotSettingsUpdate, Dict[str, Any]]
    ) -> BotSettings:
        """
        Merge a partial settings payload.

        Raises:
            ValidationError: unknown keys or malformed values
        """
        if not isinstance(settings, BotSettingsUpdate):
            try:
                settings = BotSettingsUpdate.model_validate(settings)
            except pydantic.ValidationError as e:
                raise ValidationError(
                    f"Invalid bot settings: {e.error_count()} error(s)",
                    errors=e.errors(),
                ) from e

        updated = await self.store.create_or_update_bot_settings(settings)
        logger.info("Bot settings updated", fields=sorted(settings.changes()))
        return updated

    async def execute_opportunity(self, opportunity_id: str) -> Trade:
        """Manually execute one opportunity."""
        return await self.execution_engine.execute_opportunity(opportunity_id)

    async def list_active_opportunities(self) -> List[OpportunityWithDetails]:
        return await self.store.get_active_opportunities_with_details()

    async def get_latest_prices(self) -> List[PriceQuoteWithDetails]:
        return await self.store.get_latest_prices()

    async def get_recent_trades(self, limit: Optional[int] = None) -> List[TradeWithDetails]:
        return await self.store.get_recent_trades(10 if limit is None else limit)

    async def get_all_trades(self) -> List[TradeWithDetails]:
        return await self.store.get_all_trades()

    async def list_exchanges(self) -> List[Exchange]:
        return await self.store.get_active_exchanges()

    async def list_trading_pairs(self) -> List[TradingPair]:
        return await self.store.get_active_trading_pairs()
