"""
Main orchestrator that wires the store, price feed, scanner, execution
engine and bot controller together.
"""

import asyncio
from datetime import datetime
from typing import Optional

from arbitrage_bot.config import BotConfig, get_config
from arbitrage_bot.engine.bot_controller import BotController
from arbitrage_bot.engine.execution_engine import ExecutionEngine
from arbitrage_bot.engine.opportunity_scanner import OpportunityScanner
from arbitrage_bot.logger import get_logger, trade_logger
from arbitrage_bot.price_feed import PriceFeedGenerator, PriceSource
from arbitrage_bot.storage import Clock, MarketStateStore, seed_default_market


logger = get_logger("system")


class ArbitrageSystem:
    """
    One independent instance of the whole engine.

    Flow:
    1. Price feed refreshes quotes every tick
    2. Scanner upserts and expires opportunities
    3. The controller's execution ticker trades the best ones while running

    Each instance owns its own store, so tests can build as many as they need.
    """

    def __init__(
        self,
        config: Optional[BotConfig] = None,
        store: Optional[MarketStateStore] = None,
        price_source: Optional[PriceSource] = None,
        clock: Optional[Clock] = None,
        journal=None,
        notifier=None,
    ):
        self.config = config or get_config()
        self.store = store or MarketStateStore(self.config, clock=clock)
        self.notifier = notifier

        self.price_feed = PriceFeedGenerator(self.store, price_source, self.config)
        self.scanner = OpportunityScanner(self.store, self.config)
        self.execution_engine = ExecutionEngine(
            self.store, self.config, journal=journal, notifier=notifier
        )
        self.controller = BotController(
            self.store, self.execution_engine, self.config, notifier=notifier
        )

        self._is_running = False
        self._seeded = False
        self._start_time: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def start(self) -> None:
        """Seed the market if configured and start the feed and scanner."""
        if self._is_running:
            return

        if self.config.market.seed_default_market and not self._seeded:
            await seed_default_market(self.store, self.config)
            self._seeded = True

        if self.notifier is not None:
            await self.notifier.connect()

        self.price_feed.start()
        self.scanner.start()
        self._is_running = True
        self._start_time = datetime.now()

        logger.info(
            "🚀 Arbitrage engine started",
            price_interval=f"{self.config.engine.price_feed_interval_seconds}s",
            scan_interval=f"{self.config.engine.scan_interval_seconds}s",
            execution_interval=f"{self.config.engine.execution_interval_seconds}s",
        )

    async def stop(self) -> None:
        """Stop the bot and every background loop, then wait for them to exit."""
        if not self._is_running:
            return

        logger.info("Stopping arbitrage engine...")
        self._is_running = False

        await self.controller.shutdown()
        self.price_feed.stop()
        self.scanner.stop()
        await asyncio.gather(
            self.price_feed.ticker.wait_closed(),
            self.scanner.ticker.wait_closed(),
        )

        await self._log_session_summary()

        if self.notifier is not None:
            await self.notifier.disconnect()

        logger.info("Arbitrage engine stopped")

    async def _log_session_summary(self) -> None:
        status = await self.controller.get_status()
        trade_logger.log_daily_summary(
            trades=status.total_trades,
            success_rate=status.success_rate,
            profit=status.daily_profit,
            volume=status.daily_volume,
        )
        logger.info(
            "Session summary",
            uptime=str(datetime.now() - self._start_time) if self._start_time else None,
            scans=self.scanner.metrics["scans"],
            opportunities_created=self.scanner.metrics["opportunities_created"],
            executions=self.execution_engine.metrics["executions"],
        )

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
