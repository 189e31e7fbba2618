"""
Simulated execution of arbitrage opportunities.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING

from arbitrage_bot.config import BotConfig, get_config
from arbitrage_bot.exceptions import BotInactiveError, NotFoundError
from arbitrage_bot.logger import get_logger, trade_logger
from arbitrage_bot.models import Trade, TradeStatus, quantize
from arbitrage_bot.storage import MarketStateStore

if TYPE_CHECKING:
    from arbitrage_bot.database import Database
    from arbitrage_bot.notifications import NotificationService


logger = get_logger("execution")


@dataclass
class BatchResult:
    """Outcome of one automatic execution tick."""
    trades: List[Trade] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def total_profit(self) -> Decimal:
        return sum((t.profit for t in self.trades), Decimal("0"))


class ExecutionEngine:
    """
    Turns active opportunities into trades.

    Flow per opportunity:
    1. Verify it exists and is still active
    2. Verify the bot settings are active
    3. Claim it atomically (first caller wins)
    4. Record a completed trade sized from max_position_size

    The same path serves manual executions and the automatic batch, so the
    claim in step 3 is what keeps the two from trading one opportunity twice.
    """

    def __init__(
        self,
        store: MarketStateStore,
        config: Optional[BotConfig] = None,
        journal: Optional["Database"] = None,
        notifier: Optional["NotificationService"] = None,
    ):
        self.store = store
        self.config = config or get_config()
        self.journal = journal
        self.notifier = notifier

        self._total_executions = 0
        self._failed_executions = 0

    @property
    def metrics(self) -> dict:
        return {
            "executions": self._total_executions,
            "failures": self._failed_executions,
        }

    async def execute_opportunity(self, opportunity_id: str) -> Trade:
        """
        Execute one opportunity.

        Raises:
            NotFoundError: opportunity missing, inactive, or claimed meanwhile
            BotInactiveError: settings missing or bot not active
        """
        opportunity = await self.store.get_opportunity(opportunity_id)
        if opportunity is None or not opportunity.is_active:
            raise NotFoundError("Opportunity not found or no longer active", entity_id=opportunity_id)

        settings = await self.store.get_bot_settings()
        if settings is None or not settings.is_active:
            raise BotInactiveError("Bot is not active")

        # Re-check under the store lock: a concurrent tick or manual call may have won
        claimed = await self.store.claim_opportunity(opportunity_id)

        amount = quantize(settings.max_position_size / claimed.buy_price)
        trade = await self.store.create_trade(
            opportunity_id=claimed.opportunity_id,
            pair_id=claimed.pair_id,
            buy_exchange_id=claimed.buy_exchange_id,
            sell_exchange_id=claimed.sell_exchange_id,
            buy_price=claimed.buy_price,
            sell_price=claimed.sell_price,
            amount=amount,
            profit=claimed.potential_profit,
            status=TradeStatus.COMPLETED,
        )
        self._total_executions += 1

        trade_logger.log_trade_executed(
            trade_id=trade.trade_id,
            opportunity_id=claimed.opportunity_id,
            amount=trade.amount,
            buy_price=trade.buy_price,
            sell_price=trade.sell_price,
            profit=trade.profit,
        )

        await self._record(trade)
        return trade

    async def execute_top_opportunities(self) -> BatchResult:
        """
        Execute the highest-margin active opportunities, up to the batch size.

        A failing item is logged and skipped; it never aborts the batch.
        """
        result = BatchResult()

        opportunities = await self.store.get_active_opportunities()
        settings = await self.store.get_bot_settings()
        if settings is None or not settings.is_active:
            result.skipped = True
            return result

        # sorted() is stable, so equal margins keep first-seen order
        ranked = sorted(opportunities, key=lambda o: o.profit_margin, reverse=True)
        batch = ranked[: self.config.engine.execution_batch_size]

        for opportunity in batch:
            try:
                trade = await self.execute_opportunity(opportunity.opportunity_id)
                result.trades.append(trade)
            except Exception as e:
                self._failed_executions += 1
                result.failures.append(opportunity.opportunity_id)
                logger.warning(
                    "Failed to execute opportunity",
                    opportunity_id=opportunity.opportunity_id,
                    error=str(e),
                )

        if batch:
            logger.info(
                "Execution batch complete",
                attempted=len(batch),
                executed=len(result.trades),
                failed=len(result.failures),
                profit=f"${result.total_profit:.2f}",
            )
        return result

    async def _record(self, trade: Trade) -> None:
        """Mirror a trade to the journal and notification channels."""
        if self.journal is not None:
            try:
                await asyncio.to_thread(self.journal.save_trade, trade)
            except Exception as e:
                logger.error(f"Trade journal write failed: {e}", trade_id=trade.trade_id)

        if self.notifier is not None:
            try:
                await self.notifier.notify_trade_executed(trade)
            except Exception as e:
                logger.error(f"Trade notification failed: {e}", trade_id=trade.trade_id)
