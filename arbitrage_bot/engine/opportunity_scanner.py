"""
Cross-exchange spread detection.
Compares every pair of quotes on a trading pair and upserts one opportunity
per profitable direction.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from arbitrage_bot.config import BotConfig, get_config
from arbitrage_bot.logger import get_logger, trade_logger
from arbitrage_bot.models import (
    MARGIN_QUANTUM,
    BotSettings,
    PriceQuoteWithDetails,
    TradingPair,
    quantize,
)
from arbitrage_bot.scheduler import Ticker
from arbitrage_bot.storage import MarketStateStore


logger = get_logger("scanner")


@dataclass
class SpreadQuote:
    """Buy/sell assignment for one pair of quotes."""
    buy: PriceQuoteWithDetails
    sell: PriceQuoteWithDetails
    profit_margin: Decimal
    potential_profit: Decimal


@dataclass
class ScanResult:
    """Outcome of one scanner tick."""
    created: int = 0
    refreshed: int = 0
    expired: int = 0
    skipped: bool = False


def evaluate_spread(
    quote_a: PriceQuoteWithDetails,
    quote_b: PriceQuoteWithDetails,
    settings: BotSettings,
) -> Optional[SpreadQuote]:
    """
    Decide buy/sell sides for two quotes and test the spread.

    Returns:
        SpreadQuote when the margin exceeds the configured minimum, else None
    """
    price_a = quote_a.quote.price
    price_b = quote_b.quote.price
    if price_a == price_b or price_a <= 0 or price_b <= 0:
        return None

    if price_a < price_b:
        buy, sell = quote_a, quote_b
    else:
        buy, sell = quote_b, quote_a

    buy_price = buy.quote.price
    sell_price = sell.quote.price
    profit_margin = (sell_price - buy_price) / buy_price * 100

    if profit_margin <= settings.min_profit_margin:
        return None

    potential_profit = (sell_price - buy_price) * (settings.max_position_size / buy_price)
    return SpreadQuote(
        buy=buy,
        sell=sell,
        profit_margin=profit_margin,
        potential_profit=potential_profit,
    )


class OpportunityScanner:
    """
    Periodically scans all active trading pairs for price spreads.

    Identity is the directional route (pair, buy exchange, sell exchange):
    a rescan refreshes the route's active opportunity instead of adding a
    second one, and routes nobody refreshes expire after the TTL.
    """

    def __init__(self, store: MarketStateStore, config: Optional[BotConfig] = None):
        self.store = store
        self.config = config or get_config()

        self.metrics = {
            "scans": 0,
            "opportunities_created": 0,
            "opportunities_refreshed": 0,
            "opportunities_expired": 0,
        }

        self.ticker = Ticker(
            "opportunity_scanner",
            self.config.engine.scan_interval_seconds,
            self.scan,
        )

    def start(self) -> None:
        self.ticker.start()

    def stop(self) -> None:
        self.ticker.stop()

    async def scan(self) -> ScanResult:
        """Run one scan tick, then expire stale opportunities."""
        result = ScanResult()

        pairs = await self.store.get_active_trading_pairs()
        settings = await self.store.get_bot_settings()
        if settings is None:
            logger.debug("No bot settings yet, skipping scan")
            result.skipped = True
            return result

        for pair in pairs:
            await self._scan_pair(pair, settings, result)

        result.expired = await self.expire_stale()

        self.metrics["scans"] += 1
        self.metrics["opportunities_created"] += result.created
        self.metrics["opportunities_refreshed"] += result.refreshed

        logger.debug(
            "Scan complete",
            pairs=len(pairs),
            created=result.created,
            refreshed=result.refreshed,
            expired=result.expired,
        )
        return result

    async def expire_stale(self) -> int:
        expired = await self.store.deactivate_expired_opportunities()
        self.metrics["opportunities_expired"] += expired
        trade_logger.log_opportunities_expired(expired)
        return expired

    async def _scan_pair(
        self,
        pair: TradingPair,
        settings: BotSettings,
        result: ScanResult,
    ) -> None:
        # Deactivated exchanges keep their last quote but no longer trade
        quotes: List[PriceQuoteWithDetails] = [
            q for q in await self.store.get_prices_by_pair(pair.pair_id)
            if q.exchange.is_active
        ]
        if len(quotes) < 2:
            return

        for i in range(len(quotes)):
            for j in range(i + 1, len(quotes)):
                spread = evaluate_spread(quotes[i], quotes[j], settings)
                if spread is None:
                    continue

                opportunity, created = await self.store.upsert_opportunity(
                    pair_id=pair.pair_id,
                    buy_exchange_id=spread.buy.exchange.exchange_id,
                    sell_exchange_id=spread.sell.exchange.exchange_id,
                    buy_price=quantize(spread.buy.quote.price),
                    sell_price=quantize(spread.sell.quote.price),
                    profit_margin=quantize(spread.profit_margin, MARGIN_QUANTUM),
                    potential_profit=quantize(spread.potential_profit),
                )

                if created:
                    result.created += 1
                    trade_logger.log_opportunity_detected(
                        opportunity_id=opportunity.opportunity_id,
                        symbol=pair.symbol,
                        buy_exchange=spread.buy.exchange.name,
                        sell_exchange=spread.sell.exchange.name,
                        profit_margin=opportunity.profit_margin,
                        potential_profit=opportunity.potential_profit,
                    )
                else:
                    result.refreshed += 1
                    trade_logger.log_opportunity_refreshed(
                        opportunity_id=opportunity.opportunity_id,
                        profit_margin=opportunity.profit_margin,
                    )
