"""
In-memory market state store.

Owns every entity the engine works with: exchanges, trading pairs, the
latest quote per (exchange, pair), arbitrage opportunities, the trade ledger
and the bot settings singleton. Components read and write exclusively through
this class; all reads hand out copies.
"""

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from arbitrage_bot.config import BotConfig, get_config
from arbitrage_bot.exceptions import DanglingReferenceError, NotFoundError
from arbitrage_bot.logger import get_logger
from arbitrage_bot.models import (
    BotSettings,
    BotSettingsUpdate,
    Exchange,
    Opportunity,
    OpportunityWithDetails,
    PriceQuote,
    PriceQuoteWithDetails,
    Trade,
    TradeStatus,
    TradeWithDetails,
    TradingPair,
)


logger = get_logger("storage")

Clock = Callable[[], datetime]


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class MarketStateStore:
    """
    Shared state for the price feed, scanner, execution engine and controller.

    Every logical update runs inside the lock of the collection it touches,
    so an upsert or a compare-and-set is atomic with respect to any other
    coroutine using the store.
    """

    def __init__(
        self,
        config: Optional[BotConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or get_config()
        self._clock: Clock = clock or datetime.now

        self._exchanges: Dict[str, Exchange] = {}
        self._trading_pairs: Dict[str, TradingPair] = {}
        self._prices: Dict[str, PriceQuote] = {}
        self._opportunities: Dict[str, Opportunity] = {}
        self._trades: Dict[str, Trade] = {}
        self._settings: Optional[BotSettings] = None

        # (exchange_id, pair_id) -> quote_id
        self._quote_index: Dict[Tuple[str, str], str] = {}

        self._exchange_lock = asyncio.Lock()
        self._pair_lock = asyncio.Lock()
        self._price_lock = asyncio.Lock()
        self._opportunity_lock = asyncio.Lock()
        self._trade_lock = asyncio.Lock()
        self._settings_lock = asyncio.Lock()

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Exchanges
    # ------------------------------------------------------------------

    async def get_all_exchanges(self) -> List[Exchange]:
        async with self._exchange_lock:
            return [replace(e) for e in self._exchanges.values()]

    async def get_active_exchanges(self) -> List[Exchange]:
        async with self._exchange_lock:
            return [replace(e) for e in self._exchanges.values() if e.is_active]

    async def get_exchange(self, exchange_id: str) -> Optional[Exchange]:
        async with self._exchange_lock:
            exchange = self._exchanges.get(exchange_id)
            return replace(exchange) if exchange else None

    async def create_exchange(self, name: str, is_active: bool = True) -> Exchange:
        exchange = Exchange(
            exchange_id=_new_id("exch"),
            name=name,
            is_active=is_active,
            created_at=self.now(),
        )
        async with self._exchange_lock:
            self._exchanges[exchange.exchange_id] = exchange
        logger.debug("Exchange created", exchange_id=exchange.exchange_id, name=name)
        return replace(exchange)

    async def set_exchange_active(self, exchange_id: str, is_active: bool) -> Optional[Exchange]:
        async with self._exchange_lock:
            existing = self._exchanges.get(exchange_id)
            if existing is None:
                return None
            updated = replace(existing, is_active=is_active)
            self._exchanges[exchange_id] = updated
            return replace(updated)

    # ------------------------------------------------------------------
    # Trading pairs
    # ------------------------------------------------------------------

    async def get_all_trading_pairs(self) -> List[TradingPair]:
        async with self._pair_lock:
            return [replace(p) for p in self._trading_pairs.values()]

    async def get_active_trading_pairs(self) -> List[TradingPair]:
        async with self._pair_lock:
            return [replace(p) for p in self._trading_pairs.values() if p.is_active]

    async def get_trading_pair(self, pair_id: str) -> Optional[TradingPair]:
        async with self._pair_lock:
            pair = self._trading_pairs.get(pair_id)
            return replace(pair) if pair else None

    async def create_trading_pair(
        self,
        symbol: str,
        base_asset: Optional[str] = None,
        quote_asset: Optional[str] = None,
        is_active: bool = True,
    ) -> TradingPair:
        if base_asset is None or quote_asset is None:
            base, _, quote = symbol.partition("/")
            base_asset = base_asset or base
            quote_asset = quote_asset or quote
        pair = TradingPair(
            pair_id=_new_id("pair"),
            symbol=symbol,
            base_asset=base_asset,
            quote_asset=quote_asset,
            is_active=is_active,
        )
        async with self._pair_lock:
            self._trading_pairs[pair.pair_id] = pair
        logger.debug("Trading pair created", pair_id=pair.pair_id, symbol=symbol)
        return replace(pair)

    async def set_trading_pair_active(self, pair_id: str, is_active: bool) -> Optional[TradingPair]:
        async with self._pair_lock:
            existing = self._trading_pairs.get(pair_id)
            if existing is None:
                return None
            updated = replace(existing, is_active=is_active)
            self._trading_pairs[pair_id] = updated
            return replace(updated)

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    async def upsert_price(
        self,
        exchange_id: str,
        pair_id: str,
        price: Decimal,
        volume: Decimal,
        change_24h: Optional[Decimal] = None,
    ) -> PriceQuote:
        """Replace the quote for (exchange, pair), creating it on first sight."""
        async with self._price_lock:
            key = (exchange_id, pair_id)
            quote_id = self._quote_index.get(key)
            if quote_id is None:
                quote_id = _new_id("quote")
                self._quote_index[key] = quote_id
            quote = PriceQuote(
                quote_id=quote_id,
                exchange_id=exchange_id,
                pair_id=pair_id,
                price=price,
                volume=volume,
                change_24h=change_24h,
                timestamp=self.now(),
            )
            self._prices[quote_id] = quote
            return replace(quote)

    async def get_latest_prices(self) -> List[PriceQuoteWithDetails]:
        async with self._price_lock:
            quotes = [replace(q) for q in self._prices.values()]
        return [await self._quote_details(q) for q in quotes]

    async def get_prices_by_pair(self, pair_id: str) -> List[PriceQuoteWithDetails]:
        async with self._price_lock:
            quotes = [replace(q) for q in self._prices.values() if q.pair_id == pair_id]
        return [await self._quote_details(q) for q in quotes]

    # ------------------------------------------------------------------
    # Opportunities
    # ------------------------------------------------------------------

    async def get_opportunity(self, opportunity_id: str) -> Optional[Opportunity]:
        async with self._opportunity_lock:
            opportunity = self._opportunities.get(opportunity_id)
            return replace(opportunity) if opportunity else None

    async def get_active_opportunities(self) -> List[Opportunity]:
        """Active opportunities in creation order."""
        async with self._opportunity_lock:
            return [replace(o) for o in self._opportunities.values() if o.is_active]

    async def get_active_opportunities_with_details(self) -> List[OpportunityWithDetails]:
        opportunities = await self.get_active_opportunities()
        return [await self._opportunity_details(o) for o in opportunities]

    async def create_opportunity(
        self,
        pair_id: str,
        buy_exchange_id: str,
        sell_exchange_id: str,
        buy_price: Decimal,
        sell_price: Decimal,
        profit_margin: Decimal,
        potential_profit: Decimal,
    ) -> Opportunity:
        async with self._opportunity_lock:
            return replace(self._insert_opportunity(
                pair_id, buy_exchange_id, sell_exchange_id,
                buy_price, sell_price, profit_margin, potential_profit,
            ))

    async def upsert_opportunity(
        self,
        pair_id: str,
        buy_exchange_id: str,
        sell_exchange_id: str,
        buy_price: Decimal,
        sell_price: Decimal,
        profit_margin: Decimal,
        potential_profit: Decimal,
    ) -> Tuple[Opportunity, bool]:
        """
        Refresh the active opportunity for this route or create one.

        Returns:
            (opportunity, created) where created is False on refresh
        """
        route = (pair_id, buy_exchange_id, sell_exchange_id)
        async with self._opportunity_lock:
            existing = next(
                (o for o in self._opportunities.values() if o.is_active and o.route == route),
                None,
            )
            if existing is None:
                created = self._insert_opportunity(
                    pair_id, buy_exchange_id, sell_exchange_id,
                    buy_price, sell_price, profit_margin, potential_profit,
                )
                return replace(created), True

            refreshed = replace(
                existing,
                buy_price=buy_price,
                sell_price=sell_price,
                profit_margin=profit_margin,
                potential_profit=potential_profit,
                updated_at=self.now(),
            )
            self._opportunities[existing.opportunity_id] = refreshed
            return replace(refreshed), False

    def _insert_opportunity(
        self,
        pair_id: str,
        buy_exchange_id: str,
        sell_exchange_id: str,
        buy_price: Decimal,
        sell_price: Decimal,
        profit_margin: Decimal,
        potential_profit: Decimal,
    ) -> Opportunity:
        # Caller holds the opportunity lock
        now = self.now()
        opportunity = Opportunity(
            opportunity_id=_new_id("opp"),
            pair_id=pair_id,
            buy_exchange_id=buy_exchange_id,
            sell_exchange_id=sell_exchange_id,
            buy_price=buy_price,
            sell_price=sell_price,
            profit_margin=profit_margin,
            potential_profit=potential_profit,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self._opportunities[opportunity.opportunity_id] = opportunity
        return opportunity

    async def claim_opportunity(self, opportunity_id: str) -> Opportunity:
        """
        Atomically flip an opportunity from active to inactive.

        The first caller wins and receives the opportunity as it was when
        claimed; every later caller gets NotFoundError.
        """
        async with self._opportunity_lock:
            existing = self._opportunities.get(opportunity_id)
            if existing is None or not existing.is_active:
                raise NotFoundError(
                    "Opportunity not found or no longer active",
                    entity_id=opportunity_id,
                )
            self._opportunities[opportunity_id] = replace(existing, is_active=False)
            return replace(existing)

    async def deactivate_opportunity(self, opportunity_id: str) -> bool:
        """Deactivate one opportunity. Returns False when it was not active."""
        async with self._opportunity_lock:
            existing = self._opportunities.get(opportunity_id)
            if existing is None or not existing.is_active:
                return False
            self._opportunities[opportunity_id] = replace(existing, is_active=False)
            return True

    async def deactivate_all_opportunities(self) -> int:
        async with self._opportunity_lock:
            active_ids = [oid for oid, o in self._opportunities.items() if o.is_active]
            for opportunity_id in active_ids:
                self._opportunities[opportunity_id] = replace(
                    self._opportunities[opportunity_id], is_active=False
                )
        return len(active_ids)

    async def deactivate_expired_opportunities(self) -> int:
        """Deactivate active opportunities not refreshed within the TTL."""
        ttl = timedelta(seconds=self.config.engine.opportunity_ttl_seconds)
        now = self.now()
        expired = 0
        async with self._opportunity_lock:
            for opportunity_id, opportunity in list(self._opportunities.items()):
                if opportunity.is_active and now - opportunity.updated_at >= ttl:
                    self._opportunities[opportunity_id] = replace(opportunity, is_active=False)
                    expired += 1
        return expired

    # ------------------------------------------------------------------
    # Trades
    # ------------------------------------------------------------------

    async def create_trade(
        self,
        pair_id: str,
        buy_exchange_id: str,
        sell_exchange_id: str,
        buy_price: Decimal,
        sell_price: Decimal,
        amount: Decimal,
        profit: Decimal,
        status: TradeStatus = TradeStatus.PENDING,
        opportunity_id: Optional[str] = None,
    ) -> Trade:
        trade = Trade(
            trade_id=_new_id("trade"),
            opportunity_id=opportunity_id,
            pair_id=pair_id,
            buy_exchange_id=buy_exchange_id,
            sell_exchange_id=sell_exchange_id,
            buy_price=buy_price,
            sell_price=sell_price,
            amount=amount,
            profit=profit,
            status=status,
            executed_at=self.now(),
        )
        async with self._trade_lock:
            self._trades[trade.trade_id] = trade
        return replace(trade)

    async def get_trade(self, trade_id: str) -> Optional[Trade]:
        async with self._trade_lock:
            trade = self._trades.get(trade_id)
            return replace(trade) if trade else None

    async def update_trade_status(self, trade_id: str, status: TradeStatus) -> Optional[Trade]:
        """
        Move a pending trade to completed or failed.

        Trades are otherwise immutable, so any other transition raises
        ValueError.
        """
        async with self._trade_lock:
            existing = self._trades.get(trade_id)
            if existing is None:
                return None
            if existing.status is not TradeStatus.PENDING or status is TradeStatus.PENDING:
                raise ValueError(
                    f"Illegal trade transition {existing.status.value} -> {status.value}"
                )
            updated = replace(existing, status=status)
            self._trades[trade_id] = updated
            return replace(updated)

    async def get_all_trades(self) -> List[TradeWithDetails]:
        async with self._trade_lock:
            trades = [replace(t) for t in self._trades.values()]
        return [await self._trade_details(t) for t in trades]

    async def get_recent_trades(self, limit: int = 10) -> List[TradeWithDetails]:
        """Newest trades first."""
        async with self._trade_lock:
            # Reversed insertion order first so equal timestamps still come newest-first
            trades = sorted(
                reversed(list(self._trades.values())),
                key=lambda t: t.executed_at,
                reverse=True,
            )
            trades = [replace(t) for t in trades[:max(limit, 0)]]
        return [await self._trade_details(t) for t in trades]

    # ------------------------------------------------------------------
    # Bot settings
    # ------------------------------------------------------------------

    async def get_bot_settings(self) -> Optional[BotSettings]:
        async with self._settings_lock:
            return replace(self._settings) if self._settings else None

    async def create_or_update_bot_settings(self, update: BotSettingsUpdate) -> BotSettings:
        """Merge the set fields into the singleton, creating it from defaults first."""
        changes = update.changes()
        async with self._settings_lock:
            if self._settings is None:
                defaults = self.config.default_settings
                self._settings = BotSettings(
                    settings_id=_new_id("settings"),
                    min_profit_margin=defaults.min_profit_margin,
                    max_position_size=defaults.max_position_size,
                    slippage_tolerance=defaults.slippage_tolerance,
                    gas_limit=defaults.gas_limit,
                    stop_loss=defaults.stop_loss,
                    daily_loss_limit=defaults.daily_loss_limit,
                    auto_pause_on_loss=defaults.auto_pause_on_loss,
                    is_active=False,
                    updated_at=self.now(),
                )
                logger.info("Bot settings created", settings_id=self._settings.settings_id)
            self._settings = replace(self._settings, **changes, updated_at=self.now())
            return replace(self._settings)

    # ------------------------------------------------------------------
    # Joined reads
    # ------------------------------------------------------------------

    async def _resolve_exchange(self, exchange_id: str, referenced_by: str) -> Exchange:
        exchange = await self.get_exchange(exchange_id)
        if exchange is None:
            raise DanglingReferenceError("Exchange", exchange_id, referenced_by)
        return exchange

    async def _resolve_pair(self, pair_id: str, referenced_by: str) -> TradingPair:
        pair = await self.get_trading_pair(pair_id)
        if pair is None:
            raise DanglingReferenceError("TradingPair", pair_id, referenced_by)
        return pair

    async def _quote_details(self, quote: PriceQuote) -> PriceQuoteWithDetails:
        return PriceQuoteWithDetails(
            quote=quote,
            exchange=await self._resolve_exchange(quote.exchange_id, quote.quote_id),
            trading_pair=await self._resolve_pair(quote.pair_id, quote.quote_id),
        )

    async def _opportunity_details(self, opportunity: Opportunity) -> OpportunityWithDetails:
        ref = opportunity.opportunity_id
        return OpportunityWithDetails(
            opportunity=opportunity,
            trading_pair=await self._resolve_pair(opportunity.pair_id, ref),
            buy_exchange=await self._resolve_exchange(opportunity.buy_exchange_id, ref),
            sell_exchange=await self._resolve_exchange(opportunity.sell_exchange_id, ref),
        )

    async def _trade_details(self, trade: Trade) -> TradeWithDetails:
        ref = trade.trade_id
        return TradeWithDetails(
            trade=trade,
            trading_pair=await self._resolve_pair(trade.pair_id, ref),
            buy_exchange=await self._resolve_exchange(trade.buy_exchange_id, ref),
            sell_exchange=await self._resolve_exchange(trade.sell_exchange_id, ref),
        )


async def seed_default_market(
    store: MarketStateStore,
    config: Optional[BotConfig] = None,
) -> None:
    """Populate an empty store with the configured exchanges, pairs and settings."""
    config = config or store.config

    for name in config.market.exchange_names:
        await store.create_exchange(name)

    for symbol in config.market.pair_symbols:
        await store.create_trading_pair(symbol)

    if await store.get_bot_settings() is None:
        await store.create_or_update_bot_settings(BotSettingsUpdate())

    logger.info(
        "Default market seeded",
        exchanges=len(config.market.exchange_names),
        trading_pairs=len(config.market.pair_symbols),
    )
