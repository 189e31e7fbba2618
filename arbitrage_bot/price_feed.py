"""
Price feed for the arbitrage engine.

A PriceSource produces one quote per (exchange, trading pair); the
PriceFeedGenerator pushes those quotes into the store on every tick. The
bundled SimulatedPriceSource stands in for real market data.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from arbitrage_bot.config import BotConfig, get_config
from arbitrage_bot.logger import get_logger
from arbitrage_bot.models import CHANGE_QUANTUM, Exchange, TradingPair, quantize
from arbitrage_bot.scheduler import Ticker
from arbitrage_bot.storage import MarketStateStore


logger = get_logger("price_feed")


@dataclass
class QuoteData:
    """A single quote produced by a price source."""
    price: Decimal
    volume: Decimal
    change_24h: Optional[Decimal] = None


class PriceSource(ABC):
    """Abstract source of quotes for (exchange, trading pair) combinations."""

    @abstractmethod
    async def get_quote(self, exchange: Exchange, pair: TradingPair) -> Optional[QuoteData]:
        """
        Get the current quote.

        Returns:
            Quote data, or None when the source has nothing for this pair
        """
        pass


class SimulatedConstants:
    """Reference values for the simulated market."""

    BASE_PRICES: Dict[str, float] = {
        "ETH/USDT": 2845.0,
        "BTC/USDT": 43150.0,
        "LINK/USDT": 14.68,
    }
    DEFAULT_BASE_PRICE = 100.0

    # Per-exchange multiplicative skew
    EXCHANGE_SKEW: Dict[str, float] = {
        "Binance": 1.0,
        "Coinbase Pro": 0.9995,
        "Kraken": 1.0008,
        "Uniswap V3": 0.9992,
    }
    DEFAULT_SKEW = 1.0

    # 24h volume baseline by exchange popularity
    VOLUME_BASELINE: Dict[str, float] = {
        "Binance": 125_000_000.0,
        "Coinbase Pro": 98_000_000.0,
        "Kraken": 67_000_000.0,
        "Uniswap V3": 45_000_000.0,
    }
    DEFAULT_VOLUME = 50_000_000.0

    JITTER = 0.001  # +/-0.1%
    VOLUME_RANGE = (0.8, 1.2)
    CHANGE_RANGE = (-5.0, 5.0)


class SimulatedPriceSource(PriceSource):
    """
    Synthetic quotes: base price x exchange skew x small random jitter.

    Pass a seeded ``random.Random`` for reproducible output.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    async def get_quote(self, exchange: Exchange, pair: TradingPair) -> QuoteData:
        c = SimulatedConstants
        base_price = c.BASE_PRICES.get(pair.symbol, c.DEFAULT_BASE_PRICE)
        skew = c.EXCHANGE_SKEW.get(exchange.name, c.DEFAULT_SKEW)
        jitter = 1 + self.rng.uniform(-c.JITTER, c.JITTER)

        volume = c.VOLUME_BASELINE.get(exchange.name, c.DEFAULT_VOLUME) * self.rng.uniform(
            *c.VOLUME_RANGE
        )
        change = self.rng.uniform(*c.CHANGE_RANGE)

        return QuoteData(
            price=quantize(Decimal(repr(base_price * skew * jitter))),
            volume=quantize(Decimal(repr(volume))),
            change_24h=quantize(Decimal(repr(change)), CHANGE_QUANTUM),
        )


class PriceFeedGenerator:
    """Refreshes the quote for every active exchange x active trading pair."""

    def __init__(
        self,
        store: MarketStateStore,
        source: Optional[PriceSource] = None,
        config: Optional[BotConfig] = None,
    ):
        self.store = store
        self.source = source or SimulatedPriceSource()
        self.config = config or get_config()

        self.ticker = Ticker(
            "price_feed",
            self.config.engine.price_feed_interval_seconds,
            self.update_prices,
        )

    def start(self) -> None:
        self.ticker.start()

    def stop(self) -> None:
        self.ticker.stop()

    async def update_prices(self) -> int:
        """Run one feed tick. Returns the number of quotes written."""
        exchanges = await self.store.get_active_exchanges()
        pairs = await self.store.get_active_trading_pairs()

        written = 0
        for exchange in exchanges:
            for pair in pairs:
                quote = await self.source.get_quote(exchange, pair)
                if quote is None:
                    continue
                await self.store.upsert_price(
                    exchange_id=exchange.exchange_id,
                    pair_id=pair.pair_id,
                    price=quote.price,
                    volume=quote.volume,
                    change_24h=quote.change_24h,
                )
                written += 1

        logger.debug("Prices updated", quotes=written)
        return written
