"""
Data models for the cross-exchange arbitrage bot.
Defines all core data structures used throughout the system.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, localcontext
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


PRICE_QUANTUM = Decimal("0.00000001")  # prices, amounts and profits
MARGIN_QUANTUM = Decimal("0.0001")  # profit margins
CHANGE_QUANTUM = Decimal("0.01")  # 24h change percent

# Upper bound for configurable money amounts
MAX_AMOUNT = Decimal("1e15")


def quantize(value: Decimal, quantum: Decimal = PRICE_QUANTUM) -> Decimal:
    """Round a value to fixed precision for storage."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() - quantum.as_tuple().exponent + 2)
        return value.quantize(quantum, rounding=ROUND_HALF_EVEN)


class TradeStatus(Enum):
    """Status of an executed trade."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class BotState(Enum):
    """Run state of the bot."""
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class Exchange:
    """A venue the bot watches."""
    exchange_id: str
    name: str
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class TradingPair:
    """A tradable market such as ETH/USDT."""
    pair_id: str
    symbol: str
    base_asset: str
    quote_asset: str
    is_active: bool = True


@dataclass
class PriceQuote:
    """Latest price for one (exchange, trading pair) combination."""
    quote_id: str
    exchange_id: str
    pair_id: str
    price: Decimal
    volume: Decimal
    change_24h: Optional[Decimal] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class Opportunity:
    """
    A directional arbitrage route with its latest pricing.

    At most one active opportunity exists per route
    (pair_id, buy_exchange_id, sell_exchange_id).
    """
    opportunity_id: str
    pair_id: str
    buy_exchange_id: str
    sell_exchange_id: str
    buy_price: Decimal
    sell_price: Decimal
    profit_margin: Decimal
    potential_profit: Decimal
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def route(self) -> tuple:
        return (self.pair_id, self.buy_exchange_id, self.sell_exchange_id)


@dataclass
class Trade:
    """Historical record of an execution."""
    trade_id: str
    pair_id: str
    buy_exchange_id: str
    sell_exchange_id: str
    buy_price: Decimal
    sell_price: Decimal
    amount: Decimal
    profit: Decimal
    status: TradeStatus
    opportunity_id: Optional[str] = None
    executed_at: datetime = field(default_factory=datetime.now)

    @property
    def volume(self) -> Decimal:
        """Notional bought, in quote currency."""
        return self.amount * self.buy_price


@dataclass
class BotSettings:
    """Singleton bot configuration record."""
    settings_id: str
    min_profit_margin: Decimal
    max_position_size: Decimal
    slippage_tolerance: Decimal
    gas_limit: int
    stop_loss: Decimal
    daily_loss_limit: Decimal
    auto_pause_on_loss: bool
    is_active: bool = False
    updated_at: datetime = field(default_factory=datetime.now)


class BotSettingsUpdate(BaseModel):
    """Partial settings payload; only the fields that are set get merged."""

    model_config = ConfigDict(extra="forbid")

    min_profit_margin: Optional[Decimal] = Field(None, ge=0)
    max_position_size: Optional[Decimal] = Field(None, gt=0, le=MAX_AMOUNT)
    slippage_tolerance: Optional[Decimal] = Field(None, ge=0, le=100)
    gas_limit: Optional[int] = Field(None, gt=0)
    stop_loss: Optional[Decimal] = Field(None, ge=0, le=100)
    daily_loss_limit: Optional[Decimal] = Field(None, ge=0, le=MAX_AMOUNT)
    auto_pause_on_loss: Optional[bool] = None
    is_active: Optional[bool] = None

    def changes(self) -> dict:
        """Fields explicitly provided by the caller."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }


@dataclass
class BotRuntimeStatus:
    """Run-scoped counters, reset whenever a new run starts."""
    is_active: bool = False
    state: BotState = BotState.STOPPED
    start_time: Optional[datetime] = None
    trades_executed: int = 0
    total_profit: Decimal = Decimal("0")
    active_pairs: int = 0


@dataclass
class BotStatusReport:
    """Runtime status plus metrics recomputed from the trade ledger."""
    runtime: BotRuntimeStatus
    daily_profit: Decimal = Decimal("0")
    daily_volume: Decimal = Decimal("0")
    success_rate: float = 0.0
    total_trades: int = 0

    @property
    def state(self) -> BotState:
        return self.runtime.state

    @property
    def is_active(self) -> bool:
        return self.runtime.is_active


@dataclass
class PriceQuoteWithDetails:
    """A quote with its exchange and trading pair resolved."""
    quote: PriceQuote
    exchange: Exchange
    trading_pair: TradingPair


@dataclass
class OpportunityWithDetails:
    """An opportunity with its trading pair and both exchanges resolved."""
    opportunity: Opportunity
    trading_pair: TradingPair
    buy_exchange: Exchange
    sell_exchange: Exchange


@dataclass
class TradeWithDetails:
    """A trade with its trading pair and both exchanges resolved."""
    trade: Trade
    trading_pair: TradingPair
    buy_exchange: Exchange
    sell_exchange: Exchange
