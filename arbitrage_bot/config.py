"""
Configuration management for the cross-exchange arbitrage bot.
Uses Pydantic for validation and type safety.
"""

from decimal import Decimal
from pathlib import Path
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseSettings):
    """Scheduling and execution parameters for the engine."""

    price_feed_interval_seconds: float = Field(2.0, alias="PRICE_FEED_INTERVAL_SECONDS")
    scan_interval_seconds: float = Field(5.0, alias="SCAN_INTERVAL_SECONDS")
    execution_interval_seconds: float = Field(10.0, alias="EXECUTION_INTERVAL_SECONDS")

    # Unrefreshed opportunities are deactivated after this many seconds
    opportunity_ttl_seconds: float = Field(30.0, alias="OPPORTUNITY_TTL_SECONDS")

    # Opportunities executed per automatic tick
    execution_batch_size: int = Field(3, alias="EXECUTION_BATCH_SIZE")

    # Number of recent trades the status report aggregates
    status_trade_window: int = Field(100, alias="STATUS_TRADE_WINDOW")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator(
        "price_feed_interval_seconds",
        "scan_interval_seconds",
        "execution_interval_seconds",
        "opportunity_ttl_seconds",
    )
    @classmethod
    def validate_positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Intervals must be positive")
        return v

    @field_validator("execution_batch_size", "status_trade_window")
    @classmethod
    def validate_positive_count(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Count must be at least 1")
        return v


class MarketConfig(BaseSettings):
    """Exchanges and trading pairs the simulated market starts with."""

    exchanges: str = Field("Binance,Coinbase Pro,Kraken,Uniswap V3", alias="EXCHANGES")
    trading_pairs: str = Field("ETH/USDT,BTC/USDT,LINK/USDT", alias="TRADING_PAIRS")
    seed_default_market: bool = Field(True, alias="SEED_DEFAULT_MARKET")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("trading_pairs")
    @classmethod
    def validate_symbols(cls, v: str) -> str:
        for symbol in filter(None, (s.strip() for s in v.split(","))):
            if symbol.count("/") != 1:
                raise ValueError(f"Trading pair must look like BASE/QUOTE: {symbol}")
        return v

    @property
    def exchange_names(self) -> List[str]:
        return [name.strip() for name in self.exchanges.split(",") if name.strip()]

    @property
    def pair_symbols(self) -> List[str]:
        return [symbol.strip() for symbol in self.trading_pairs.split(",") if symbol.strip()]


class DefaultBotSettingsConfig(BaseSettings):
    """Values used when the bot settings record is first created."""

    min_profit_margin: Decimal = Field(Decimal("0.25"), alias="DEFAULT_MIN_PROFIT_MARGIN")
    max_position_size: Decimal = Field(Decimal("5000"), alias="DEFAULT_MAX_POSITION_SIZE")
    slippage_tolerance: Decimal = Field(Decimal("0.5"), alias="DEFAULT_SLIPPAGE_TOLERANCE")
    gas_limit: int = Field(500000, alias="DEFAULT_GAS_LIMIT")
    stop_loss: Decimal = Field(Decimal("2.0"), alias="DEFAULT_STOP_LOSS")
    daily_loss_limit: Decimal = Field(Decimal("1000"), alias="DEFAULT_DAILY_LOSS_LIMIT")
    auto_pause_on_loss: bool = Field(True, alias="DEFAULT_AUTO_PAUSE_ON_LOSS")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("slippage_tolerance", "stop_loss")
    @classmethod
    def validate_percentage(cls, v: Decimal) -> Decimal:
        if not Decimal("0") <= v <= Decimal("100"):
            raise ValueError("Percentage must be between 0 and 100")
        return v

    @field_validator("max_position_size")
    @classmethod
    def validate_position_size(cls, v: Decimal) -> Decimal:
        if not Decimal("0") < v <= Decimal("1e15"):
            raise ValueError("Position size must be positive and at most 1e15")
        return v

    @field_validator("daily_loss_limit")
    @classmethod
    def validate_loss_limit(cls, v: Decimal) -> Decimal:
        if not Decimal("0") <= v <= Decimal("1e15"):
            raise ValueError("Daily loss limit must be between 0 and 1e15")
        return v


class MonitoringConfig(BaseSettings):
    """Monitoring and notification configuration."""

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    enable_notifications: bool = Field(False, alias="ENABLE_NOTIFICATIONS")
    discord_webhook_url: str = Field("", alias="DISCORD_WEBHOOK_URL")
    telegram_bot_token: str = Field("", alias="TELEGRAM_BOT_TOKEN")
    telegram_chat_id: str = Field("", alias="TELEGRAM_CHAT_ID")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class DatabaseConfig(BaseSettings):
    """Trade journal configuration."""

    database_path: Path = Field(Path("./data/trades.db"), alias="DATABASE_PATH")
    enable_trade_journal: bool = Field(True, alias="ENABLE_TRADE_JOURNAL")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class DevelopmentConfig(BaseSettings):
    """Development and testing configuration."""

    debug_mode: bool = Field(False, alias="DEBUG_MODE")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class BotConfig:
    """Master configuration class that aggregates all config sections."""

    def __init__(self):
        self.engine = EngineConfig()
        self.market = MarketConfig()
        self.default_settings = DefaultBotSettingsConfig()
        self.monitoring = MonitoringConfig()
        self.database = DatabaseConfig()
        self.development = DevelopmentConfig()

    @property
    def is_debug(self) -> bool:
        return self.development.debug_mode


# Global config instance
_config: Optional[BotConfig] = None


def get_config() -> BotConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = BotConfig()
    return _config


def reload_config() -> BotConfig:
    """Force reload configuration from environment."""
    global _config
    _config = BotConfig()
    return _config
