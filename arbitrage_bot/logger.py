"""
Structured logging configuration for the arbitrage bot.
Uses structlog for rich, structured logging output.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

import structlog
from rich.console import Console
from rich.logging import RichHandler

from arbitrage_bot.config import get_config


# Rich console for pretty output
console = Console()


def add_component(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Ensure component is present in log events."""
    if "component" not in event_dict:
        event_dict["component"] = "main"
    return event_dict


def stringify_decimals(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Render Decimal values as plain strings so JSON output keeps precision."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def setup_logging() -> None:
    """Configure structured logging for the application."""
    config = get_config()
    log_level = getattr(logging, config.monitoring.log_level.upper(), logging.INFO)

    # Configure standard library logging
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=console,
                rich_tracebacks=True,
                show_time=True,
                show_path=False,
            )
        ],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        add_component,
        stringify_decimals,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if config.development.debug_mode:
        # Pretty console output for development
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        # JSON output for production
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance bound to a specific component.

    The logger is resolved lazily, so module-level loggers pick up the
    configuration installed by ``setup_logging`` later on.
    """
    return structlog.get_logger(component=component)


class TradeLogger:
    """Specialized logger for opportunity and trade activity."""

    def __init__(self):
        self.logger = get_logger("trades")

    def log_opportunity_detected(
        self,
        opportunity_id: str,
        symbol: str,
        buy_exchange: str,
        sell_exchange: str,
        profit_margin: Decimal,
        potential_profit: Decimal,
    ) -> None:
        """Log detection of a new arbitrage route."""
        self.logger.info(
            "opportunity_detected",
            opportunity_id=opportunity_id,
            symbol=symbol,
            route=f"{buy_exchange} -> {sell_exchange}",
            profit_margin=f"{profit_margin}%",
            potential_profit=f"${potential_profit:.2f}",
        )

    def log_opportunity_refreshed(
        self,
        opportunity_id: str,
        profit_margin: Decimal,
    ) -> None:
        """Log a rescan refreshing an existing route."""
        self.logger.debug(
            "opportunity_refreshed",
            opportunity_id=opportunity_id,
            profit_margin=f"{profit_margin}%",
        )

    def log_opportunities_expired(self, count: int) -> None:
        """Log expiration of unrefreshed opportunities."""
        if count:
            self.logger.info("opportunities_expired", count=count)

    def log_trade_executed(
        self,
        trade_id: str,
        opportunity_id: str,
        amount: Decimal,
        buy_price: Decimal,
        sell_price: Decimal,
        profit: Decimal,
    ) -> None:
        """Log a completed execution."""
        emoji = "🟢" if profit >= 0 else "🔴"
        self.logger.info(
            f"{emoji} trade_executed",
            trade_id=trade_id,
            opportunity_id=opportunity_id,
            amount=amount,
            buy_price=buy_price,
            sell_price=sell_price,
            profit=f"${profit:.2f}",
        )

    def log_bot_state_changed(self, previous: str, current: str, reason: str = "") -> None:
        """Log a bot lifecycle transition."""
        self.logger.info(
            "bot_state_changed",
            previous=previous,
            current=current,
            reason=reason or None,
        )

    def log_daily_summary(
        self,
        trades: int,
        success_rate: float,
        profit: Decimal,
        volume: Decimal,
    ) -> None:
        """Log daily trading summary."""
        self.logger.info(
            "📊 daily_summary",
            total_trades=trades,
            success_rate=f"{success_rate:.1f}%",
            daily_profit=f"${profit:.2f}",
            daily_volume=f"${volume:.2f}",
            logged_at=datetime.now().isoformat(),
        )


# Global logger instance
trade_logger = TradeLogger()
