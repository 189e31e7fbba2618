"""
Core arbitrage detection and execution engine.
"""

from arbitrage_bot.engine.arbitrage_system import ArbitrageSystem
from arbitrage_bot.engine.bot_controller import BotController
from arbitrage_bot.engine.execution_engine import ExecutionEngine
from arbitrage_bot.engine.opportunity_scanner import OpportunityScanner

__all__ = [
    "ArbitrageSystem",
    "BotController",
    "ExecutionEngine",
    "OpportunityScanner",
]
