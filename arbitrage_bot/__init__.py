"""
Cross-exchange arbitrage detection and automated execution bot.
"""

__version__ = "0.1.0"
