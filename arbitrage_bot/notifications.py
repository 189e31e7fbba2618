"""
Notification system for bot alerts.
Supports Discord webhooks and Telegram bots.
"""

import asyncio
from datetime import datetime
from typing import Optional

import httpx

from arbitrage_bot.config import BotConfig, get_config
from arbitrage_bot.logger import get_logger
from arbitrage_bot.models import Trade


logger = get_logger("notifications")


class NotificationService:
    """
    Send notifications about trading activity.

    Supports:
    - Discord webhooks
    - Telegram bots
    """

    def __init__(
        self,
        config: Optional[BotConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or get_config()
        self._client: Optional[httpx.AsyncClient] = client

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=10.0)

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def is_enabled(self) -> bool:
        return self.config.monitoring.enable_notifications

    async def send_discord(self, message: str, embed: Optional[dict] = None) -> bool:
        """Send message to Discord webhook."""
        webhook_url = self.config.monitoring.discord_webhook_url
        if not webhook_url or not self._client:
            return False

        try:
            payload = {"content": message}
            if embed:
                payload["embeds"] = [embed]

            response = await self._client.post(webhook_url, json=payload)
            return response.status_code == 204
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Discord notification failed: {e}")
            return False

    async def send_telegram(self, message: str) -> bool:
        """Send message to Telegram."""
        bot_token = self.config.monitoring.telegram_bot_token
        chat_id = self.config.monitoring.telegram_chat_id

        if not bot_token or not chat_id or not self._client:
            return False

        try:
            url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
            payload = {
                "chat_id": chat_id,
                "text": message,
                "parse_mode": "HTML",
            }

            response = await self._client.post(url, json=payload)
            return response.status_code == 200
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Telegram notification failed: {e}")
            return False

    async def _broadcast(self, title: str, color: int, fields: list, text: str) -> None:
        embed = {
            "title": title,
            "color": color,
            "fields": fields,
            "timestamp": datetime.now().isoformat(),
        }
        await asyncio.gather(
            self.send_discord("", embed=embed),
            self.send_telegram(f"<b>{title}</b>\n{text}"),
        )

    async def notify_trade_executed(self, trade: Trade) -> None:
        """Notify about a completed arbitrage trade."""
        if not self.is_enabled:
            return

        profit = float(trade.profit)
        emoji = "🟢" if profit >= 0 else "🔴"
        color = 0x00ff00 if profit >= 0 else 0xff0000

        await self._broadcast(
            f"{emoji} Arbitrage Executed",
            color,
            [
                {"name": "Profit", "value": f"${profit:+.2f}", "inline": True},
                {"name": "Amount", "value": f"{float(trade.amount):.6f}", "inline": True},
                {"name": "Buy", "value": f"{float(trade.buy_price):.4f}", "inline": True},
                {"name": "Sell", "value": f"{float(trade.sell_price):.4f}", "inline": True},
            ],
            f"Profit: ${profit:+.2f}\n"
            f"Buy {float(trade.buy_price):.4f} → Sell {float(trade.sell_price):.4f}",
        )

    async def notify_bot_state(self, state: str, reason: str = "") -> None:
        """Notify about a bot lifecycle change."""
        if not self.is_enabled:
            return

        fields = [{"name": "State", "value": state.upper(), "inline": True}]
        if reason:
            fields.append({"name": "Reason", "value": reason, "inline": True})

        await self._broadcast(
            "🤖 Bot State Changed",
            0x3498db,  # Blue
            fields,
            f"State: {state.upper()}" + (f"\nReason: {reason}" if reason else ""),
        )

    async def notify_emergency_stop(self, opportunities_deactivated: int) -> None:
        """Notify about an emergency stop."""
        if not self.is_enabled:
            return

        await self._broadcast(
            "🚨 Emergency Stop",
            0xff0000,
            [{"name": "Opportunities Deactivated", "value": str(opportunities_deactivated), "inline": True}],
            f"Opportunities deactivated: {opportunities_deactivated}",
        )

    async def notify_error(self, error: str, component: str = "bot") -> None:
        """Notify about an error."""
        if not self.is_enabled:
            return

        await self._broadcast(
            f"⚠️ Error in {component}",
            0xff9900,  # Orange
            [{"name": "Error", "value": error[:1000], "inline": False}],
            error[:500],
        )

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
