"""
Telegram alerts for settlement issues.

Sends a message when a resolved trade is left without its payout,
so an operator can follow up before the reconciler does.
"""

import logging
from typing import Iterable, Optional

import aiohttp
import requests

from .config import AlertConfig
from .types import SettlementOutcome

logger = logging.getLogger(__name__)


class SettlementAlerter:
    """Send settlement issue notifications to Telegram."""

    def __init__(self, config: Optional[AlertConfig] = None):
        config = config or AlertConfig()
        self.bot_token = config.telegram_bot_token
        self.chat_id = config.telegram_chat_id
        self.timeout_seconds = config.timeout_seconds
        self.enabled = config.telegram_enabled

    @property
    def url(self) -> str:
        return f"https://api.telegram.org/bot{self.bot_token}/sendMessage"

    def format_payout_failure(self, outcome: SettlementOutcome) -> str:
        """Format one unpaid win as a Telegram message."""
        lines = [
            "🔴 **PAYOUT MISSING**",
            "",
            f"🔢 **Trade:** `{outcome.trade_id}`",
            f"💰 **Amount owed:** {outcome.payout_amount}",
            f"❌ **Error:** {outcome.error or 'unknown'}",
            "",
            "━━━━━━━━━━━━━━━━━━━━━",
            "Trade is resolved; only the ledger credit is pending.",
            "Run: `python app.py reconcile`",
        ]
        return "\n".join(lines)

    def _payload(self, text: str) -> dict:
        return {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        }

    async def send_payout_failures(self, outcomes: Iterable[SettlementOutcome]) -> int:
        """
        Send one message per flagged outcome.

        Returns the number of messages Telegram accepted.
        """
        outcomes = list(outcomes)
        if not outcomes:
            return 0
        if not self.enabled:
            logger.warning(
                f"Telegram alerts not configured; {len(outcomes)} payout failure(s) logged only"
            )
            return 0

        sent = 0
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                for outcome in outcomes:
                    payload = self._payload(self.format_payout_failure(outcome))
                    async with session.post(self.url, json=payload) as response:
                        if response.status == 200:
                            sent += 1
                            logger.info(f"Telegram alert sent for trade {outcome.trade_id}")
                        else:
                            logger.error(f"Telegram API error: {response.status}")
        except Exception as e:
            logger.error(f"Failed to send Telegram alert: {e}")
        return sent

    def send_payout_failure_sync(self, outcome: SettlementOutcome) -> bool:
        """
        Synchronous version for non-async contexts (CLI sweep).
        """
        if not self.enabled:
            logger.warning("Telegram alerts not configured")
            return False

        try:
            response = requests.post(
                self.url,
                json=self._payload(self.format_payout_failure(outcome)),
                timeout=self.timeout_seconds,
            )
            if response.status_code == 200:
                logger.info(f"Telegram alert sent for trade {outcome.trade_id}")
                return True
            logger.error(f"Telegram API error: {response.status_code}")
            return False
        except Exception as e:
            logger.error(f"Failed to send Telegram alert: {e}")
            return False


__all__ = ["SettlementAlerter"]
