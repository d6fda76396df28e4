"""Telegram notification service."""
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Send liquidation reports via a Telegram bot."""

    def __init__(self, config: TelegramConfig, timeout: int = 10) -> None:
        self.bot_token = config.bot_token
        self.chat_id = config.chat_id
        self.timeout = timeout

    async def send_alert(self, message: str, subject: str = "") -> bool:
        """Send a message; returns False when unconfigured or rejected."""
        if not self.bot_token or not self.chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        text = f"<b>{subject}</b>\n\n{message}" if subject else message
        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(
                url, json=payload, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status == 200:
                    logger.info("Telegram alert sent")
                    return True
                logger.error("Failed to send Telegram message: %s", response.status)
                return False
