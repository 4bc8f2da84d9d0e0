"""Telegram Bot API client for landlord notifications"""

from typing import Any, Dict, Optional

import httpx
import structlog

from apartment_viewing.config import settings

logger = structlog.get_logger()


class TelegramError(Exception):
    """Raised when a message could not be delivered to Telegram"""
    pass


class TelegramService:
    """
    Thin wrapper around the Bot API ``sendMessage`` method.

    One call, one request: no retries and no queueing. Callers decide
    what a failed delivery means for them.
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        api_base: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token if bot_token is not None else settings.telegram_bot_token
        self.chat_id = chat_id if chat_id is not None else settings.telegram_chat_id
        self.api_base = (api_base or settings.telegram_api_base).rstrip("/")
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    @property
    def send_message_url(self) -> str:
        return f"{self.api_base}/bot{self.bot_token}/sendMessage"

    async def send_message(self, text: str) -> Dict[str, Any]:
        """
        Send a plain-text message to the configured chat.

        Args:
            text: Message body

        Returns:
            Decoded Bot API response

        Raises:
            TelegramError: If the bot is not configured, the request fails,
                or Telegram answers with a non-success status
        """
        if not self.is_configured:
            raise TelegramError("Telegram bot token or chat id is not configured")

        body = {"chat_id": self.chat_id, "text": text}

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(self.send_message_url, json=body)
        except httpx.HTTPError as e:
            logger.error("telegram_request_failed", error=str(e))
            raise TelegramError(f"Telegram request failed: {e}") from e

        if not response.is_success:
            logger.error(
                "telegram_send_failed",
                status_code=response.status_code,
                response=response.text[:200],
            )
            raise TelegramError(f"Telegram responded with HTTP {response.status_code}")

        logger.info("telegram_message_sent", chat_id=self.chat_id, length=len(text))
        try:
            return response.json()
        except ValueError:
            return {}


def get_telegram_service() -> TelegramService:
    """FastAPI dependency returning a service bound to current settings"""
    return TelegramService()
