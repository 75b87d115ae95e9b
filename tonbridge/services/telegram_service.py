from typing import Optional

import httpx

from tonbridge.logging_config import get_logger

logger = get_logger("telegram_service")


class TelegramDeliveryError(Exception):
    def __init__(self, description: str, status_code: Optional[int] = None):
        self.description = description
        self.status_code = status_code
        super().__init__(f"Telegram delivery failed ({status_code}): {description}")


def _is_formatting_rejection(error: TelegramDeliveryError) -> bool:
    return error.status_code == 400 and "parse" in (error.description or "").lower()


class TelegramService:
    """Service for sending messages to Telegram."""

    BASE_URL = "https://api.telegram.org/bot{token}"

    def __init__(self, bot_token: Optional[str], timeout_seconds: float = 30.0):
        self.bot_token = bot_token
        self.base_url = self.BASE_URL.format(token=bot_token)
        self.timeout_seconds = timeout_seconds

    async def _make_request(self, method: str, data: Optional[dict] = None) -> dict:
        """Make request to Telegram API. Raises TelegramDeliveryError unless Telegram answers ok."""
        if not self.bot_token:
            raise TelegramDeliveryError("TELEGRAM_BOT_TOKEN not configured")

        url = f"{self.base_url}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(url, json=data or {})
        except httpx.HTTPError as e:
            raise TelegramDeliveryError(str(e)) from e

        try:
            body = response.json()
        except ValueError:
            body = {"ok": False, "description": response.text}

        if response.status_code != 200 or not body.get("ok"):
            raise TelegramDeliveryError(body.get("description") or "unknown error", response.status_code)
        return body

    async def send_message(self, chat_id: str, text: str, parse_mode: Optional[str] = "Markdown") -> dict:
        """Send message to Telegram chat."""
        data = {
            "chat_id": chat_id,
            "text": text,
        }
        if parse_mode:
            data["parse_mode"] = parse_mode

        return await self._make_request("sendMessage", data)

    async def deliver_message(self, chat_id: str, text: str) -> dict:
        """Send with Markdown; if Telegram cannot parse it, resend once as plain text."""
        try:
            result = await self.send_message(chat_id, text, parse_mode="Markdown")
        except TelegramDeliveryError as e:
            if not _is_formatting_rejection(e):
                logger.error(
                    "Error sending Telegram message",
                    extra={"context": {"chat_id": chat_id, "status": e.status_code, "error": e.description}},
                )
                raise
            logger.warning(
                "Markdown parsing failed, retrying with plain text",
                extra={"context": {"chat_id": chat_id, "error": e.description}},
            )
            result = await self.send_message(chat_id, text, parse_mode=None)

        logger.info("Telegram message sent", extra={"context": {"chat_id": chat_id, "message_length": len(text)}})
        return result

    async def set_webhook(self, webhook_url: str) -> dict:
        """Register webhook URL with Telegram."""
        return await self._make_request("setWebhook", {"url": webhook_url})
