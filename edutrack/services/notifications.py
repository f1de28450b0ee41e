"""
Outbound notifications for EduTrack.

Sending is fire-and-forget: a failed delivery is logged and never blocks
or rolls back the operation that triggered it.
"""

from typing import Optional

from telegram import Bot
from telegram.error import TelegramError
from loguru import logger

from edutrack.config import settings


class NotificationSender:
    """Interface for outbound messages."""

    async def send(self, destination: Optional[str], body: str) -> bool:
        """
        Deliver a message.

        Args:
            destination: Chat or address to deliver to (default destination when None)
            body: Message text

        Returns:
            True if the message was handed off, False otherwise
        """
        raise NotImplementedError


class LoggingNotificationSender(NotificationSender):
    """Sender used when no delivery channel is configured."""

    async def send(self, destination: Optional[str], body: str) -> bool:
        logger.info(f"Notification for {destination or 'default'}: {body}")
        return True


class TelegramNotificationSender(NotificationSender):
    """Delivers notifications through the Telegram Bot API."""

    def __init__(self, token: str, default_chat_id: Optional[str] = None):
        self.token = token
        self.default_chat_id = default_chat_id
        logger.info("Telegram notification sender initialized")

    async def send(self, destination: Optional[str], body: str) -> bool:
        chat_id = destination or self.default_chat_id
        if not chat_id:
            logger.warning("Notification dropped: no destination chat configured")
            return False

        try:
            async with Bot(self.token) as bot:
                await bot.send_message(
                    chat_id=chat_id,
                    text=body
                )
            logger.info(f"Notification sent to chat {chat_id}")
            return True
        except TelegramError as e:
            logger.error(f"Failed to send notification to chat {chat_id}: {e}")
            return False


def get_notification_sender() -> NotificationSender:
    """Telegram sender when a bot token is configured, logging sender otherwise."""
    if settings.telegram_bot_token:
        return TelegramNotificationSender(
            settings.telegram_bot_token,
            default_chat_id=settings.notification_chat_id
        )
    return LoggingNotificationSender()
