# notifiers/telegram.py
import html
import logging
from telegram import Bot
from telegram.error import TelegramError
from notifiers.base import BaseNotifier, Notification

logger = logging.getLogger(__name__)

_ICONS = {"info": "ℹ️", "success": "✅", "error": "❌"}


class TelegramNotifier(BaseNotifier):
    def __init__(self, token: str, chat_id: str, bot: Bot | None = None):
        self.chat_id = chat_id
        try:
            self.bot = bot or Bot(token=token)
        except (TelegramError, ValueError) as exc:
            logger.warning("Telegram init failed – disabling backend: %s", exc)
            self.bot = None

    @staticmethod
    def format(notification: Notification) -> str:
        icon = _ICONS.get(notification.severity, "")
        return (
            f"{icon} <b>{html.escape(notification.title)}</b>\n"
            f"{html.escape(notification.description)}"
        )

    async def send(self, notification: Notification) -> None:
        if self.bot is None:
            return
        try:
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=self.format(notification),
                parse_mode="HTML",
            )
        except TelegramError as exc:
            logger.warning("Telegram send failed: %s", exc)
