"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance and sends every notification to one chat.
"""

from __future__ import annotations

import logging

from telegram import Bot

from taskflow.ports.notification_port import Notification

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot, chat_id: int) -> None:
        self._bot = bot
        self._chat_id = chat_id

    async def show(self, notification: Notification) -> None:
        text = f"{notification.title}\n{notification.body}"
        await self._bot.send_message(chat_id=self._chat_id, text=text)
        logger.debug("Sent notification %s to chat %s", notification.tag, self._chat_id)
