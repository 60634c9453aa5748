"""Notifier factory — Telegram when a bot is configured, the log otherwise."""

from __future__ import annotations

from taskflow.config import settings
from taskflow.ports.notification_port import NotificationPort


def create_notifier() -> NotificationPort:
    if settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_CHAT_ID is not None:
        from telegram import Bot

        from taskflow.adapters.telegram_notifier import TelegramNotifier

        return TelegramNotifier(Bot(token=settings.TELEGRAM_BOT_TOKEN), settings.TELEGRAM_CHAT_ID)

    from taskflow.adapters.log_notifier import LogNotifier

    return LogNotifier()
