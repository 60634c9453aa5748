"""Fallback NotificationPort that writes notifications to the log."""

from __future__ import annotations

import logging

from taskflow.ports.notification_port import Notification

logger = logging.getLogger(__name__)


class LogNotifier:
    async def show(self, notification: Notification) -> None:
        logger.info("%s: %s", notification.title, notification.body)
