"""Notification port — abstract interface for the platform notification primitive.

Core modules depend on this protocol, never on a specific delivery channel.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class Notification:
    title: str
    body: str
    tag: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


class NotificationPort(Protocol):
    """Abstract notification interface used by the reminder scheduler."""

    async def show(self, notification: Notification) -> None: ...
