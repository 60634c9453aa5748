"""
TaskFlow — In-process event bus.

Typed publish/subscribe channel between the core and UI collaborators:
"data updated" after a realtime snapshot lands in the Local Cache,
"reminder fired" for in-app toasts, identity transitions and sync
status changes. Handlers are keyed by event class.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable

if TYPE_CHECKING:
    from taskflow.core.identity import Identity

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Any]


@dataclass
class DataUpdated:
    """A remote snapshot replaced one collection in the Local Cache."""

    entity_type: str
    items: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ReminderFired:
    task_id: str
    title: str
    message: str


@dataclass
class IdentityChanged:
    identity: Identity
    previous: Identity | None = None


@dataclass
class SyncStatusChanged:
    active: bool
    error: str | None = None


class EventBus:
    """In-memory typed pub/sub bus."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[EventHandler]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, event_type: type, handler: EventHandler) -> Callable[[], None]:
        self._handlers[event_type].append(handler)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._handlers[event_type].remove(handler)

        return _unsubscribe

    def publish(self, event: Any) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            try:
                result = handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", type(event).__name__)
                continue
            if inspect.isawaitable(result):
                self._schedule_async_handler(result)

    def _schedule_async_handler(self, awaitable: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Async event handler dropped: no running event loop")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = loop.create_task(awaitable)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(self._log_handler_failure)

    @staticmethod
    def _log_handler_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async event handler failed", exc_info=exc)
