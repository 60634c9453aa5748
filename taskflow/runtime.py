"""
TaskFlow — Runtime wiring.

Builds the object graph (cache, identity, event bus, entity services,
cloud mirror, realtime listener, sharing and reminders) and owns its
lifecycle. UI collaborators hold a TaskFlowRuntime and call into the
services it exposes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from taskflow.core.cloud_sync import CloudMirrorSync
from taskflow.core.contact_service import ContactService
from taskflow.core.events import EventBus, IdentityChanged
from taskflow.core.identity import Identity, IdentityProvider
from taskflow.core.project_service import ProjectService
from taskflow.core.realtime import RealtimeListener
from taskflow.core.reminders import ReminderScheduler
from taskflow.core.share_service import ShareService
from taskflow.core.share_session import ShareSession
from taskflow.core.task_service import TaskService
from taskflow.data.cache import LocalCache

if TYPE_CHECKING:
    from taskflow.ports.clock import Clock
    from taskflow.ports.document_store import DocumentStore
    from taskflow.ports.notification_port import NotificationPort
    from taskflow.ports.path_store import PathStore

logger = logging.getLogger(__name__)


class TaskFlowRuntime:
    def __init__(
        self,
        cache: LocalCache,
        document_store: DocumentStore | None,
        path_store: PathStore | None,
        notifier: NotificationPort,
        clock: Clock,
    ) -> None:
        self.cache = cache
        self.bus = EventBus()
        self.identity = IdentityProvider(cache)

        self.listener = RealtimeListener(cache, document_store, bus=self.bus)
        self.mirror = CloudMirrorSync(
            cache, self.identity, document_store, listener=self.listener, bus=self.bus
        )

        self.tasks = TaskService(cache, self.mirror)
        self.projects = ProjectService(cache, self.tasks, self.mirror)
        self.contacts = ContactService(cache, self.mirror)

        self.sharing = ShareService(path_store)
        self.share_session = ShareSession(self.sharing)

        self.reminders = ReminderScheduler(
            task_source=self.tasks.all,
            notifier=notifier,
            clock=clock,
            bus=self.bus,
        )

        self._pending: set[asyncio.Task] = set()
        self._unsubscribe_identity = self.identity.on_change(self._on_identity_change)

    @classmethod
    def from_settings(cls) -> TaskFlowRuntime:
        """Build a runtime from the configured adapters."""
        from taskflow.adapters.notifier_factory import create_notifier
        from taskflow.adapters.store_factory import create_document_store, create_path_store
        from taskflow.adapters.system_clock import SystemClock

        return cls(
            cache=LocalCache(),
            document_store=create_document_store(),
            path_store=create_path_store(),
            notifier=create_notifier(),
            clock=SystemClock(),
        )

    async def start(self) -> None:
        if self.identity.is_durable:
            self.mirror.resume(self.identity.identity_id)
        self.reminders.start()
        logger.info("TaskFlow runtime started for %s", self.identity.identity_id)

    async def stop(self) -> None:
        await self.reminders.stop()
        self.share_session.reset()
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        self.mirror.disable()
        await self.mirror.flush()
        logger.info("TaskFlow runtime stopped")

    def close(self) -> None:
        self._unsubscribe_identity()

    def _on_identity_change(self, identity: Identity, previous: Identity | None) -> None:
        self.bus.publish(IdentityChanged(identity=identity, previous=previous))

        if previous is not None and previous.is_durable and identity.is_durable:
            if previous.id == identity.id:
                return
            # Account switch: listen to the new namespace without reconciling.
            self._cancel_pending()
            self.mirror.disable()
            self.mirror.resume(identity.id)
            return

        if not identity.is_durable:
            self._cancel_pending()
            self.mirror.disable()
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; cloud sync for %s not enabled", identity.id)
            return
        task = loop.create_task(self.mirror.enable(identity.id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()


async def _serve() -> None:
    runtime = TaskFlowRuntime.from_settings()
    await runtime.start()
    try:
        await asyncio.Event().wait()
    finally:
        await runtime.stop()
        runtime.close()


def main() -> None:
    """Entry point: run the sync and reminder loops until interrupted."""
    from taskflow.config import settings

    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting TaskFlow...")
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
