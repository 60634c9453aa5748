"""
TaskFlow — Realtime Change Listener.

One live subscription per entity type against the identity's remote
collections. Every remote change replaces the whole collection in the
Local Cache (no merge) and publishes DataUpdated for UI collaborators.

At most one subscription set is active per listener; subscribing again
cancels the previous set first.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from taskflow.core.cloud_sync import collection_path, without_sync_stamp
from taskflow.core.events import DataUpdated, SyncStatusChanged
from taskflow.data.cache import LocalCache
from taskflow.data.models import ENTITY_TYPES

if TYPE_CHECKING:
    from taskflow.core.events import EventBus
    from taskflow.ports.document_store import DocumentStore

logger = logging.getLogger(__name__)


class CancelToken:
    """Releases a subscription set. Safe to call any number of times."""

    def __init__(
        self,
        identity_id: str,
        disposers: list[Callable[[], None]],
        on_cancel: Callable[[CancelToken], None] | None = None,
    ) -> None:
        self.identity_id = identity_id
        self._disposers = disposers
        self._on_cancel = on_cancel

    @property
    def cancelled(self) -> bool:
        return not self._disposers

    def cancel(self) -> None:
        disposers, self._disposers = self._disposers, []
        for dispose in disposers:
            try:
                dispose()
            except Exception:
                logger.exception("Failed to release realtime subscription")
        if disposers and self._on_cancel is not None:
            self._on_cancel(self)

    __call__ = cancel


class RealtimeListener:
    """Feeds remote collection snapshots back into the Local Cache."""

    def __init__(
        self,
        cache: LocalCache,
        store: DocumentStore | None,
        bus: EventBus | None = None,
    ) -> None:
        self._cache = cache
        self._store = store
        self._bus = bus
        self._active: CancelToken | None = None
        self.sync_active = False

    @property
    def active(self) -> CancelToken | None:
        return self._active

    def subscribe(self, identity_id: str) -> CancelToken | None:
        """Open one subscription per entity type. None if no remote store."""
        if self._store is None:
            logger.warning("Cannot set up realtime sync: cloud mirror not configured")
            return None

        self.unsubscribe()

        disposers: list[Callable[[], None]] = []
        try:
            for entity_type in ENTITY_TYPES:
                disposers.append(
                    self._store.watch_collection(
                        collection_path(identity_id, entity_type),
                        self._snapshot_handler(entity_type),
                        self._error_handler(entity_type),
                    )
                )
        except Exception as exc:
            logger.error("Realtime subscription setup failed for %s: %s", identity_id, exc)
            CancelToken(identity_id, disposers).cancel()
            self._set_sync_active(False, str(exc))
            return None

        token = CancelToken(identity_id, disposers, on_cancel=self._forget)
        self._active = token
        self._set_sync_active(True)
        logger.info("Realtime sync listeners active for %s", identity_id)
        return token

    def unsubscribe(self, token: CancelToken | None = None) -> None:
        """Release the given subscription set, or the active one."""
        target = token or self._active
        if target is not None:
            target.cancel()

    def _forget(self, token: CancelToken) -> None:
        if token is self._active:
            self._active = None
            self._set_sync_active(False)
            logger.info("Realtime sync listeners released for %s", token.identity_id)

    def _snapshot_handler(self, entity_type: str) -> Callable[[list[dict[str, Any]]], None]:
        def _on_snapshot(documents: list[dict[str, Any]]) -> None:
            records = [without_sync_stamp(doc) for doc in documents]
            self._cache.set_collection(entity_type, records)
            logger.info("%s collection updated from cloud: %d", entity_type.capitalize(), len(records))
            if self._bus is not None:
                self._bus.publish(DataUpdated(entity_type=entity_type, items=records))

        return _on_snapshot

    def _error_handler(self, entity_type: str) -> Callable[[Exception], None]:
        def _on_error(exc: Exception) -> None:
            logger.warning("Realtime %s subscription ended: %s", entity_type, exc)
            self._set_sync_active(False, str(exc))

        return _on_error

    def _set_sync_active(self, active: bool, error: str | None = None) -> None:
        changed = self.sync_active != active
        self.sync_active = active
        if self._bus is not None and (changed or error):
            self._bus.publish(SyncStatusChanged(active=active, error=error))
