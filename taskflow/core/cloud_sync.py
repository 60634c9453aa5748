"""
TaskFlow — Cloud Mirror Sync.

Keeps the Local Cache and a per-identity remote document collection in
step, for durable identities only:

- push: upserts entity documents under users/<uid>/<type>s, stripping
  absent (None) values first because the remote store rejects them.
- pull: full collection read.
- reconcile: the one-shot merge run on an anonymous -> durable
  transition (local-only uploads, remote-only downloads, both sides
  present means the remote snapshot wins).

After reconciliation the Realtime Listener keeps the cache current.
Remote failures never roll back a local write and are not retried: they
are logged and kept in ``state.last_error`` until the next success.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable

from taskflow.core.events import SyncStatusChanged
from taskflow.data.cache import LocalCache
from taskflow.data.models import ENTITY_TYPES, utc_now_iso
from taskflow.ports.store_errors import (
    PermissionDeniedError,
    RemoteStoreError,
    RemoteUnavailableError,
)

if TYPE_CHECKING:
    from taskflow.core.events import EventBus
    from taskflow.core.identity import IdentityProvider
    from taskflow.core.realtime import CancelToken, RealtimeListener
    from taskflow.ports.document_store import DocumentStore

logger = logging.getLogger(__name__)

SYNCED_AT_FIELD = "syncedAt"


class SyncOutcome(str, Enum):
    UPLOADED = "uploaded"          # local -> remote, first sign-in
    DOWNLOADED = "downloaded"      # remote -> local, new device
    REMOTE_WINS = "remote_wins"    # both had data, remote overwrote local
    NOOP = "noop"
    PUSHED = "pushed"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"
    ABANDONED = "abandoned"        # identity changed while reconciling


@dataclass
class SyncState:
    """Public sync status for UI collaborators."""

    available: bool
    enabled: bool = False
    last_error: str | None = None
    permission_denied: bool = False
    last_synced_at: str | None = None


def strip_absent(value: Any) -> Any:
    """Recursively drop None values from dicts and lists.

    Empty strings, empty containers, zero and False are real values and kept.
    """
    if isinstance(value, dict):
        return {
            key: strip_absent(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, (list, tuple)):
        return [strip_absent(item) for item in value if item is not None]
    return value


def collection_path(identity_id: str, entity_type: str) -> str:
    """Remote namespace for one identity's collection of one entity type."""
    return f"users/{identity_id}/{entity_type}s"


def without_sync_stamp(document: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in document.items() if key != SYNCED_AT_FIELD}


class CloudMirrorSync:
    """Mirror between the Local Cache and the remote document store."""

    def __init__(
        self,
        cache: LocalCache,
        identity: IdentityProvider,
        store: DocumentStore | None,
        listener: RealtimeListener | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._cache = cache
        self._identity = identity
        self._store = store
        self._listener = listener
        self._bus = bus
        self._pending: set[asyncio.Task] = set()
        self._subscription: CancelToken | None = None
        self.state = SyncState(available=store is not None)

    @property
    def available(self) -> bool:
        return self._store is not None

    # ------------------------------------------------------------------
    # push / pull
    # ------------------------------------------------------------------

    async def push(
        self,
        identity_id: str,
        entity_type: str,
        entities: Iterable[dict[str, Any]],
    ) -> SyncOutcome:
        """Upsert each entity as a document keyed by its id."""
        if self._store is None:
            logger.debug("Skipping %s push: cloud mirror not configured", entity_type)
            return SyncOutcome.UNAVAILABLE

        entities = list(entities)
        path = collection_path(identity_id, entity_type)
        try:
            for entity in entities:
                document = strip_absent({**entity, SYNCED_AT_FIELD: utc_now_iso()})
                await self._store.set_document(path, entity["id"], document)
        except RemoteStoreError as exc:
            self._record_failure(f"push {len(entities)} {entity_type}(s)", exc)
            return SyncOutcome.FAILED

        self._record_success()
        logger.info("Pushed %d %s(s) to %s", len(entities), entity_type, path)
        return SyncOutcome.PUSHED

    async def remove(
        self, identity_id: str, entity_type: str, entity_ids: Iterable[str]
    ) -> SyncOutcome:
        """Delete mirrored documents for entities removed locally."""
        if self._store is None:
            return SyncOutcome.UNAVAILABLE

        entity_ids = list(entity_ids)
        path = collection_path(identity_id, entity_type)
        try:
            for entity_id in entity_ids:
                await self._store.delete_document(path, entity_id)
        except RemoteStoreError as exc:
            self._record_failure(f"delete {len(entity_ids)} {entity_type}(s)", exc)
            return SyncOutcome.FAILED

        self._record_success()
        logger.info("Deleted %d %s(s) from %s", len(entity_ids), entity_type, path)
        return SyncOutcome.PUSHED

    async def pull(self, identity_id: str, entity_type: str) -> list[dict[str, Any]]:
        """Full read of one remote collection.

        Raises:
            RemoteUnavailableError: no remote store is configured.
            RemoteStoreError: the read failed.
        """
        if self._store is None:
            raise RemoteUnavailableError("cloud mirror not configured")
        documents = await self._store.list_documents(collection_path(identity_id, entity_type))
        return [without_sync_stamp(doc) for doc in documents]

    async def pull_all(self, identity_id: str) -> dict[str, list[dict[str, Any]]]:
        results = await asyncio.gather(
            *(self.pull(identity_id, entity_type) for entity_type in ENTITY_TYPES)
        )
        return dict(zip(ENTITY_TYPES, results))

    # ------------------------------------------------------------------
    # reconciliation
    # ------------------------------------------------------------------

    async def reconcile(self, identity_id: str) -> SyncOutcome:
        """One-shot merge for an anonymous -> durable transition."""
        if self._store is None:
            logger.warning("Reconcile skipped: cloud mirror not configured")
            return SyncOutcome.UNAVAILABLE

        try:
            remote = await self.pull_all(identity_id)
        except RemoteStoreError as exc:
            # Without a trustworthy remote view, guessing "empty" would overwrite it.
            self._record_failure("reconcile (remote read)", exc)
            return SyncOutcome.FAILED

        if not self._is_current(identity_id):
            logger.info("Reconcile %s abandoned: identity changed during remote read", identity_id)
            return SyncOutcome.ABANDONED

        local = {
            entity_type: self._cache.get_collection(entity_type)
            for entity_type in ENTITY_TYPES
        }
        has_local = any(local.values())
        has_remote = any(remote.values())
        logger.info(
            "Reconcile %s: local=%s remote=%s",
            identity_id,
            {t: len(v) for t, v in local.items()},
            {t: len(v) for t, v in remote.items()},
        )

        if has_local and not has_remote:
            for entity_type, records in local.items():
                if not records:
                    continue
                if not self._is_current(identity_id):
                    logger.info("Reconcile %s abandoned: identity changed during upload", identity_id)
                    return SyncOutcome.ABANDONED
                outcome = await self.push(identity_id, entity_type, records)
                if outcome is SyncOutcome.FAILED:
                    return SyncOutcome.FAILED
            return SyncOutcome.UPLOADED

        if has_remote:
            # Remote wins per collection; collections empty on the remote keep local data.
            for entity_type, records in remote.items():
                if records:
                    self._cache.set_collection(entity_type, records)
            self._record_success()
            return SyncOutcome.REMOTE_WINS if has_local else SyncOutcome.DOWNLOADED

        logger.info("Reconcile %s: no data on either side", identity_id)
        return SyncOutcome.NOOP

    # ------------------------------------------------------------------
    # mutation mirroring
    # ------------------------------------------------------------------

    def schedule_push(
        self,
        entity_type: str,
        upserts: Iterable[dict[str, Any]] = (),
        removed_ids: Iterable[str] = (),
    ) -> asyncio.Task | None:
        """Best-effort background mirror of a local mutation.

        Returns the scheduled task, or None when nothing is mirrored
        (anonymous identity, no remote store, or no running event loop).
        """
        if not self._identity.is_durable:
            logger.debug("Skipping %s mirror: anonymous identity", entity_type)
            return None
        if self._store is None:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Skipping %s mirror: no running event loop", entity_type)
            return None

        identity_id = self._identity.identity_id
        upserts = list(upserts)
        removed_ids = list(removed_ids)

        async def _mirror() -> None:
            if upserts:
                await self.push(identity_id, entity_type, upserts)
            if removed_ids:
                await self.remove(identity_id, entity_type, removed_ids)

        task = loop.create_task(_mirror())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def flush(self) -> None:
        """Wait for every in-flight background push to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    async def enable(self, identity_id: str) -> SyncOutcome:
        """Reconcile once for a fresh durable identity, then go live."""
        outcome = await self.reconcile(identity_id)
        if outcome is SyncOutcome.UNAVAILABLE:
            return outcome
        if not self._is_current(identity_id):
            logger.info("Cloud sync for %s not enabled: identity changed", identity_id)
            return SyncOutcome.ABANDONED
        self.resume(identity_id)
        logger.info("Cloud sync enabled for %s (%s)", identity_id, outcome.value)
        return outcome

    def resume(self, identity_id: str) -> bool:
        """Start realtime listening without reconciling."""
        if self._listener is None or self._store is None:
            return False
        self._subscription = self._listener.subscribe(identity_id)
        self.state.enabled = self._subscription is not None
        return self.state.enabled

    def disable(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self.state.enabled = False
        logger.info("Cloud sync disabled")

    # ------------------------------------------------------------------

    def _is_current(self, identity_id: str) -> bool:
        return self._identity.is_durable and self._identity.identity_id == identity_id

    def _record_failure(self, action: str, exc: RemoteStoreError) -> None:
        logger.error("Cloud mirror %s failed: %s", action, exc)
        self.state.last_error = str(exc) or type(exc).__name__
        self.state.permission_denied = isinstance(exc, PermissionDeniedError)
        self._publish_status()

    def _record_success(self) -> None:
        had_error = self.state.last_error is not None
        self.state.last_error = None
        self.state.permission_denied = False
        self.state.last_synced_at = utc_now_iso()
        if had_error:
            self._publish_status()

    def _publish_status(self) -> None:
        if self._bus is None:
            return
        self._bus.publish(SyncStatusChanged(active=self.state.enabled, error=self.state.last_error))
