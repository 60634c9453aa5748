"""Firestore adapter — implements DocumentStore with the Firebase Admin SDK.

The SDK is synchronous: point operations run in a worker thread, and
snapshot listeners (which fire on SDK threads) are marshalled back onto
the event loop before reaching the core.

Each store owns its own named Firebase app, so several stores (or tests)
never share ambient SDK state.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions

from taskflow.ports.document_store import ErrorCallback, SnapshotCallback, Unsubscribe
from taskflow.ports.store_errors import (
    PermissionDeniedError,
    RemoteStoreError,
    RemoteUnavailableError,
)

logger = logging.getLogger(__name__)


def _translate(exc: Exception) -> RemoteStoreError:
    if isinstance(exc, (google_exceptions.PermissionDenied, google_exceptions.Unauthenticated)):
        return PermissionDeniedError(str(exc))
    if isinstance(exc, (google_exceptions.ServiceUnavailable, google_exceptions.DeadlineExceeded)):
        return RemoteUnavailableError(str(exc))
    return RemoteStoreError(str(exc))


class FirestoreDocumentStore:
    """Firestore implementation of DocumentStore."""

    def __init__(
        self,
        credentials_path: str,
        project_id: str,
        timeout: float | None = None,
    ) -> None:
        cred = credentials.Certificate(credentials_path)
        self._app = firebase_admin.initialize_app(
            cred,
            {"projectId": project_id},
            name=f"taskflow-{secrets.token_hex(4)}",
        )
        self._db = firestore.client(app=self._app)
        self._timeout = timeout
        logger.info("Firestore document store ready for project %s", project_id)

    def close(self) -> None:
        firebase_admin.delete_app(self._app)

    async def _call(self, func, *args, **kwargs) -> Any:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except google_exceptions.GoogleAPICallError as exc:
            raise _translate(exc) from exc

    async def list_documents(self, collection: str) -> list[dict[str, Any]]:
        def _read() -> list[dict[str, Any]]:
            return [
                snapshot.to_dict() or {}
                for snapshot in self._db.collection(collection).stream(timeout=self._timeout)
            ]

        return await self._call(_read)

    async def set_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        ref = self._db.collection(collection).document(doc_id)
        await self._call(ref.set, data, timeout=self._timeout)

    async def delete_document(self, collection: str, doc_id: str) -> None:
        ref = self._db.collection(collection).document(doc_id)
        await self._call(ref.delete, timeout=self._timeout)

    def watch_collection(
        self,
        collection: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        # The SDK retries broken watches itself and reports no terminal error,
        # so on_error is never called here.
        loop = asyncio.get_running_loop()

        def _on_snapshot(col_snapshot, _changes, _read_time) -> None:
            documents = [snapshot.to_dict() or {} for snapshot in col_snapshot]
            loop.call_soon_threadsafe(on_snapshot, documents)

        try:
            watch = self._db.collection(collection).on_snapshot(_on_snapshot)
        except google_exceptions.GoogleAPICallError as exc:
            raise _translate(exc) from exc

        closed = False

        def _unsubscribe() -> None:
            nonlocal closed
            if closed:
                return
            closed = True
            watch.unsubscribe()

        logger.debug("Watching Firestore collection %s", collection)
        return _unsubscribe
