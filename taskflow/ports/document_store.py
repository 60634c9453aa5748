"""Document store port — per-identity, per-type remote document collections.

Collections are addressed by slash-separated paths such as
``users/<uid>/tasks``; documents inside them are keyed by entity id.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

SnapshotCallback = Callable[[list[dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class DocumentStore(Protocol):
    """Abstract document store used by the cloud mirror."""

    async def list_documents(self, collection: str) -> list[dict[str, Any]]: ...

    async def set_document(
        self, collection: str, doc_id: str, data: dict[str, Any]
    ) -> None: ...

    async def delete_document(self, collection: str, doc_id: str) -> None: ...

    def watch_collection(
        self,
        collection: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        """Deliver the full collection on every change, on the event loop thread."""
        ...
