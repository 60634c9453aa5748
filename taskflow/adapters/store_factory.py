"""Remote store factories — build the configured adapters, or None when unset."""

from __future__ import annotations

import logging

from taskflow.config import settings
from taskflow.ports.document_store import DocumentStore
from taskflow.ports.path_store import PathStore

logger = logging.getLogger(__name__)


def create_document_store() -> DocumentStore | None:
    """Return the Firestore-backed DocumentStore, or None without credentials."""
    if not settings.firestore_configured:
        logger.info("Firestore not configured; cloud mirror disabled")
        return None

    from taskflow.adapters.firestore_store import FirestoreDocumentStore

    return FirestoreDocumentStore(
        credentials_path=settings.FIREBASE_CREDENTIALS_PATH,
        project_id=settings.FIREBASE_PROJECT_ID,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
    )


def create_path_store() -> PathStore | None:
    """Return the Realtime Database PathStore, or None without a database URL."""
    if not settings.sharing_configured:
        logger.info("Realtime Database not configured; sharing disabled")
        return None

    from taskflow.adapters.rtdb_store import RealtimeDatabaseStore

    return RealtimeDatabaseStore(
        database_url=settings.FIREBASE_DATABASE_URL,
        auth_token=settings.FIREBASE_DATABASE_AUTH,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
    )
