"""
TaskFlow — Durable Local Cache.

Per-device key/value store holding JSON-serialized collections.
Synchronous and always available: it is the fallback source of truth
when no cloud mirror is reachable. Storage failures are logged and read
as "no value"; they are never fatal.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class CacheKeys:
    """Fixed per-entity-type namespaces."""

    TASKS = "taskflow_tasks"
    PROJECTS = "taskflow_projects"
    CONTACTS = "taskflow_contacts"
    USER = "taskflow_user"
    IS_DURABLE_IDENTITY = "taskflow_is_email_user"

    ALL = (TASKS, PROJECTS, CONTACTS, USER, IS_DURABLE_IDENTITY)


COLLECTION_KEYS: dict[str, str] = {
    "task": CacheKeys.TASKS,
    "project": CacheKeys.PROJECTS,
    "contact": CacheKeys.CONTACTS,
}


class LocalCache:
    """SQLite-backed key/value storage for serialized collections."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from taskflow.config import settings
            db_path = settings.LOCAL_CACHE_PATH

        self._db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._memory_conn: sqlite3.Connection | None = None
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        # An in-memory database only lives as long as its connection.
        if self._db_path == ":memory:":
            if self._memory_conn is None:
                self._memory_conn = sqlite3.connect(":memory:")
            return self._memory_conn
        return sqlite3.connect(self._db_path)

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache (
                    key   TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
        logger.debug("Local cache initialized at %s", self._db_path)

    def get(self, key: str) -> Any | None:
        """Return the decoded value for key, or None if missing or unreadable.

        A corrupt entry is removed so the next write starts clean.
        """
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT value FROM cache WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Error reading from local cache (key=%s): %s", key, exc)
            return None

        if row is None:
            return None
        raw = row[0]
        if raw in ("", "undefined", "null"):
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Corrupt local cache entry %s dropped: %s", key, exc)
            self.remove(key)
            return None

    def set(self, key: str, value: Any) -> None:
        """Store value under key, replacing any previous value.

        Serialization errors propagate: they are caller bugs, not I/O failures.
        """
        payload = json.dumps(value, ensure_ascii=False)
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO cache (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, payload),
                )
        except sqlite3.Error as exc:
            logger.error("Error writing to local cache (key=%s): %s", key, exc)

    def remove(self, key: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM cache WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            logger.error("Error removing from local cache (key=%s): %s", key, exc)

    def clear(self) -> None:
        """Remove every TaskFlow key."""
        for key in CacheKeys.ALL:
            self.remove(key)

    def get_collection(self, entity_type: str) -> list[dict[str, Any]]:
        """Raw records of one entity collection; anything but a list reads as empty."""
        value = self.get(COLLECTION_KEYS[entity_type])
        if not isinstance(value, list):
            return []
        return value

    def set_collection(self, entity_type: str, records: list[dict[str, Any]]) -> None:
        self.set(COLLECTION_KEYS[entity_type], records)
