"""Shared test fixtures and configuration.

Sets up fake environment variables so taskflow.config doesn't sys.exit(),
and provides in-memory fakes for the remote stores, the clock and the
notifier.
"""

import os

# Patch env vars BEFORE any taskflow imports
os.environ.setdefault("LOCAL_CACHE_PATH", ":memory:")
os.environ.setdefault("FIREBASE_CREDENTIALS_PATH", "")
os.environ.setdefault("FIREBASE_PROJECT_ID", "")
os.environ.setdefault("FIREBASE_DATABASE_URL", "")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("TELEGRAM_CHAT_ID", "")

import asyncio
import copy
from datetime import datetime, timedelta, timezone

import pytest


class FakeDocumentStore:
    """In-memory DocumentStore. Watchers fire only when a test calls emit()."""

    def __init__(self):
        self.collections = {}
        self.watchers = {}
        self.fail = None
        self.watch_fail = None
        self.read_gate = None

    def _check(self):
        if self.fail is not None:
            raise self.fail

    def seed(self, collection, documents):
        self.collections[collection] = {doc["id"]: copy.deepcopy(doc) for doc in documents}

    def documents(self, collection):
        return list(self.collections.get(collection, {}).values())

    async def list_documents(self, collection):
        if self.read_gate is not None:
            await self.read_gate.wait()
        self._check()
        return copy.deepcopy(self.documents(collection))

    async def set_document(self, collection, doc_id, data):
        self._check()
        self.collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    async def delete_document(self, collection, doc_id):
        self._check()
        self.collections.get(collection, {}).pop(doc_id, None)

    def watch_collection(self, collection, on_snapshot, on_error=None):
        if self.watch_fail is not None:
            raise self.watch_fail
        entry = (on_snapshot, on_error)
        self.watchers.setdefault(collection, []).append(entry)

        def _unsubscribe():
            entries = self.watchers.get(collection, [])
            if entry in entries:
                entries.remove(entry)
            if not entries:
                self.watchers.pop(collection, None)

        return _unsubscribe

    def emit(self, collection):
        for on_snapshot, _ in list(self.watchers.get(collection, [])):
            on_snapshot(copy.deepcopy(self.documents(collection)))

    def emit_error(self, collection, exc):
        for _, on_error in list(self.watchers.get(collection, [])):
            if on_error is not None:
                on_error(exc)


class FakePathStore:
    """In-memory PathStore. Listeners get the current value at once and on every change."""

    def __init__(self):
        self.values = {}
        self.listeners = {}
        self.fail = None

    def _check(self):
        if self.fail is not None:
            raise self.fail

    def _notify(self, path):
        for on_value, _ in list(self.listeners.get(path, [])):
            on_value(copy.deepcopy(self.values.get(path)))

    async def get(self, path):
        self._check()
        return copy.deepcopy(self.values.get(path))

    async def set(self, path, value):
        self._check()
        self.values[path] = copy.deepcopy(value)
        self._notify(path)

    async def update(self, path, fields):
        self._check()
        current = self.values.get(path) or {}
        current.update(copy.deepcopy(fields))
        self.values[path] = current
        self._notify(path)

    async def delete(self, path):
        self._check()
        self.values.pop(path, None)
        self._notify(path)

    def listen(self, path, on_value, on_error=None):
        entry = (on_value, on_error)
        self.listeners.setdefault(path, []).append(entry)
        on_value(copy.deepcopy(self.values.get(path)))

        def _unsubscribe():
            entries = self.listeners.get(path, [])
            if entry in entries:
                entries.remove(entry)

        return _unsubscribe

    def emit_error(self, path, exc):
        for _, on_error in list(self.listeners.get(path, [])):
            if on_error is not None:
                on_error(exc)


class FakeClock:
    def __init__(self, now):
        self.current = now
        self.sleeps = []

    def now(self):
        return self.current

    def advance(self, seconds):
        self.current += timedelta(seconds=seconds)

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        await asyncio.sleep(0)


class RecordingNotifier:
    def __init__(self):
        self.notifications = []
        self.fail = None

    async def show(self, notification):
        if self.fail is not None:
            raise self.fail
        self.notifications.append(notification)


@pytest.fixture
def tmp_cache_path(tmp_path):
    """Return a temporary SQLite cache path."""
    return str(tmp_path / "test_taskflow.db")


@pytest.fixture
def cache(tmp_cache_path):
    """Return a LocalCache backed by a temp file."""
    from taskflow.data.cache import LocalCache
    return LocalCache(db_path=tmp_cache_path)


@pytest.fixture
def identity(cache):
    from taskflow.core.identity import IdentityProvider
    return IdentityProvider(cache)


@pytest.fixture
def bus():
    from taskflow.core.events import EventBus
    return EventBus()


@pytest.fixture
def document_store():
    return FakeDocumentStore()


@pytest.fixture
def path_store():
    return FakePathStore()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def recorded(bus):
    """Collect every event of the given types published on the bus."""
    events = []

    def _record(*event_types):
        for event_type in event_types:
            bus.subscribe(event_type, events.append)
        return events

    return _record
