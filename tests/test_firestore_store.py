"""Tests for taskflow.adapters.firestore_store — Firestore DocumentStore adapter."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from taskflow.ports.store_errors import (
    PermissionDeniedError,
    RemoteStoreError,
    RemoteUnavailableError,
)


@pytest.fixture
def sdk():
    """Patch the Firebase Admin SDK entry points used by the adapter."""
    with patch("taskflow.adapters.firestore_store.firebase_admin") as mock_admin, \
         patch("taskflow.adapters.firestore_store.credentials") as mock_credentials, \
         patch("taskflow.adapters.firestore_store.firestore") as mock_firestore:
        db = MagicMock()
        mock_firestore.client.return_value = db
        yield MagicMock(admin=mock_admin, credentials=mock_credentials, firestore=mock_firestore, db=db)


@pytest.fixture
def store(sdk):
    from taskflow.adapters.firestore_store import FirestoreDocumentStore
    return FirestoreDocumentStore("creds.json", "taskflow-test", timeout=5.0)


def _snapshot(data):
    snap = MagicMock()
    snap.to_dict.return_value = data
    return snap


class TestInit:
    def test_initializes_named_app(self, sdk, store):
        sdk.credentials.Certificate.assert_called_once_with("creds.json")
        args, kwargs = sdk.admin.initialize_app.call_args
        assert args[1] == {"projectId": "taskflow-test"}
        assert kwargs["name"].startswith("taskflow-")
        sdk.firestore.client.assert_called_once_with(app=sdk.admin.initialize_app.return_value)

    def test_close_deletes_app(self, sdk, store):
        store.close()
        sdk.admin.delete_app.assert_called_once_with(sdk.admin.initialize_app.return_value)


class TestDocuments:
    @pytest.mark.asyncio
    async def test_list_documents(self, sdk, store):
        sdk.db.collection.return_value.stream.return_value = [
            _snapshot({"id": "t1"}), _snapshot({"id": "t2"}),
        ]

        documents = await store.list_documents("users/u/tasks")

        assert documents == [{"id": "t1"}, {"id": "t2"}]
        sdk.db.collection.assert_called_with("users/u/tasks")
        sdk.db.collection.return_value.stream.assert_called_once_with(timeout=5.0)

    @pytest.mark.asyncio
    async def test_set_document(self, sdk, store):
        await store.set_document("users/u/tasks", "t1", {"id": "t1", "title": "A"})

        ref = sdk.db.collection.return_value.document
        ref.assert_called_once_with("t1")
        ref.return_value.set.assert_called_once_with({"id": "t1", "title": "A"}, timeout=5.0)

    @pytest.mark.asyncio
    async def test_delete_document(self, sdk, store):
        await store.delete_document("users/u/tasks", "t1")
        sdk.db.collection.return_value.document.return_value.delete.assert_called_once_with(timeout=5.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sdk_error, expected", [
        (google_exceptions.PermissionDenied("rules"), PermissionDeniedError),
        (google_exceptions.Unauthenticated("no token"), PermissionDeniedError),
        (google_exceptions.ServiceUnavailable("down"), RemoteUnavailableError),
        (google_exceptions.DeadlineExceeded("slow"), RemoteUnavailableError),
        (google_exceptions.InvalidArgument("bad field"), RemoteStoreError),
    ])
    async def test_errors_are_translated(self, sdk, store, sdk_error, expected):
        sdk.db.collection.return_value.document.return_value.set.side_effect = sdk_error

        with pytest.raises(expected):
            await store.set_document("users/u/tasks", "t1", {"id": "t1"})


class TestWatch:
    @pytest.mark.asyncio
    async def test_snapshots_reach_the_loop(self, sdk, store):
        received = []
        unsubscribe = store.watch_collection("users/u/tasks", received.append)

        callback = sdk.db.collection.return_value.on_snapshot.call_args.args[0]
        callback([_snapshot({"id": "t1"})], [], None)
        await asyncio.sleep(0)

        assert received == [[{"id": "t1"}]]
        unsubscribe()

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self, sdk, store):
        unsubscribe = store.watch_collection("users/u/tasks", lambda docs: None)
        unsubscribe()
        unsubscribe()
        sdk.db.collection.return_value.on_snapshot.return_value.unsubscribe.assert_called_once()

    @pytest.mark.asyncio
    async def test_watch_setup_failure(self, sdk, store):
        sdk.db.collection.return_value.on_snapshot.side_effect = google_exceptions.PermissionDenied("rules")
        with pytest.raises(PermissionDeniedError):
            store.watch_collection("users/u/tasks", lambda docs: None)
