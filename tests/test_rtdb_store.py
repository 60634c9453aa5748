"""Tests for taskflow.adapters.rtdb_store — Realtime Database REST adapter."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from taskflow.adapters.rtdb_store import RealtimeDatabaseStore, apply_at_path
from taskflow.ports.store_errors import (
    PermissionDeniedError,
    RemoteStoreError,
    RemoteUnavailableError,
)

DB_URL = "https://taskflow-default-rtdb.example.com"


def _response(status_code=200, body=None, content=b"{}"):
    resp = MagicMock()
    resp.status_code = status_code
    resp.content = content
    resp.json.return_value = body
    return resp


def _client(**methods):
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    for name, value in methods.items():
        setattr(mock_client, name, value)
    return mock_client


def _streaming_client(lines, status_code=200, body=None):
    """AsyncClient mock whose stream() yields the given SSE lines."""

    async def _aiter_lines():
        for line in lines:
            yield line

    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    response.aread = AsyncMock(return_value=b"")
    response.aiter_lines = _aiter_lines

    stream_cm = MagicMock()
    stream_cm.__aenter__ = AsyncMock(return_value=response)
    stream_cm.__aexit__ = AsyncMock(return_value=False)
    return _client(stream=MagicMock(return_value=stream_cm))


async def _drain():
    for _ in range(5):
        await asyncio.sleep(0)


class TestApplyAtPath:
    def test_root_put_replaces(self):
        assert apply_at_path({"a": 1}, "/", {"b": 2}) == {"b": 2}

    def test_nested_put(self):
        assert apply_at_path({"a": {"x": 1}}, "/a/y", 2) == {"a": {"x": 1, "y": 2}}

    def test_null_deletes_and_prunes(self):
        assert apply_at_path({"a": {"x": 1}, "b": 1}, "/a/x", None) == {"b": 1}
        assert apply_at_path({"a": 1}, "/a", None) is None

    def test_does_not_mutate_input(self):
        original = {"a": {"x": 1}}
        apply_at_path(original, "/a/x", 2)
        assert original == {"a": {"x": 1}}


class TestPointOperations:
    @pytest.mark.asyncio
    async def test_get(self):
        store = RealtimeDatabaseStore(DB_URL, auth_token="secret")
        mock_client = _client(request=AsyncMock(return_value=_response(body={"shareCode": "c"})))

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            value = await store.get("shared/task/abc-def-ghi-jkl")

        assert value == {"shareCode": "c"}
        mock_client.request.assert_awaited_once_with(
            "GET",
            f"{DB_URL}/shared/task/abc-def-ghi-jkl.json",
            params={"auth": "secret"},
        )

    @pytest.mark.asyncio
    async def test_get_missing_is_none(self):
        store = RealtimeDatabaseStore(DB_URL)
        mock_client = _client(request=AsyncMock(return_value=_response(body=None, content=b"null")))

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            assert await store.get("shared/task/x") is None

    @pytest.mark.asyncio
    async def test_set_update_delete_methods(self):
        store = RealtimeDatabaseStore(DB_URL)
        mock_client = _client(request=AsyncMock(return_value=_response(body=None, content=b"")))

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            await store.set("shared/task/x", {"data": {}})
            await store.update("shared/task/x", {"lastSync": "now"})
            await store.delete("shared/task/x")

        calls = mock_client.request.await_args_list
        assert [c.args[0] for c in calls] == ["PUT", "PATCH", "DELETE"]
        assert calls[0].kwargs["json"] == {"data": {}}
        assert calls[1].kwargs["json"] == {"lastSync": "now"}
        assert "json" not in calls[2].kwargs
        assert calls[0].kwargs["params"] == {}

    @pytest.mark.asyncio
    async def test_forbidden_maps_to_permission_denied(self):
        store = RealtimeDatabaseStore(DB_URL)
        resp = _response(status_code=403, body={"error": "Permission denied"})
        mock_client = _client(request=AsyncMock(return_value=resp))

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(PermissionDeniedError, match="Permission denied"):
                await store.set("shared/task/x", {})

    @pytest.mark.asyncio
    async def test_server_error(self):
        store = RealtimeDatabaseStore(DB_URL)
        resp = _response(status_code=500, body=None)
        mock_client = _client(request=AsyncMock(return_value=resp))

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(RemoteStoreError) as excinfo:
                await store.get("shared/task/x")

        assert not isinstance(excinfo.value, PermissionDeniedError)
        assert "500" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self):
        store = RealtimeDatabaseStore(DB_URL)
        mock_client = _client(request=AsyncMock(side_effect=httpx.ConnectError("connection refused")))

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(RemoteUnavailableError):
                await store.get("shared/task/x")


class TestListen:
    @pytest.mark.asyncio
    async def test_applies_put_and_patch_events(self):
        store = RealtimeDatabaseStore(DB_URL)
        mock_client = _streaming_client([
            "event: put",
            'data: {"path": "/", "data": {"a": 1}}',
            "",
            "event: keep-alive",
            "data: null",
            "",
            "event: patch",
            'data: {"path": "/", "data": {"b": 2}}',
            "",
            "event: put",
            'data: {"path": "/a", "data": null}',
            "",
        ])
        values, errors = [], []

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            store.listen("shared/task/x", values.append, errors.append)
            await _drain()

        assert values == [{"a": 1}, {"a": 1, "b": 2}, {"b": 2}]
        assert [type(e) for e in errors] == [RemoteUnavailableError]
        _, kwargs = mock_client.stream.call_args
        assert kwargs["headers"] == {"Accept": "text/event-stream"}

    @pytest.mark.asyncio
    async def test_missing_value_is_delivered_as_none(self):
        store = RealtimeDatabaseStore(DB_URL)
        mock_client = _streaming_client(["event: put", 'data: {"path": "/", "data": null}', ""])
        values = []

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            store.listen("shared/task/x", values.append)
            await _drain()

        assert values == [None]

    @pytest.mark.asyncio
    async def test_server_closing_stream_is_reported(self):
        store = RealtimeDatabaseStore(DB_URL)
        mock_client = _streaming_client(["event: put", 'data: {"path": "/", "data": 1}', ""])
        values, errors = [], []

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            store.listen("shared/task/x", values.append, errors.append)
            await _drain()

        assert values == [1]
        assert len(errors) == 1
        assert isinstance(errors[0], RemoteUnavailableError)
        assert "closed by server" in str(errors[0])

    @pytest.mark.asyncio
    async def test_cancel_event_reports_permission_denied(self):
        store = RealtimeDatabaseStore(DB_URL)
        mock_client = _streaming_client(["event: cancel", "data: null", ""])
        errors = []

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            store.listen("shared/task/x", lambda value: None, errors.append)
            await _drain()

        assert len(errors) == 1
        assert isinstance(errors[0], PermissionDeniedError)

    @pytest.mark.asyncio
    async def test_unauthorized_stream(self):
        store = RealtimeDatabaseStore(DB_URL)
        mock_client = _streaming_client([], status_code=401, body={"error": "Unauthorized request."})
        errors = []

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            store.listen("shared/task/x", lambda value: None, errors.append)
            await _drain()

        assert isinstance(errors[0], PermissionDeniedError)
        assert "Unauthorized" in str(errors[0])

    @pytest.mark.asyncio
    async def test_unsubscribe_cancels_stream(self):
        store = RealtimeDatabaseStore(DB_URL)
        blocker = asyncio.Event()
        errors = []

        async def _forever():
            yield "event: put"
            yield 'data: {"path": "/", "data": 1}'
            yield ""
            await blocker.wait()
            yield "event: put"

        mock_client = _streaming_client([])
        response = await mock_client.stream.return_value.__aenter__()
        response.aiter_lines = _forever
        values = []

        with patch("taskflow.adapters.rtdb_store.httpx.AsyncClient", return_value=mock_client):
            unsubscribe = store.listen("shared/task/x", values.append, errors.append)
            await _drain()
            unsubscribe()
            await _drain()

        assert values == [1]
        assert errors == []
        assert store._streams == set()
