"""Realtime Database adapter — implements PathStore over the Firebase REST API.

Point operations map to GET/PUT/PATCH/DELETE on ``<url>/<path>.json``.
``listen`` follows the REST streaming endpoint (server-sent events) and
keeps a local copy of the value at the path, applying each ``put`` and
``patch`` event to it before handing the whole value to the callback.

Share envelopes need no authentication; an optional auth token is sent
as the ``auth`` query parameter when configured.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from taskflow.ports.document_store import ErrorCallback, Unsubscribe
from taskflow.ports.path_store import ValueCallback
from taskflow.ports.store_errors import (
    PermissionDeniedError,
    RemoteStoreError,
    RemoteUnavailableError,
)

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 10


def apply_at_path(root: Any, path: str, value: Any) -> Any:
    """Return root with value written at a slash path. None deletes; empty objects vanish."""
    segments = [segment for segment in path.split("/") if segment]
    return _apply(root, segments, value)


def _apply(node: Any, segments: list[str], value: Any) -> Any:
    if not segments:
        return value
    head, rest = segments[0], segments[1:]
    current = dict(node) if isinstance(node, dict) else {}
    child = _apply(current.get(head), rest, value)
    if child is None or child == {}:
        current.pop(head, None)
    else:
        current[head] = child
    return current or None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}"


def _check_response(response: httpx.Response) -> None:
    if response.status_code in (401, 403):
        raise PermissionDeniedError(_error_message(response))
    if response.status_code >= 400:
        raise RemoteStoreError(_error_message(response))


class RealtimeDatabaseStore:
    """Firebase Realtime Database implementation of PathStore."""

    def __init__(
        self,
        database_url: str,
        auth_token: str = "",
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = database_url.rstrip("/")
        self._auth_token = auth_token
        self._timeout = timeout
        self._streams: set[asyncio.Task] = set()

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.strip('/')}.json"

    def _params(self) -> dict[str, str]:
        return {"auth": self._auth_token} if self._auth_token else {}

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        kwargs: dict[str, Any] = {"params": self._params()}
        if payload is not None:
            kwargs["json"] = payload
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(method, self._url(path), **kwargs)
        except httpx.TransportError as exc:
            raise RemoteUnavailableError(f"{method} {path}: {exc}") from exc

        _check_response(response)
        if not response.content:
            return None
        return response.json()

    async def get(self, path: str) -> Any | None:
        return await self._request("GET", path)

    async def set(self, path: str, value: Any) -> None:
        await self._request("PUT", path, value)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        await self._request("PATCH", path, fields)

    async def delete(self, path: str) -> None:
        await self._request("DELETE", path)

    def listen(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._stream(path, on_value, on_error))
        self._streams.add(task)
        task.add_done_callback(self._streams.discard)

        def _unsubscribe() -> None:
            task.cancel()

        return _unsubscribe

    async def close(self) -> None:
        """Cancel every open stream."""
        streams = list(self._streams)
        for task in streams:
            task.cancel()
        await asyncio.gather(*streams, return_exceptions=True)

    async def _stream(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None,
    ) -> None:
        current: Any = None
        event_name: str | None = None

        def _handle(event: str | None, raw: str) -> None:
            nonlocal current
            if event in ("put", "patch"):
                message = json.loads(raw)
                where = message.get("path", "/")
                data = message.get("data")
                if event == "put":
                    current = apply_at_path(current, where, data)
                else:
                    for key, value in (data or {}).items():
                        current = apply_at_path(current, f"{where.rstrip('/')}/{key}", value)
                on_value(current)
                return
            if event == "cancel":
                raise PermissionDeniedError(f"stream for {path} cancelled by security rules")
            if event == "auth_revoked":
                raise PermissionDeniedError(f"auth revoked for stream {path}")

        timeout = httpx.Timeout(self._timeout, read=None)
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                async with client.stream(
                    "GET",
                    self._url(path),
                    params=self._params(),
                    headers={"Accept": "text/event-stream"},
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        _check_response(response)
                    logger.debug("Streaming %s", path)
                    async for line in response.aiter_lines():
                        if line.startswith("event:"):
                            event_name = line[len("event:"):].strip()
                        elif line.startswith("data:"):
                            _handle(event_name, line[len("data:"):].strip())
                        elif not line:
                            event_name = None
                    raise RemoteUnavailableError(f"stream for {path} closed by server")
        except asyncio.CancelledError:
            logger.debug("Stream for %s closed", path)
            raise
        except httpx.HTTPError as exc:
            self._report(path, RemoteUnavailableError(str(exc)), on_error)
        except (RemoteStoreError, ValueError) as exc:
            error = exc if isinstance(exc, RemoteStoreError) else RemoteStoreError(f"bad stream data: {exc}")
            self._report(path, error, on_error)

    @staticmethod
    def _report(path: str, exc: RemoteStoreError, on_error: ErrorCallback | None) -> None:
        logger.warning("Stream for %s ended: %s", path, exc)
        if on_error is not None:
            on_error(exc)
