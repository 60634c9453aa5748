"""Keyed-path store port — arbitrary JSON tree addressed by path.

Hosts the public share envelopes under ``shared/<type>/<shareCode>``.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

from taskflow.ports.document_store import ErrorCallback, Unsubscribe

ValueCallback = Callable[[Any | None], None]


class PathStore(Protocol):
    """Abstract keyed-path store used by the sharing service."""

    async def get(self, path: str) -> Any | None: ...

    async def set(self, path: str, value: Any) -> None: ...

    async def update(self, path: str, fields: dict[str, Any]) -> None: ...

    async def delete(self, path: str) -> None: ...

    def listen(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        """Deliver the current value at path (None once deleted) on every change."""
        ...
