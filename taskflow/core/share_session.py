"""
TaskFlow — Share session.

State holder for one active share, as a share dialog or a visitor
opening a share link sees it: the current code and URL, the last known
envelope, a live-sync flag and the last error. When a session is in
"share mode" for a type, locally edited entities of that type can be
forwarded to the envelope with ``push_entity``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from taskflow.core.share_service import ShareService
from taskflow.data.models import Entity, SharedEnvelope

logger = logging.getLogger(__name__)

DataCallback = Callable[[dict[str, Any]], None]


class ShareSession:
    def __init__(self, service: ShareService) -> None:
        self._service = service
        self._unsubscribe: Callable[[], None] | None = None
        self.share_code: str | None = None
        self.share_type: str | None = None
        self.share_url: str | None = None
        self.shared: SharedEnvelope | None = None
        self.error: str | None = None
        self.is_syncing = False

    @property
    def is_available(self) -> bool:
        return self._service.is_available

    @property
    def active(self) -> bool:
        return self.share_code is not None

    async def share(self, entity: Entity | Mapping[str, Any], entity_type: str) -> bool:
        self.error = None
        result = await self._service.share(entity, entity_type)
        if not result.success:
            self.error = result.error or "Failed to share"
            return False
        self.share_code = result.share_code
        self.share_type = entity_type
        self.share_url = result.share_url
        return True

    async def load_shared(
        self,
        share_code: str,
        entity_type: str,
        auto_sync: bool = False,
        on_update: DataCallback | None = None,
    ) -> SharedEnvelope | None:
        """Open an existing share, optionally following live changes."""
        self.error = None
        self.shared = None
        envelope = await self._service.get_shared(share_code, entity_type)
        if envelope is None:
            self.error = self._service.last_error or "Share not found or expired"
            return None

        self.shared = envelope
        self.share_code = share_code
        self.share_type = entity_type
        self.share_url = self._service.share_url(share_code, entity_type)

        if auto_sync:
            self._stop_sync()
            self._unsubscribe = self._service.subscribe_shared(
                share_code,
                entity_type,
                self._sync_handler(on_update),
                on_error=self._on_sync_error,
            )
            self.is_syncing = self._unsubscribe is not None
        return envelope

    def _on_sync_error(self, exc: Exception) -> None:
        logger.warning("Live sync for share %s stopped: %s", self.share_code, exc)
        self._stop_sync()
        self.error = str(exc) or "Live sync stopped"

    def _sync_handler(self, on_update: DataCallback | None) -> Callable[[SharedEnvelope | None], None]:
        def _on_change(envelope: SharedEnvelope | None) -> None:
            if envelope is None:
                logger.info("Share %s disappeared (revoked)", self.share_code)
                self.shared = None
                self.error = "Share not found or expired"
                return
            self.shared = envelope
            if on_update is not None:
                on_update(envelope.data)

        return _on_change

    async def update_shared(self, data: Entity | Mapping[str, Any]) -> bool:
        if self.share_code is None or self.share_type is None:
            self.error = "No active share to update"
            return False
        if not await self._service.update_shared(self.share_code, self.share_type, data):
            self.error = self._service.last_error or "Failed to update shared data"
            return False
        return True

    async def push_entity(self, entity_type: str, entity: Entity) -> bool:
        """Forward a local edit when this session shares that entity type."""
        if self.share_type != entity_type:
            return False
        return await self.update_shared(entity)

    async def revoke(self) -> bool:
        if self.share_code is None or self.share_type is None:
            self.error = "No active share to revoke"
            return False
        if not await self._service.revoke(self.share_code, self.share_type):
            self.error = self._service.last_error or "Failed to revoke share"
            return False
        self.reset()
        return True

    def reset(self) -> None:
        self._stop_sync()
        self.share_code = None
        self.share_type = None
        self.share_url = None
        self.shared = None
        self.error = None

    def _stop_sync(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.is_syncing = False
