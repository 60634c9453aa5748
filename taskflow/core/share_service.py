"""
TaskFlow — Sharing Service.

Publishes detached, code-addressable snapshots of a single entity under
``shared/<type>/<shareCode>`` in the keyed-path store. Anyone holding
the code may read, update, subscribe to or revoke the envelope: there
is no authentication beyond possession of the code.

Edits to the original entity are not propagated: callers re-push them
explicitly with ``update_shared``.
"""

from __future__ import annotations

import copy
import logging
import re
import secrets
import string
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Mapping
from urllib.parse import parse_qs, urlsplit

from pydantic import ValidationError

from taskflow.core.cloud_sync import strip_absent
from taskflow.data.models import ENTITY_TYPES, Entity, SharedEnvelope, utc_now_iso
from taskflow.ports.store_errors import PermissionDeniedError, RemoteStoreError

if TYPE_CHECKING:
    from taskflow.ports.path_store import PathStore

logger = logging.getLogger(__name__)

SHARE_CODE_ALPHABET = string.ascii_lowercase + string.ascii_uppercase + string.digits
SHARE_CODE_GROUPS = 4
SHARE_CODE_GROUP_LENGTH = 3
SHARE_CODE_PATTERN = re.compile(r"^[A-Za-z0-9]{3}(?:-[A-Za-z0-9]{3}){3}$")

EnvelopeCallback = Callable[[SharedEnvelope | None], None]


@dataclass
class ShareResult:
    success: bool
    share_code: str | None = None
    share_url: str | None = None
    error: str | None = None
    permission_denied: bool = False


def generate_share_code() -> str:
    """Four dash-separated groups of three base62 characters, e.g. ``aZ3-k9Q-0bX-T7m``.

    Not checked against existing codes: at 62**12 combinations a collision
    is treated as negligible.
    """
    return "-".join(
        "".join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(SHARE_CODE_GROUP_LENGTH))
        for _ in range(SHARE_CODE_GROUPS)
    )


def is_valid_share_code(code: str) -> bool:
    return bool(code) and SHARE_CODE_PATTERN.match(code) is not None


def share_path(entity_type: str, share_code: str) -> str:
    return f"shared/{entity_type}/{share_code}"


def build_share_url(
    share_code: str,
    entity_type: str,
    origin: str,
    locale: str = "en",
    app_path: str = "taskflow",
) -> str:
    return f"{origin.rstrip('/')}/{locale}/{app_path}?share={share_code}&type={entity_type}"


def parse_share_url(url: str) -> tuple[str, str] | None:
    """Extract (share_code, type) from a share URL; None if it isn't one."""
    query = parse_qs(urlsplit(url).query)
    codes = query.get("share")
    types = query.get("type")
    if not codes or not types:
        return None
    code, entity_type = codes[0], types[0]
    if entity_type not in ENTITY_TYPES or not is_valid_share_code(code):
        return None
    return code, entity_type


def _check_target(share_code: str | None, entity_type: str) -> None:
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown share type: {entity_type!r}")
    if share_code is not None and not is_valid_share_code(share_code):
        raise ValueError(f"Malformed share code: {share_code!r}")


def _snapshot(data: Entity | Mapping[str, Any]) -> dict[str, Any]:
    """Detached JSON copy of an entity."""
    if isinstance(data, Entity):
        return data.to_wire()
    if isinstance(data, Mapping):
        return copy.deepcopy(dict(data))
    raise ValueError(f"Cannot share {type(data).__name__}")


class ShareService:
    """Create, read, update, watch and revoke public share envelopes."""

    def __init__(
        self,
        store: PathStore | None,
        origin: str | None = None,
        locale: str | None = None,
        app_path: str | None = None,
    ) -> None:
        if origin is None or locale is None or app_path is None:
            from taskflow.config import settings

            origin = origin if origin is not None else settings.SHARE_ORIGIN
            locale = locale if locale is not None else settings.SHARE_LOCALE
            app_path = app_path if app_path is not None else settings.SHARE_APP_PATH

        self._store = store
        self._origin = origin
        self._locale = locale
        self._app_path = app_path
        self.last_error: str | None = None
        self.permission_denied = False

    @property
    def is_available(self) -> bool:
        return self._store is not None

    def share_url(self, share_code: str, entity_type: str) -> str:
        return build_share_url(share_code, entity_type, self._origin, self._locale, self._app_path)

    async def share(self, entity: Entity | Mapping[str, Any], entity_type: str) -> ShareResult:
        """Publish a new envelope. Every call yields a new, independent code."""
        _check_target(None, entity_type)
        data = _snapshot(entity)
        if self._store is None:
            return self._unavailable_result()

        if entity_type == "project":
            data["isShared"] = True

        share_code = generate_share_code()
        now = utc_now_iso()
        envelope = SharedEnvelope(
            data=data,
            share_code=share_code,
            type=entity_type,
            created_at=now,
            last_sync=now,
        )
        try:
            await self._store.set(share_path(entity_type, share_code), strip_absent(envelope.to_wire()))
        except RemoteStoreError as exc:
            self._record_failure(f"share {entity_type}", exc)
            return ShareResult(
                success=False,
                error=str(exc) or type(exc).__name__,
                permission_denied=isinstance(exc, PermissionDeniedError),
            )

        self._clear_error()
        logger.info("Shared %s %s as %s", entity_type, data.get("id"), share_code)
        return ShareResult(
            success=True,
            share_code=share_code,
            share_url=self.share_url(share_code, entity_type),
        )

    async def get_shared(self, share_code: str, entity_type: str) -> SharedEnvelope | None:
        """The envelope for a code, or None when missing, revoked or unreadable."""
        _check_target(share_code, entity_type)
        if self._store is None:
            logger.warning("Sharing is not configured")
            return None

        try:
            value = await self._store.get(share_path(entity_type, share_code))
        except RemoteStoreError as exc:
            self._record_failure("read shared data", exc)
            return None

        self._clear_error()
        return self._to_envelope(value, share_code)

    async def update_shared(
        self,
        share_code: str,
        entity_type: str,
        data: Entity | Mapping[str, Any],
    ) -> bool:
        """Replace the envelope's data and lastSync; createdAt is left alone."""
        _check_target(share_code, entity_type)
        payload = _snapshot(data)
        if self._store is None:
            logger.warning("Sharing is not configured")
            return False

        try:
            await self._store.update(
                share_path(entity_type, share_code),
                {"data": strip_absent(payload), "lastSync": utc_now_iso()},
            )
        except RemoteStoreError as exc:
            self._record_failure("update shared data", exc)
            return False

        self._clear_error()
        return True

    def subscribe_shared(
        self,
        share_code: str,
        entity_type: str,
        callback: EnvelopeCallback,
        on_error: Callable[[Exception], None] | None = None,
    ) -> Callable[[], None] | None:
        """Call back with the envelope (None once revoked) whenever it changes.

        ``on_error`` is told when the live feed stops; no further envelopes
        arrive after it. Returns an unsubscribe function, or None when
        sharing is unavailable.
        """
        _check_target(share_code, entity_type)
        if self._store is None:
            logger.warning("Sharing is not configured")
            return None

        def _on_value(value: Any | None) -> None:
            callback(self._to_envelope(value, share_code))

        def _on_error(exc: Exception) -> None:
            if isinstance(exc, RemoteStoreError):
                self._record_failure("watch shared data", exc)
            else:
                logger.error("Shared data subscription failed: %s", exc)
                self.last_error = str(exc)
            if on_error is not None:
                on_error(exc)

        try:
            return self._store.listen(share_path(entity_type, share_code), _on_value, _on_error)
        except RemoteStoreError as exc:
            self._record_failure("subscribe to shared data", exc)
            return None

    async def revoke(self, share_code: str, entity_type: str) -> bool:
        """Delete the envelope; later reads of the code find nothing."""
        _check_target(share_code, entity_type)
        if self._store is None:
            logger.warning("Sharing is not configured")
            return False

        try:
            await self._store.delete(share_path(entity_type, share_code))
        except RemoteStoreError as exc:
            self._record_failure("revoke share", exc)
            return False

        self._clear_error()
        logger.info("Revoked %s share %s", entity_type, share_code)
        return True

    # ------------------------------------------------------------------

    @staticmethod
    def _to_envelope(value: Any | None, share_code: str) -> SharedEnvelope | None:
        if value is None:
            return None
        try:
            return SharedEnvelope.model_validate(value)
        except ValidationError as exc:
            logger.warning("Ignoring malformed envelope %s: %s", share_code, exc.error_count())
            return None

    def _unavailable_result(self) -> ShareResult:
        logger.warning("Sharing is not configured")
        return ShareResult(
            success=False,
            error="Sharing is not configured. Set FIREBASE_DATABASE_URL.",
        )

    def _record_failure(self, action: str, exc: RemoteStoreError) -> None:
        logger.error("Could not %s: %s", action, exc)
        self.last_error = str(exc) or type(exc).__name__
        self.permission_denied = isinstance(exc, PermissionDeniedError)

    def _clear_error(self) -> None:
        self.last_error = None
        self.permission_denied = False
