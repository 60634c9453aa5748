"""
TaskFlow — Entity Service base.

CRUD over one Local Cache collection. Every mutation is a synchronous
read-modify-write of the cached list (no await in between), followed by
a best-effort background mirror push when cloud sync is on. The local
write always wins immediately; the remote copy catches up eventually.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from typing import TYPE_CHECKING, Any, Generic, Mapping, TypeVar

from pydantic import ValidationError

from taskflow.data.cache import LocalCache
from taskflow.data.models import Entity, utc_now_iso

if TYPE_CHECKING:
    from taskflow.core.cloud_sync import CloudMirrorSync

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

_BASE36 = string.digits + string.ascii_lowercase
_IMMUTABLE_FIELDS = ("id", "createdAt")


def new_id(prefix: str) -> str:
    """Opaque id: <prefix>_<epoch ms>_<9 random base36 chars>."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class EntityService(Generic[E]):
    """Create, read, update and delete one entity type in the Local Cache."""

    model: type[E]

    def __init__(
        self,
        cache: LocalCache,
        mirror: CloudMirrorSync | None = None,
    ) -> None:
        self._cache = cache
        self._mirror = mirror

    @property
    def entity_type(self) -> str:
        return self.model.entity_type

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def _records(self) -> list[dict[str, Any]]:
        return self._cache.get_collection(self.entity_type)

    def _parse(self, record: dict[str, Any]) -> E | None:
        try:
            return self.model.model_validate(record)
        except ValidationError as exc:
            logger.warning(
                "Skipping unreadable %s record %s: %s",
                self.entity_type, record.get("id"), exc.error_count(),
            )
            return None

    def all(self) -> list[E]:
        """Every readable entity, in stored order."""
        parsed = (self._parse(record) for record in self._records())
        return [entity for entity in parsed if entity is not None]

    def get(self, entity_id: str) -> E | None:
        for record in self._records():
            if record.get("id") == entity_id:
                return self._parse(record)
        return None

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def _normalize(self, fields: Mapping[str, Any] | None) -> dict[str, Any]:
        """Validate the payload shape and map snake_case names to wire keys."""
        if fields is None:
            return {}
        if not isinstance(fields, Mapping):
            raise ValueError(
                f"{self.entity_type} payload must be a mapping, got {type(fields).__name__}"
            )
        return {self.model.wire_key(key): value for key, value in fields.items()}

    def _insert(self, records: list[dict[str, Any]], record: dict[str, Any]) -> None:
        records.append(record)

    def create(self, fields: Mapping[str, Any] | None = None, **extra: Any) -> E:
        """Assign id and timestamps, validate, and append to the collection.

        Raises:
            pydantic.ValidationError / ValueError: malformed payload. Nothing is written.
        """
        data = self._normalize({**(fields or {}), **extra})
        now = utc_now_iso()
        data.update(id=new_id(self.model.id_prefix), createdAt=now, updatedAt=now)
        entity = self.model.model_validate(data)

        records = self._records()
        self._insert(records, entity.to_wire())
        self._cache.set_collection(self.entity_type, records)
        logger.info("%s created: %s", self.entity_type.capitalize(), entity.id)

        self._mirror_changes(upserts=[entity])
        return entity

    def update(self, entity_id: str, partial: Mapping[str, Any]) -> E | None:
        """Merge partial into the entity. id and createdAt never change.

        Returns None if no entity has that id.
        Raises:
            pydantic.ValidationError / ValueError: malformed payload. Nothing is written.
        """
        changes = self._normalize(partial)
        records = self._records()
        for index, record in enumerate(records):
            if record.get("id") == entity_id:
                break
        else:
            return None

        merged = {**record, **changes}
        for key in _IMMUTABLE_FIELDS:
            if key in record:
                merged[key] = record[key]
        merged["updatedAt"] = utc_now_iso()
        entity = self.model.model_validate(merged)

        records[index] = entity.to_wire()
        self._cache.set_collection(self.entity_type, records)
        logger.debug("%s updated: %s", self.entity_type.capitalize(), entity_id)

        self._mirror_changes(upserts=[entity])
        return entity

    def delete(self, entity_id: str) -> bool:
        return self._delete_where(lambda record: record.get("id") == entity_id) > 0

    def _delete_where(self, predicate) -> int:
        records = self._records()
        kept = [record for record in records if not predicate(record)]
        removed_ids = [record.get("id") for record in records if predicate(record)]
        if not removed_ids:
            return 0
        self._cache.set_collection(self.entity_type, kept)
        logger.info("%s deleted: %s", self.entity_type.capitalize(), ", ".join(map(str, removed_ids)))

        self._mirror_changes(removed_ids=[rid for rid in removed_ids if rid])
        return len(removed_ids)

    def _mirror_changes(
        self,
        upserts: list[E] | None = None,
        removed_ids: list[str] | None = None,
    ) -> None:
        if self._mirror is None:
            return
        self._mirror.schedule_push(
            self.entity_type,
            upserts=[entity.to_wire() for entity in upserts or []],
            removed_ids=removed_ids or [],
        )
