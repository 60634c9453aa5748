"""
TaskFlow — Data Models.

Wire contracts for tasks, projects, contacts and share envelopes.
The same camelCase JSON shape is used in the Local Cache, the cloud
mirror documents and the public share envelopes, so records written by
any client round-trip without translation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EntityType = Literal["task", "project", "contact"]
TaskStatus = Literal["pending", "in-progress", "completed"]
RepeatType = Literal["none", "daily", "weekly", "monthly", "yearly", "custom"]

ENTITY_TYPES: tuple[str, ...] = ("task", "project", "contact")


def utc_now_iso() -> str:
    """Current UTC time as an ISO string with millisecond precision and a Z suffix."""
    now = datetime.now(tz=timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO timestamp; naive values are taken as UTC. None if unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WireModel(BaseModel):
    """Base for camelCase JSON records. Unknown keys are kept, not dropped."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def wire_key(cls, key: str) -> str:
        """Map a field name (snake_case) to its wire alias; other keys pass through."""
        field = cls.model_fields.get(key)
        if field is not None and field.alias:
            return field.alias
        return key


class SubTask(WireModel):
    id: str
    title: str
    is_completed: bool = False


class Attachment(WireModel):
    id: str
    name: str
    url: str
    type: Literal["link", "file"] = "link"


class RepeatSettings(WireModel):
    type: RepeatType = "none"
    interval: int | None = None
    days_of_week: list[int] | None = None
    day_of_month: int | None = None
    end_date: str | None = None


class Entity(WireModel):
    """Common identity and timestamps of every synchronized record."""

    entity_type: ClassVar[str] = ""
    id_prefix: ClassVar[str] = ""

    id: str
    created_at: str
    updated_at: str | None = None


class Task(Entity):
    entity_type: ClassVar[str] = "task"
    id_prefix: ClassVar[str] = "task"

    title: str
    description: str | None = None
    due_date: str | None = None       # ISO date string
    reminder: str | None = None       # ISO datetime string
    repeat: RepeatSettings | None = None
    is_important: bool = False
    is_my_day: bool = False
    status: TaskStatus = "pending"
    project_id: str | None = None
    sub_tasks: list[SubTask] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    assigned_to: list[str] | None = None
    created_by: str = ""


class Project(Entity):
    entity_type: ClassVar[str] = "project"
    id_prefix: ClassVar[str] = "project"

    name: str
    description: str | None = None
    color: str = "#3b82f6"
    icon: str | None = None
    task_ids: list[str] = Field(default_factory=list)
    members: list[str] = Field(default_factory=list)
    is_shared: bool = False
    created_by: str = ""


class Contact(Entity):
    """A person record. Free-form profile keys beyond these are preserved."""

    entity_type: ClassVar[str] = "contact"
    id_prefix: ClassVar[str] = "contact"

    name: str
    email: str | None = None
    phone: str | None = None
    avatar: str | None = None
    age: int | None = None
    date_of_birth: str | None = None
    occupation: str | None = None
    company: str | None = None
    location: str | None = None
    meeting_date: str | None = None
    meeting_occasion: str | None = None
    relationship: str | None = None
    social_media: dict[str, str] | None = None
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)
    is_important: bool = False
    created_by: str = ""


ENTITY_MODELS: dict[str, type[Entity]] = {
    "task": Task,
    "project": Project,
    "contact": Contact,
}


class SharedEnvelope(WireModel):
    """Detached public snapshot of one entity, addressed by its share code."""

    data: dict[str, Any]
    share_code: str
    type: EntityType
    created_at: str
    last_sync: str
    expires_at: str | None = None


@dataclass
class TaskFilters:
    """Predicates for task listing. None means "don't filter on this"."""

    status: str | None = None
    is_important: bool | None = None
    is_my_day: bool | None = None
    project_id: str | None = None
    search_query: str | None = None
