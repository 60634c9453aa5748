"""
TaskFlow — Project Service.

Projects own a color/icon and group tasks; deleting a project removes
its tasks too (through the task service, so the removals are mirrored).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from taskflow.core.entity_service import EntityService
from taskflow.data.cache import LocalCache
from taskflow.data.models import Project, Task, TaskFilters

if TYPE_CHECKING:
    from taskflow.core.cloud_sync import CloudMirrorSync
    from taskflow.core.task_service import TaskService

logger = logging.getLogger(__name__)


class ProjectService(EntityService[Project]):
    model = Project

    def __init__(
        self,
        cache: LocalCache,
        tasks: TaskService,
        mirror: CloudMirrorSync | None = None,
    ) -> None:
        super().__init__(cache, mirror)
        self._tasks = tasks

    def list_all(self) -> list[Project]:
        return self.all()

    def delete(self, entity_id: str) -> bool:
        if not super().delete(entity_id):
            return False
        removed = self._tasks.delete_for_project(entity_id)
        if removed:
            logger.info("Project %s removed with %d task(s)", entity_id, removed)
        return True

    def project_tasks(self, project_id: str) -> list[Task]:
        return self._tasks.list_all(TaskFilters(project_id=project_id))

    def task_count(self, project_id: str) -> int:
        return sum(1 for task in self._tasks.all() if task.project_id == project_id)
