"""
TaskFlow — Task Service.

Task listing (filters + ordering), toggles and sub-task handling on top
of the generic entity CRUD.
"""

from __future__ import annotations

import logging

from taskflow.core.entity_service import EntityService, new_id
from taskflow.data.models import Task, TaskFilters, parse_iso

logger = logging.getLogger(__name__)


def _timestamp(value: str | None) -> float | None:
    parsed = parse_iso(value)
    return parsed.timestamp() if parsed is not None else None


def task_sort_key(task: Task) -> tuple:
    """Important first, then earliest due date (undated last), then newest first."""
    due = _timestamp(task.due_date)
    created = _timestamp(task.created_at) or 0.0
    return (
        not task.is_important,
        due is None,
        due if due is not None else 0.0,
        -created,
    )


def matches(task: Task, filters: TaskFilters) -> bool:
    if filters.status and task.status != filters.status:
        return False
    if filters.is_important is not None and task.is_important != filters.is_important:
        return False
    if filters.is_my_day is not None and task.is_my_day != filters.is_my_day:
        return False
    if filters.project_id and task.project_id != filters.project_id:
        return False
    if filters.search_query:
        query = filters.search_query.lower()
        haystacks = (task.title, task.description or "")
        if not any(query in text.lower() for text in haystacks):
            return False
    return True


class TaskService(EntityService[Task]):
    model = Task

    def list_all(self, filters: TaskFilters | None = None) -> list[Task]:
        """Filtered tasks in display order."""
        tasks = self.all()
        if filters is not None:
            tasks = [task for task in tasks if matches(task, filters)]
        return sorted(tasks, key=task_sort_key)

    def toggle_complete(self, task_id: str) -> Task | None:
        task = self.get(task_id)
        if task is None:
            return None
        new_status = "pending" if task.status == "completed" else "completed"
        return self.update(task_id, {"status": new_status})

    def toggle_important(self, task_id: str) -> Task | None:
        task = self.get(task_id)
        if task is None:
            return None
        return self.update(task_id, {"is_important": not task.is_important})

    def toggle_my_day(self, task_id: str) -> Task | None:
        task = self.get(task_id)
        if task is None:
            return None
        return self.update(task_id, {"is_my_day": not task.is_my_day})

    def add_subtask(self, task_id: str, title: str) -> Task | None:
        task = self.get(task_id)
        if task is None:
            return None
        if not title or not title.strip():
            raise ValueError("sub-task title must not be empty")
        sub_tasks = [st.to_wire() for st in task.sub_tasks]
        sub_tasks.append({"id": new_id("subtask"), "title": title.strip(), "isCompleted": False})
        return self.update(task_id, {"sub_tasks": sub_tasks})

    def toggle_subtask(self, task_id: str, subtask_id: str) -> Task | None:
        """Flip one sub-task; completes the task once every sub-task is done."""
        task = self.get(task_id)
        if task is None:
            return None

        sub_tasks = [st.to_wire() for st in task.sub_tasks]
        for st in sub_tasks:
            if st["id"] == subtask_id:
                st["isCompleted"] = not st["isCompleted"]

        changes: dict = {"sub_tasks": sub_tasks}
        if sub_tasks and all(st["isCompleted"] for st in sub_tasks):
            changes["status"] = "completed"
            logger.info("Task %s auto-completed: all sub-tasks done", task_id)
        return self.update(task_id, changes)

    def delete_subtask(self, task_id: str, subtask_id: str) -> Task | None:
        task = self.get(task_id)
        if task is None:
            return None
        sub_tasks = [st.to_wire() for st in task.sub_tasks if st.id != subtask_id]
        return self.update(task_id, {"sub_tasks": sub_tasks})

    def delete_for_project(self, project_id: str) -> int:
        """Remove every task belonging to a project. Returns how many went."""
        return self._delete_where(lambda record: record.get("projectId") == project_id)
