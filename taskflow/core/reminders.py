"""
TaskFlow — Reminder Scheduler.

Turns stored reminder times into notifications, exactly once per
(task, reminder) pair:

    no reminder -> reminder pending -> notified

A pending reminder fires on the first scan at or after its time. The
pair is then remembered for a fixed TTL (1 hour by default); once the
record expires the same pair could fire again if still present.
Completed tasks are never scanned.

Scans run once after a short startup delay and then on a fixed
interval. There is no catch-up for missed ticks: a reminder that came
due while the process was suspended fires on the next scan.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Iterable

from taskflow.core.events import ReminderFired
from taskflow.data.models import Task, parse_iso
from taskflow.ports.notification_port import Notification

if TYPE_CHECKING:
    from taskflow.core.events import EventBus
    from taskflow.ports.clock import Clock
    from taskflow.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

REMINDER_TITLE = "⏰ Task Reminder"

TaskSource = Callable[[], Iterable[Task]]


@dataclass(frozen=True)
class ReminderDedupeRecord:
    task_id: str
    reminder: str
    notified_at: datetime


class ReminderDedupe:
    """Process-lifetime memory of delivered reminders, expiring after ttl."""

    def __init__(self, ttl_seconds: float = 3600.0) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._records: dict[tuple[str, str], ReminderDedupeRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def purge(self, now: datetime) -> None:
        expired = [
            key for key, record in self._records.items()
            if now - record.notified_at >= self._ttl
        ]
        for key in expired:
            del self._records[key]

    def seen(self, task_id: str, reminder: str, now: datetime) -> bool:
        self.purge(now)
        return (task_id, reminder) in self._records

    def mark(self, task_id: str, reminder: str, now: datetime) -> None:
        self._records[(task_id, reminder)] = ReminderDedupeRecord(task_id, reminder, now)


def format_reminder_message(task: Task) -> str:
    """Task title, plus ``(Due: Mar 5)`` when the task has a due date."""
    due = parse_iso(task.due_date)
    if due is None:
        return task.title
    return f"{task.title} (Due: {due:%b} {due.day})"


class ReminderScheduler:
    def __init__(
        self,
        task_source: TaskSource,
        notifier: NotificationPort,
        clock: Clock,
        bus: EventBus | None = None,
        interval_seconds: float | None = None,
        startup_delay_seconds: float | None = None,
        dedupe_ttl_seconds: float | None = None,
    ) -> None:
        if interval_seconds is None or startup_delay_seconds is None or dedupe_ttl_seconds is None:
            from taskflow.config import settings

            if interval_seconds is None:
                interval_seconds = settings.REMINDER_INTERVAL_SECONDS
            if startup_delay_seconds is None:
                startup_delay_seconds = settings.REMINDER_STARTUP_DELAY_SECONDS
            if dedupe_ttl_seconds is None:
                dedupe_ttl_seconds = settings.REMINDER_DEDUPE_TTL_SECONDS

        self._task_source = task_source
        self._notifier = notifier
        self._clock = clock
        self._bus = bus
        self._interval = interval_seconds
        self._startup_delay = startup_delay_seconds
        self._dedupe = ReminderDedupe(dedupe_ttl_seconds)
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def scan(self) -> list[ReminderFired]:
        """Fire every due, not-yet-notified reminder. Returns what fired."""
        now = self._clock.now()
        fired: list[ReminderFired] = []

        # Mark before any await so a re-entrant scan can't fire the same pair.
        for task in self._task_source():
            if not task.reminder or task.status == "completed":
                continue
            when = parse_iso(task.reminder)
            if when is None:
                logger.warning("Invalid reminder time for task %s: %r", task.id, task.reminder)
                continue
            if when > now or self._dedupe.seen(task.id, task.reminder, now):
                continue
            self._dedupe.mark(task.id, task.reminder, now)
            fired.append(
                ReminderFired(
                    task_id=task.id,
                    title=REMINDER_TITLE,
                    message=format_reminder_message(task),
                )
            )

        for reminder in fired:
            logger.info("Reminder fired for task %s", reminder.task_id)
            await self._deliver(reminder)
        return fired

    async def _deliver(self, reminder: ReminderFired) -> None:
        notification = Notification(
            title=reminder.title,
            body=reminder.message,
            tag=reminder.task_id,
            data={"taskId": reminder.task_id},
        )
        try:
            await self._notifier.show(notification)
        except Exception as exc:
            logger.error("Failed to deliver reminder for task %s: %s", reminder.task_id, exc)
        if self._bus is not None:
            self._bus.publish(reminder)

    def start(self) -> asyncio.Task:
        """Begin periodic scanning. A running loop is replaced, not duplicated."""
        if self._task is not None:
            self._task.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            "Reminder scheduler started (every %ss, first scan in %ss)",
            self._interval, self._startup_delay,
        )
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Reminder scheduler stopped")

    async def _run(self) -> None:
        await self._clock.sleep(self._startup_delay)
        while True:
            try:
                await self.scan()
            except Exception:
                logger.exception("Reminder scan failed")
            await self._clock.sleep(self._interval)
