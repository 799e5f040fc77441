# src/taskbot/core/task_writer.py

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta, tzinfo

from ..llm.schemas import ParsedTask
from ..tasks.task_models import Task
from .ports import TaskRepo

logger = logging.getLogger(__name__)


def end_of_week(now: datetime, tz: tzinfo) -> datetime:
    """Friday 23:59:59 of the current week in `tz`; on Saturday, the following Friday."""
    local = now.astimezone(tz)
    weekday = local.weekday()  # Monday=0 .. Sunday=6
    days = 4 - weekday if weekday <= 4 else (6 if weekday == 5 else 5)
    friday = (local + timedelta(days=days)).replace(hour=23, minute=59, second=59, microsecond=0)
    return friday.astimezone(UTC)


class TaskWriter:
    """Persist one ParsedTask: task row first, then its reminder row."""

    def __init__(self, store: TaskRepo, *, tz: tzinfo = UTC, now=None) -> None:
        self._store = store
        self._tz = tz
        self._now = now or (lambda: datetime.now(UTC))

    async def persist(
        self,
        *,
        user_id: int,
        parsed: ParsedTask,
        category_id: int | None,
        calendar_event_id: str | None = None,
    ) -> Task:
        due_at = parsed.due_date or end_of_week(self._now(), self._tz)

        task = await self._store.add_task(
            user_id=user_id,
            title=parsed.title,
            description=parsed.description,
            priority=parsed.priority,
            category_id=category_id,
            due_at=due_at,
            reminder_at=parsed.reminder_time,
            is_recurring=parsed.is_recurring,
            recurrence_rule=parsed.recurrence_rule,
            calendar_event_id=calendar_event_id,
            event_created_by_app=calendar_event_id is not None,
        )

        # No transaction spans both rows: a failed reminder leaves the task in place.
        if parsed.reminder_time is not None:
            try:
                await self._store.add_reminder(task.id, user_id, parsed.reminder_time)
            except Exception:
                logger.exception("Reminder row failed for task=%s (task kept)", task.id)

        return task
