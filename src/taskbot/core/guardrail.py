# src/taskbot/core/guardrail.py

"""
Calendar Guardrail: safe deletion of tasks that reference a calendar event.

Rules, in order:
1. no event reference           -> local deletion only
2. event not created by the app -> local deletion only (synced events are never deleted remotely)
3. event time already past      -> local deletion only
4. otherwise verify the event still exists remotely (not found = already gone),
   then delete it once and write an audit line.

The local task is always deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from ..calendar.client import CalendarError, CalendarErrorKind
from ..logging_setup import AUDIT_LOGGER
from ..tasks.task_models import Task
from .ports import CalendarService, TaskRepo

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger(AUDIT_LOGGER)


class DeletionDecision(StrEnum):
    NO_EVENT = "no_event"
    NOT_APP_CREATED = "not_app_created"
    EVENT_IN_PAST = "event_in_past"
    ALREADY_GONE = "already_gone"
    REMOTE_DELETED = "remote_deleted"
    REMOTE_FAILED = "remote_failed"
    NO_CALENDAR = "no_calendar"


@dataclass(slots=True, frozen=True)
class DeletionResult:
    task_id: int
    decision: DeletionDecision
    deleted_locally: bool

    @property
    def remote_deleted(self) -> bool:
        return self.decision is DeletionDecision.REMOTE_DELETED


class CalendarGuardrail:
    def __init__(
        self,
        *,
        store: TaskRepo,
        calendar: CalendarService | None,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._now = now

    async def _remote_decision(self, task: Task) -> DeletionDecision:
        if not task.calendar_event_id:
            return DeletionDecision.NO_EVENT
        if not task.event_created_by_app:
            return DeletionDecision.NOT_APP_CREATED

        now = self._now()
        if task.due_at is not None and task.due_at <= now:
            return DeletionDecision.EVENT_IN_PAST
        if self._calendar is None:
            return DeletionDecision.NO_CALENDAR

        event_id = task.calendar_event_id
        try:
            event = await self._calendar.get_event(user_id=task.user_id, event_id=event_id)
        except CalendarError as e:
            if e.kind is CalendarErrorKind.NOT_FOUND:
                audit_logger.info("calendar audit: event=%s for task=%s already gone", event_id, task.id)
                return DeletionDecision.ALREADY_GONE
            logger.warning("Guardrail: event lookup failed task=%s kind=%s: %s", task.id, e.kind, e.message)
            return DeletionDecision.REMOTE_FAILED

        # Local due date may be missing or stale; the remote start is authoritative.
        if event.start <= now:
            return DeletionDecision.EVENT_IN_PAST

        try:
            await self._calendar.delete_event(user_id=task.user_id, event_id=event_id)
        except CalendarError as e:
            if e.kind is CalendarErrorKind.NOT_FOUND:
                audit_logger.info("calendar audit: event=%s for task=%s vanished before delete", event_id, task.id)
                return DeletionDecision.ALREADY_GONE
            logger.warning("Guardrail: remote delete failed task=%s kind=%s: %s", task.id, e.kind, e.message)
            return DeletionDecision.REMOTE_FAILED

        audit_logger.info(
            "calendar audit: deleted event=%s (task=%s user=%s title=%r start=%s)",
            event_id,
            task.id,
            task.user_id,
            task.title,
            event.start.isoformat(),
        )
        return DeletionDecision.REMOTE_DELETED

    async def delete_task(self, task: Task) -> DeletionResult:
        decision = await self._remote_decision(task)
        deleted = await self._store.delete_task(task.id)
        logger.info("Task deleted task=%s decision=%s local=%s", task.id, decision, deleted)
        return DeletionResult(task_id=task.id, decision=decision, deleted_locally=deleted)
