# src/taskbot/core/meetings.py

"""
Meeting Scheduler.

Per request:
    requested -> availability checked -> free -> event created -> task persisted
                                      -> busy -> conflict reported (terminal)

Meetings are never blocked on calendar absence: without a connected calendar
(or without a start time, or when the availability check fails for a reason
other than permissions) the task is persisted without an event plus a note.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, tzinfo
from enum import StrEnum

from ..calendar.client import CalendarError, CalendarErrorKind
from ..calendar.models import ConflictSummary
from ..llm.schemas import ParsedTask
from ..tasks.task_models import Task, User
from . import formatter
from .ports import CalendarService, TaskRepo
from .task_writer import TaskWriter

logger = logging.getLogger(__name__)

MEETINGS_CATEGORY = "Meetings"

NOTE_NO_CALENDAR = "Note: no calendar connected, so no calendar event was created."
NOTE_NO_TIME = "Note: no start time given, so no calendar event was created. Add a time to put it on your calendar."
NOTE_CALENDAR_UNAVAILABLE = "Note: the calendar could not be checked, so no calendar event was created."


class MeetingState(StrEnum):
    TASK_PERSISTED = "task_persisted"  # with an event, or without one plus a note
    CONFLICT_REPORTED = "conflict_reported"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class MeetingOutcome:
    state: MeetingState
    reply: str
    task: Task | None = None
    event_id: str | None = None
    availability: ConflictSummary | None = None


class MeetingScheduler:
    def __init__(
        self,
        *,
        store: TaskRepo,
        writer: TaskWriter,
        calendar: CalendarService | None,
        default_duration_minutes: int = 30,
        tz: tzinfo = UTC,
    ) -> None:
        self._store = store
        self._writer = writer
        self._calendar = calendar
        self._default_duration = int(default_duration_minutes)
        self._tz = tz

    async def _persist_with_note(self, user: User, parsed: ParsedTask, category_id: int | None, note: str) -> MeetingOutcome:
        task = await self._writer.persist(user_id=user.id, parsed=parsed, category_id=category_id)
        return MeetingOutcome(
            state=MeetingState.TASK_PERSISTED,
            reply=formatter.format_added(task, tz=self._tz, note=note),
            task=task,
        )

    async def _calendar_blocker(self, user: User) -> str | None:
        """None when events can be created, else the note explaining why not."""
        if self._calendar is None:
            return NOTE_NO_CALENDAR
        try:
            connected = await self._calendar.is_connected(user_id=user.id)
        except CalendarError as e:
            logger.warning("Calendar status check failed user=%s kind=%s: %s", user.id, e.kind, e.message)
            if e.kind in (CalendarErrorKind.PERMISSION_INSUFFICIENT, CalendarErrorKind.TOKEN_EXPIRED):
                return f"Note: {formatter.calendar_error_message(e)}"
            return NOTE_CALENDAR_UNAVAILABLE
        return None if connected else NOTE_NO_CALENDAR

    async def schedule(self, *, user: User, parsed: ParsedTask) -> MeetingOutcome:
        category_id = await self._store.resolve_category_path(user.id, MEETINGS_CATEGORY)

        blocker = await self._calendar_blocker(user)
        if blocker is not None:
            logger.info("Meeting user=%s: calendar unusable -> task only", user.id)
            return await self._persist_with_note(user, parsed, category_id, blocker)

        if parsed.due_date is None:
            logger.info("Meeting user=%s: no start time -> task only", user.id)
            return await self._persist_with_note(user, parsed, category_id, NOTE_NO_TIME)

        assert self._calendar is not None
        start = parsed.due_date
        duration = parsed.duration_minutes or self._default_duration

        try:
            availability = await self._calendar.check_availability(
                user_id=user.id, start=start, duration_minutes=duration
            )
        except CalendarError as e:
            if e.kind is CalendarErrorKind.PERMISSION_INSUFFICIENT:
                logger.info("Meeting user=%s: availability check needs broader permission", user.id)
                return MeetingOutcome(state=MeetingState.FAILED, reply=formatter.calendar_error_message(e))
            logger.warning("Meeting user=%s: availability check failed kind=%s: %s", user.id, e.kind, e.message)
            return await self._persist_with_note(user, parsed, category_id, NOTE_CALENDAR_UNAVAILABLE)

        if not availability.free:
            logger.info(
                "Meeting user=%s: slot busy (%d conflicts, %d alternatives)",
                user.id,
                len(availability.conflicts),
                len(availability.alternatives),
            )
            return MeetingOutcome(
                state=MeetingState.CONFLICT_REPORTED,
                reply=formatter.format_conflicts(parsed.title, availability, tz=self._tz),
                availability=availability,
            )

        try:
            created = await self._calendar.create_event(
                user_id=user.id,
                summary=parsed.title,
                start=start,
                duration_minutes=duration,
                description=parsed.description,
                attendee_names=list(parsed.attendees),
            )
        except CalendarError as e:
            logger.warning("Meeting user=%s: event creation failed kind=%s: %s", user.id, e.kind, e.message)
            return MeetingOutcome(state=MeetingState.FAILED, reply=formatter.calendar_error_message(e))

        try:
            task = await self._writer.persist(
                user_id=user.id,
                parsed=parsed,
                category_id=category_id,
                calendar_event_id=created.event_id,
            )
        except Exception:
            # Event and task exist together or not at all.
            logger.exception("Meeting user=%s: task persist failed, removing event=%s", user.id, created.event_id)
            try:
                await self._calendar.delete_event(user_id=user.id, event_id=created.event_id)
            except CalendarError as e:
                logger.error("Meeting user=%s: could not remove event=%s: %s", user.id, created.event_id, e.message)
            raise

        logger.info("Meeting user=%s: event=%s task=%s", user.id, created.event_id, task.id)
        return MeetingOutcome(
            state=MeetingState.TASK_PERSISTED,
            reply=formatter.format_added(task, tz=self._tz),
            task=task,
            event_id=created.event_id,
            availability=availability,
        )
