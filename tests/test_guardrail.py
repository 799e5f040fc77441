# tests/test_guardrail.py

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from taskbot.calendar.client import CalendarError, CalendarErrorKind
from taskbot.calendar.models import CalendarEvent
from taskbot.core.guardrail import CalendarGuardrail, DeletionDecision

from .fakes import FakeCalendar

NOW = datetime(2026, 10, 14, 10, 0, tzinfo=UTC)


def _guardrail(store, calendar) -> CalendarGuardrail:
    return CalendarGuardrail(store=store, calendar=calendar, now=lambda: NOW)


async def _task_with_event(store, calendar: FakeCalendar, *, start: datetime, by_app: bool = True):
    user = await store.get_or_create_user("u1")
    calendar.events["evt-1"] = CalendarEvent(
        event_id="evt-1", summary="Sync", start=start, end=start + timedelta(minutes=30)
    )
    return await store.add_task(
        user_id=user.id,
        title="Sync",
        due_at=start,
        calendar_event_id="evt-1",
        event_created_by_app=by_app,
    )


@pytest.mark.asyncio
async def test_plain_task_is_deleted_locally(store) -> None:
    user = await store.get_or_create_user("u1")
    task = await store.add_task(user_id=user.id, title="Buy milk")
    calendar = FakeCalendar()

    result = await _guardrail(store, calendar).delete_task(task)

    assert result.decision is DeletionDecision.NO_EVENT
    assert result.deleted_locally
    assert calendar.delete_calls == []
    assert await store.get_task(task.id) is None


@pytest.mark.asyncio
async def test_past_event_is_never_deleted_remotely(store) -> None:
    calendar = FakeCalendar()
    task = await _task_with_event(store, calendar, start=NOW - timedelta(days=1))

    result = await _guardrail(store, calendar).delete_task(task)

    assert result.decision is DeletionDecision.EVENT_IN_PAST
    assert calendar.delete_calls == []
    assert "evt-1" in calendar.events
    assert await store.get_task(task.id) is None


@pytest.mark.asyncio
async def test_remote_start_in_past_wins_over_local_due_date(store) -> None:
    calendar = FakeCalendar()
    task = await _task_with_event(store, calendar, start=NOW + timedelta(days=1))
    calendar.events["evt-1"] = CalendarEvent(
        event_id="evt-1", summary="Sync", start=NOW - timedelta(hours=1), end=NOW
    )

    result = await _guardrail(store, calendar).delete_task(task)

    assert result.decision is DeletionDecision.EVENT_IN_PAST
    assert calendar.delete_calls == []


@pytest.mark.asyncio
async def test_synced_event_is_never_deleted_remotely(store) -> None:
    calendar = FakeCalendar()
    task = await _task_with_event(store, calendar, start=NOW + timedelta(days=1), by_app=False)

    result = await _guardrail(store, calendar).delete_task(task)

    assert result.decision is DeletionDecision.NOT_APP_CREATED
    assert calendar.delete_calls == []
    assert result.deleted_locally


@pytest.mark.asyncio
async def test_future_app_event_is_deleted_exactly_once(store, caplog) -> None:
    calendar = FakeCalendar()
    task = await _task_with_event(store, calendar, start=NOW + timedelta(days=1))

    with caplog.at_level("INFO", logger="taskbot.audit"):
        result = await _guardrail(store, calendar).delete_task(task)

    assert result.decision is DeletionDecision.REMOTE_DELETED
    assert result.remote_deleted
    assert calendar.delete_calls == ["evt-1"]
    assert any("calendar audit: deleted event=evt-1" in r.getMessage() for r in caplog.records)
    assert await store.get_task(task.id) is None


@pytest.mark.asyncio
async def test_event_already_gone_is_not_an_error(store) -> None:
    calendar = FakeCalendar(get_error=CalendarError(CalendarErrorKind.NOT_FOUND, "gone"))
    task = await _task_with_event(store, calendar, start=NOW + timedelta(days=1))

    result = await _guardrail(store, calendar).delete_task(task)

    assert result.decision is DeletionDecision.ALREADY_GONE
    assert calendar.delete_calls == []
    assert result.deleted_locally


@pytest.mark.asyncio
async def test_remote_failure_still_deletes_locally(store) -> None:
    calendar = FakeCalendar(delete_error=CalendarError(CalendarErrorKind.TOKEN_EXPIRED, "invalid_grant"))
    task = await _task_with_event(store, calendar, start=NOW + timedelta(days=1))

    result = await _guardrail(store, calendar).delete_task(task)

    assert result.decision is DeletionDecision.REMOTE_FAILED
    assert calendar.delete_calls == ["evt-1"]
    assert await store.get_task(task.id) is None
