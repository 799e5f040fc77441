# tests/test_orchestrator.py

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from taskbot.core import formatter
from taskbot.core.dispatcher import ReplyDispatcher
from taskbot.core.meetings import MEETINGS_CATEGORY, NOTE_NO_CALENDAR, MeetingScheduler
from taskbot.core.orchestrator import OrchestrationJob, TaskOrchestrator
from taskbot.core.task_writer import TaskWriter, end_of_week
from taskbot.llm.schemas import ParsedTask
from taskbot.tasks.task_models import Priority

from .fakes import FakeCalendar, FakeTransport

# Wednesday
NOW = datetime(2026, 10, 14, 10, 0, tzinfo=UTC)


def _orchestrator(state, transport: FakeTransport, calendar=None, store=None) -> TaskOrchestrator:
    store = store or state.store
    dispatcher = ReplyDispatcher(transport, state.sent_tracker, retry_delay_seconds=0)
    writer = TaskWriter(store, tz=UTC, now=lambda: NOW)
    meetings = MeetingScheduler(store=store, writer=writer, calendar=calendar, tz=UTC)
    return TaskOrchestrator(
        llm=state.llm,
        store=store,
        conversation=state.conversation,
        dispatcher=dispatcher,
        writer=writer,
        meetings=meetings,
        duplicate_threshold=0.3,
        tz=UTC,
    )


def test_end_of_week_rules() -> None:
    friday = datetime(2026, 10, 16, 23, 59, 59, tzinfo=UTC)
    assert end_of_week(NOW, UTC) == friday
    assert end_of_week(datetime(2026, 10, 16, 8, 0, tzinfo=UTC), UTC) == friday
    # Saturday and Sunday roll over to the next Friday
    assert end_of_week(datetime(2026, 10, 17, 8, 0, tzinfo=UTC), UTC) == datetime(2026, 10, 23, 23, 59, 59, tzinfo=UTC)
    assert end_of_week(datetime(2026, 10, 18, 8, 0, tzinfo=UTC), UTC) == datetime(2026, 10, 23, 23, 59, 59, tzinfo=UTC)


@pytest.mark.asyncio
async def test_single_task_gets_end_of_week_due_date(state, llm, transport) -> None:
    user = await state.store.get_or_create_user("u1")
    orch = _orchestrator(state, transport)

    await orch.run(OrchestrationJob(user=user, user_key="u1", reply_to="!room", text="buy milk"))

    tasks = await state.store.list_tasks(user.id)
    assert len(tasks) == 1
    assert tasks[0].title == "buy milk"
    assert tasks[0].priority is Priority.MEDIUM
    assert tasks[0].due_at == datetime(2026, 10, 16, 23, 59, 59, tzinfo=UTC)

    assert transport.sent[0][0] == "!room"
    assert transport.texts()[0].startswith("Added: buy milk")
    # root categories are offered to the parser
    assert llm.parse_calls == [("buy milk", ["Personal", "Work"])]


@pytest.mark.asyncio
async def test_duplicate_parks_pending_confirmation(state, llm, transport) -> None:
    user = await state.store.get_or_create_user("u1")
    await state.store.add_task(user_id=user.id, title="Buy milk")
    orch = _orchestrator(state, transport)

    await orch.run(OrchestrationJob(user=user, user_key="u1", reply_to="u1", text="buy milk"))

    assert len(await state.store.list_tasks(user.id)) == 1
    pending = state.conversation.get_pending("u1")
    assert pending is not None
    assert pending.parsed.title == "buy milk"
    assert pending.candidates[0].title == "Buy milk"
    assert "Similar task(s) found" in transport.texts()[0]
    assert "Reply yes or no" in transport.texts()[0]

    task = await orch.commit_confirmed(state.conversation.take_pending("u1"))
    assert task.title == "buy milk"
    assert len(await state.store.list_tasks(user.id)) == 2


@pytest.mark.asyncio
async def test_batch_persists_every_fragment_without_confirmation(state, llm, transport) -> None:
    user = await state.store.get_or_create_user("u1")
    await state.store.add_task(user_id=user.id, title="Buy milk")
    llm.splits["buy milk, call mom and pay rent"] = ["buy milk", "call mom", "pay rent"]
    orch = _orchestrator(state, transport)

    await orch.run(
        OrchestrationJob(user=user, user_key="u1", reply_to="u1", text="buy milk, call mom and pay rent")
    )

    titles = sorted(t.title for t in await state.store.list_tasks(user.id))
    assert titles == ["Buy milk", "buy milk", "call mom", "pay rent"]
    assert state.conversation.get_pending("u1") is None
    assert len(transport.sent) == 1
    assert transport.texts()[0].startswith("3 tasks added:\n\n- buy milk\n- call mom\n- pay rent")


@pytest.mark.asyncio
async def test_category_from_parser_is_auto_created(state, llm, transport) -> None:
    user = await state.store.get_or_create_user("u1")
    llm.parsed["book flights"] = ParsedTask(title="Book flights", category="Travel", subcategory="Japan")
    orch = _orchestrator(state, transport)

    await orch.run(OrchestrationJob(user=user, user_key="u1", reply_to="u1", text="book flights"))

    (task,) = await state.store.list_tasks(user.id)
    assert task.category_name == "Japan"
    assert await state.store.list_tasks(user.id, category_name="Travel") == [task]


@pytest.mark.asyncio
async def test_parse_failure_sends_single_failure_reply(state, llm, transport) -> None:
    user = await state.store.get_or_create_user("u1")
    llm.parse_error = RuntimeError("All LLM models failed.")
    orch = _orchestrator(state, transport)

    await orch.run(OrchestrationJob(user=user, user_key="u1", reply_to="u1", text="buy milk"))

    assert transport.texts() == [formatter.FAILED_TO_ADD]
    assert await state.store.list_tasks(user.id) == []


@pytest.mark.asyncio
async def test_forced_meeting_without_calendar_is_saved_with_note(state, llm, transport) -> None:
    user = await state.store.get_or_create_user("u1")
    orch = _orchestrator(state, transport)

    await orch.run(
        OrchestrationJob(user=user, user_key="u1", reply_to="u1", text="meet Alex friday", force_meeting=True)
    )

    (task,) = await state.store.list_tasks(user.id)
    assert task.category_name == MEETINGS_CATEGORY
    assert task.calendar_event_id is None
    assert NOTE_NO_CALENDAR in transport.texts()[0]


@pytest.mark.asyncio
async def test_spawn_binds_unit_to_user_lane(state, transport) -> None:
    user = await state.store.get_or_create_user("u1")
    orch = _orchestrator(state, transport)

    bg = orch.spawn(OrchestrationJob(user=user, user_key="u1", reply_to="u1", text="water plants"))
    assert state.conversation.background_for("u1") is bg

    await bg
    assert transport.texts()[0].startswith("Added: water plants")


class AddFailsOnCall:
    """Real store whose n-th add_task call raises."""

    def __init__(self, inner, fail_on: int) -> None:
        self._inner = inner
        self._fail_on = fail_on
        self.calls = 0

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def add_task(self, **kwargs):
        self.calls += 1
        if self.calls == self._fail_on:
            raise RuntimeError("database is locked")
        return await self._inner.add_task(**kwargs)


@pytest.mark.asyncio
async def test_batch_reports_busy_meeting_as_not_scheduled(state, llm, transport) -> None:
    user = await state.store.get_or_create_user("u1")
    start = datetime.now(UTC).replace(microsecond=0) + timedelta(days=1)
    text = "buy milk and meet Sam tomorrow 3pm"
    llm.splits[text] = ["buy milk", "meet Sam tomorrow 3pm"]
    llm.parsed["meet Sam tomorrow 3pm"] = ParsedTask(
        title="Meet Sam", is_meeting=True, due_date=start, attendees=["Sam"]
    )
    calendar = FakeCalendar(busy=True)
    orch = _orchestrator(state, transport, calendar=calendar)

    await orch.run(OrchestrationJob(user=user, user_key="u1", reply_to="u1", text=text))

    assert [t.title for t in await state.store.list_tasks(user.id)] == ["buy milk"]
    assert calendar.created == []
    (reply,) = transport.texts()
    assert reply.startswith("1 task added, 1 meeting not scheduled:\n\n- buy milk\n\nNot scheduled:\n- Meet Sam\n")
    assert "Can't schedule \"Meet Sam\"" in reply


@pytest.mark.asyncio
async def test_batch_meeting_with_free_slot_gets_event(state, llm, transport) -> None:
    user = await state.store.get_or_create_user("u1")
    start = datetime.now(UTC).replace(microsecond=0) + timedelta(days=1)
    text = "pay rent and meet Sam tomorrow 3pm"
    llm.splits[text] = ["pay rent", "meet Sam tomorrow 3pm"]
    llm.parsed["meet Sam tomorrow 3pm"] = ParsedTask(title="Meet Sam", is_meeting=True, due_date=start)
    orch = _orchestrator(state, transport, calendar=FakeCalendar())

    await orch.run(OrchestrationJob(user=user, user_key="u1", reply_to="u1", text=text))

    assert transport.texts() == ["2 tasks added:\n\n- pay rent\n- Meet Sam (calendar event created)"]


@pytest.mark.asyncio
async def test_batch_keeps_saved_fragments_when_one_fails(state, llm, transport) -> None:
    user = await state.store.get_or_create_user("u1")
    text = "buy milk, call mom and pay rent"
    llm.splits[text] = ["buy milk", "call mom", "pay rent"]
    flaky = AddFailsOnCall(state.store, fail_on=2)
    orch = _orchestrator(state, transport, store=flaky)

    await orch.run(OrchestrationJob(user=user, user_key="u1", reply_to="u1", text=text))

    assert sorted(t.title for t in await state.store.list_tasks(user.id)) == ["buy milk", "pay rent"]
    assert transport.texts() == [
        "2 tasks added, 1 task failed:\n\n- buy milk\n- pay rent\n\nNot saved, send these again:\n- call mom"
    ]
    assert formatter.FAILED_TO_ADD not in transport.texts()
