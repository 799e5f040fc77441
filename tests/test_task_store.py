# tests/test_task_store.py

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime, timedelta

import pytest

from taskbot.tasks.task_models import Priority, TaskStatus
from taskbot.tasks.task_store import TaskStore, trigram_similarity


def test_trigram_similarity_matches_pg_trgm_shape() -> None:
    assert trigram_similarity("Buy milk", "buy milk") == 1.0
    assert trigram_similarity("buy milk", "") == 0.0
    assert 0.3 < trigram_similarity("buy milk", "buy oat milk") < 1.0
    assert trigram_similarity("buy milk", "file taxes") < 0.3


@pytest.mark.asyncio
async def test_new_user_gets_default_categories(store: TaskStore) -> None:
    user = await store.get_or_create_user("@alice:example.org", "Alice")
    again = await store.get_or_create_user("@alice:example.org")

    assert again.id == user.id
    assert user.name == "Alice"
    assert [c.name for c in await store.get_categories(user.id)] == ["Personal", "Work"]


@pytest.mark.asyncio
async def test_category_path_is_case_insensitive_and_auto_created(store: TaskStore) -> None:
    user = await store.get_or_create_user("u1")

    work_id = await store.resolve_category_path(user.id, "work")
    assert work_id == await store.resolve_category_path(user.id, "Work")

    sub_id = await store.resolve_category_path(user.id, "Videos", "YouTube")
    assert sub_id == await store.resolve_category_path(user.id, "videos", "youtube")
    assert await store.resolve_category_path(user.id, None) is None

    tree = await store.get_category_tree(user.id)
    videos = next(n for n in tree if n.name == "Videos")
    assert [c.name for c in videos.children] == ["YouTube"]


@pytest.mark.asyncio
async def test_duplicates_only_consider_open_tasks(store: TaskStore) -> None:
    user = await store.get_or_create_user("u1")
    done = await store.add_task(user_id=user.id, title="Buy milk")
    await store.mark_complete(done.id)
    assert await store.find_duplicates(user.id, "buy milk") == []

    await store.add_task(user_id=user.id, title="Buy milk and eggs")
    (dup,) = await store.find_duplicates(user.id, "buy milk")
    assert dup.title == "Buy milk and eggs"
    assert dup.similarity > 0.3


@pytest.mark.asyncio
async def test_list_filters(store: TaskStore) -> None:
    user = await store.get_or_create_user("u1")
    now = datetime.now(UTC)
    work = await store.resolve_category_path(user.id, "Work")
    a = await store.add_task(user_id=user.id, title="Report", category_id=work, due_at=now + timedelta(hours=1))
    b = await store.add_task(user_id=user.id, title="Old bill", due_at=now - timedelta(days=2))
    c = await store.add_task(user_id=user.id, title="Done thing", priority=Priority.HIGH)
    await store.mark_complete(c.id)

    assert {t.id for t in await store.list_tasks(user.id)} == {a.id, b.id}
    assert [t.id for t in await store.list_tasks(user.id, category_name="work")] == [a.id]
    assert [t.id for t in await store.list_tasks(user.id, due_to=now)] == [b.id]
    assert [t.id for t in await store.list_tasks(user.id, status=TaskStatus.COMPLETED)] == [c.id]
    assert [t.id for t in await store.search_open_tasks(user.id, "bill")] == [b.id]

    stats = await store.get_task_stats(user.id)
    assert (stats.pending, stats.completed, stats.total) == (2, 1, 3)


@pytest.mark.asyncio
async def test_moving_a_task_shifts_unsent_reminders(store: TaskStore) -> None:
    user = await store.get_or_create_user("u1")
    due = datetime(2030, 1, 10, 12, 0, tzinfo=UTC)
    task = await store.add_task(user_id=user.id, title="Dentist", due_at=due, reminder_at=due - timedelta(hours=1))
    await store.add_reminder(task.id, user.id, due - timedelta(hours=1))

    new_due = datetime(2030, 1, 12, 9, 0, tzinfo=UTC)
    assert await store.update_due_date(task.id, new_due)

    moved = await store.get_task(task.id)
    assert moved.due_at == new_due
    assert moved.reminder_at == new_due - timedelta(minutes=30)
    (reminder,) = await store.get_upcoming_reminders(user.id, now=datetime(2029, 1, 1, tzinfo=UTC))
    assert reminder.remind_at == new_due - timedelta(minutes=30)
    assert reminder.task_title == "Dentist"


@pytest.mark.asyncio
async def test_acknowledge_touches_only_sent_reminders(store: TaskStore) -> None:
    user = await store.get_or_create_user("u1")
    task = await store.add_task(user_id=user.id, title="Stretch")
    sent = await store.add_reminder(task.id, user.id, datetime.now(UTC) - timedelta(hours=1))
    await store.add_reminder(task.id, user.id, datetime.now(UTC) + timedelta(hours=1))
    await store.mark_reminder_sent(sent.id)

    assert await store.acknowledge_reminders(user.id) == 1
    assert await store.acknowledge_reminders(user.id) == 0


@pytest.mark.asyncio
async def test_app_created_flag_requires_event_id(store: TaskStore) -> None:
    user = await store.get_or_create_user("u1")
    with pytest.raises(ValueError):
        await store.add_task(user_id=user.id, title="x", event_created_by_app=True)


@pytest.mark.asyncio
async def test_delete_removes_reminders(store: TaskStore, settings) -> None:
    user = await store.get_or_create_user("u1")
    task = await store.add_task(user_id=user.id, title="Temp")
    await store.add_reminder(task.id, user.id, datetime.now(UTC) + timedelta(days=1))

    assert await store.delete_task(task.id)
    assert await store.get_task(task.id) is None

    conn = sqlite3.connect(settings.tasks_db_path)
    try:
        (n,) = conn.execute("SELECT COUNT(*) FROM reminders").fetchone()
    finally:
        conn.close()
    assert n == 0
