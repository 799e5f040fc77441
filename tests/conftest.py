# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskbot.core.conversation import ConversationStateStore
from taskbot.core.dispatcher import SentMessageTracker
from taskbot.core.state import AppState
from taskbot.tasks.task_store import TaskStore

from .fakes import FakeLLMProvider, FakeTransport


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskbot-test",
        timezone="UTC",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        meeting_default_duration_minutes=30,
        duplicate_threshold=0.3,
        # no real waiting in tests
        reply_retry_delay_seconds=0.0,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskStore:
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def llm() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def state(settings: SimpleNamespace, store: TaskStore, llm: FakeLLMProvider) -> AppState:
    """
    AppState wired with deterministic fakes.

    NOTE: We keep the real SQLite TaskStore here because its correctness is
    part of what we want to test. No calendar is connected by default.
    """
    return AppState(
        settings=settings,
        llm=llm,
        store=store,
        calendar=None,
        conversation=ConversationStateStore(),
        sent_tracker=SentMessageTracker(),
    )
