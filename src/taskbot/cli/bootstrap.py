# src/taskbot/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (LLM/tasks/calendar/conversation state).
"""

from __future__ import annotations

import logging

from ..calendar.client import CalendarBackendClient
from ..config import get_settings
from ..core.conversation import ConversationStateStore
from ..core.dispatcher import SentMessageTracker
from ..core.ports import CalendarService, LLMProvider
from ..core.state import AppState
from ..llm.client import OpenRouterLLMClient, friendly_llm_error_message
from ..llm.offline import OfflineLLMClient
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.matrix_store_path.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    llm: LLMProvider
    try:
        llm = OpenRouterLLMClient(settings)
    except Exception as e:
        logger.warning("%s Running in offline mode: only explicit commands work.", friendly_llm_error_message(e))
        llm = OfflineLLMClient()

    calendar: CalendarService | None = None
    if settings.calendar_backend_url:
        calendar = CalendarBackendClient(
            settings.calendar_backend_url,
            timeout_seconds=settings.calendar_timeout_seconds,
        )
    else:
        logger.info("No calendar backend configured; meetings are saved as plain tasks.")

    return AppState(
        settings=settings,
        llm=llm,
        store=TaskStore(settings.tasks_db_path),
        calendar=calendar,
        conversation=ConversationStateStore(
            identity_ttl_seconds=settings.identity_cache_ttl_seconds,
            task_list_ttl_seconds=settings.task_list_cache_ttl_seconds,
        ),
        sent_tracker=SentMessageTracker(settings.echo_ttl_seconds),
    )
