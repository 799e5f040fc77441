# src/taskbot/core/state.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..tasks.task_store import TaskStore
from .conversation import ConversationStateStore
from .dispatcher import SentMessageTracker
from .ports import CalendarService, LLMProvider

logger = logging.getLogger(__name__)


def resolve_timezone(name: str | None) -> tzinfo:
    if not name or name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return UTC


@dataclass
class AppState:
    """
    Shared application state (composition object).

    The conversation store is the only shared mutable state of the engine;
    everything else here is a collaborator.
    """

    settings: Any
    llm: LLMProvider
    store: TaskStore
    calendar: CalendarService | None
    conversation: ConversationStateStore
    sent_tracker: SentMessageTracker

    @property
    def tz(self) -> tzinfo:
        return resolve_timezone(getattr(self.settings, "timezone", "UTC"))
