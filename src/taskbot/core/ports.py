# src/taskbot/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the transport, storage, calendar and LLM providers swappable and
makes testing easier (see tests/fakes.py).
"""

from datetime import datetime
from typing import Protocol, Sequence

from ..calendar.models import CalendarEvent, ConflictSummary, CreatedEvent
from ..llm.schemas import ClassifiedIntent, ParsedTask
from ..tasks.task_models import (
    Category,
    CategoryNode,
    DuplicateCandidate,
    Priority,
    Reminder,
    Task,
    TaskStats,
    TaskStatus,
    User,
)


class LLMProvider(Protocol):
    """Language-model provider. All calls suspend; only the two parse calls may raise."""

    async def classify_intent(self, text: str) -> ClassifiedIntent: ...
    async def split_multi_task_input(self, text: str) -> list[str]: ...
    async def parse_natural_language(self, text: str, known_categories: Sequence[str]) -> ParsedTask: ...
    async def parse_relative_date(self, text: str) -> datetime: ...
    async def transcribe_audio(self, audio: bytes, *, filename: str = "voice.ogg") -> str: ...


class TaskRepo(Protocol):
    # Users / categories
    async def get_or_create_user(self, transport_id: str, display_name: str | None = None) -> User: ...
    async def get_categories(self, user_id: int) -> list[Category]: ...
    async def get_category_tree(self, user_id: int) -> list[CategoryNode]: ...
    async def resolve_category_path(
            self, user_id: int, category: str | None, subcategory: str | None = None
    ) -> int | None: ...

    # Tasks
    async def add_task(
            self,
            *,
            user_id: int,
            title: str,
            description: str | None = None,
            priority: Priority = Priority.MEDIUM,
            category_id: int | None = None,
            due_at: datetime | None = None,
            reminder_at: datetime | None = None,
            is_recurring: bool = False,
            recurrence_rule: str | None = None,
            calendar_event_id: str | None = None,
            event_created_by_app: bool = False,
    ) -> Task: ...
    async def get_task(self, task_id: int) -> Task | None: ...
    async def get_recent_tasks(self, user_id: int, limit: int = 20) -> list[Task]: ...
    async def list_tasks(
            self,
            user_id: int,
            *,
            status: TaskStatus | None = None,
            include_completed: bool = False,
            due_from: datetime | None = None,
            due_to: datetime | None = None,
            category_name: str | None = None,
            search: str | None = None,
            limit: int = 20,
    ) -> list[Task]: ...
    async def search_open_tasks(self, user_id: int, text: str, limit: int = 10) -> list[Task]: ...
    async def find_duplicates(
            self, user_id: int, title: str, threshold: float = 0.3, limit: int = 5
    ) -> list[DuplicateCandidate]: ...
    async def mark_complete(self, task_id: int) -> bool: ...
    async def update_due_date(self, task_id: int, due_at: datetime) -> bool: ...
    async def update_title(self, task_id: int, title: str) -> bool: ...
    async def delete_task(self, task_id: int) -> bool: ...
    async def get_task_stats(self, user_id: int) -> TaskStats: ...

    # Reminders
    async def add_reminder(self, task_id: int, user_id: int, remind_at: datetime) -> Reminder: ...
    async def get_upcoming_reminders(
            self, user_id: int, now: datetime | None = None, limit: int = 5
    ) -> list[Reminder]: ...
    async def acknowledge_reminders(self, user_id: int) -> int: ...


class CalendarService(Protocol):
    """Calendar collaborator. Failures raise taskbot.calendar.client.CalendarError."""

    async def is_connected(self, *, user_id: int) -> bool: ...

    async def check_availability(
            self, *, user_id: int, start: datetime, duration_minutes: int
    ) -> ConflictSummary: ...

    async def create_event(
            self,
            *,
            user_id: int,
            summary: str,
            start: datetime,
            duration_minutes: int,
            description: str | None = None,
            attendee_names: list[str] | None = None,
    ) -> CreatedEvent: ...

    async def get_event(self, *, user_id: int, event_id: str) -> CalendarEvent: ...
    async def delete_event(self, *, user_id: int, event_id: str) -> None: ...


class Transport(Protocol):
    """
    Connector-side port: how the core sends text outward.

    send_text may raise on transient session issues (the Reply Dispatcher retries once).
    It returns the transport's message id when the transport has one.
    """

    @property
    def self_id(self) -> str: ...

    async def send_text(self, *, target: str, text: str) -> str | None: ...
