# src/taskbot/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class TaskStatus(StrEnum):
    """Task lifecycle status as stored in the tasks table."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_raw(cls, raw: object) -> Priority:
        """Lenient mapping for values coming from the language model or the DB."""
        s = str(raw or "").strip().lower()
        if s in ("high", "urgent", "asap", "critical"):
            return cls.HIGH
        if s in ("low", "minor", "someday"):
            return cls.LOW
        return cls.MEDIUM


@dataclass(slots=True)
class User:
    id: int
    transport_id: str
    name: str


@dataclass(slots=True)
class Category:
    id: int
    user_id: int
    name: str
    parent_id: int | None = None


@dataclass(slots=True)
class CategoryNode:
    id: int
    name: str
    children: list[CategoryNode] = field(default_factory=list)


@dataclass(slots=True)
class Task:
    id: int
    user_id: int
    title: str
    description: str | None
    priority: Priority
    status: TaskStatus
    category_id: int | None
    category_name: str | None
    due_at: datetime | None
    reminder_at: datetime | None
    is_recurring: bool
    recurrence_rule: str | None
    created_at: datetime
    updated_at: datetime

    # Calendar link. event_created_by_app is the only authority for remote deletion:
    # it is set when this system created the event, never for events synced in.
    calendar_event_id: str | None = None
    event_created_by_app: bool = False


@dataclass(slots=True, frozen=True)
class DuplicateCandidate:
    task_id: int
    title: str
    similarity: float


@dataclass(slots=True)
class Reminder:
    id: int
    task_id: int
    user_id: int
    remind_at: datetime
    is_sent: bool = False
    acknowledged: bool = False
    task_title: str | None = None


@dataclass(slots=True, frozen=True)
class TaskStats:
    pending: int = 0
    in_progress: int = 0
    completed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.in_progress + self.completed
