# src/taskbot/llm/schemas.py

"""
Typed views of language-model JSON output.

Everything the model returns is untrusted: it is validated here before any
handler sees it. A pydantic.ValidationError is the "bad shape" signal callers
branch on.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from ..tasks.task_models import Priority


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _ensure_aware(v: datetime | None) -> datetime | None:
    if v is None:
        return None
    if v.tzinfo is None:
        return v.replace(tzinfo=UTC)
    return v


class ParsedTask(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    priority: Priority = Priority.MEDIUM
    category: str | None = None
    subcategory: str | None = None
    due_date: datetime | None = None
    reminder_time: datetime | None = None
    is_recurring: bool = False
    recurrence_rule: str | None = None

    # meeting fields
    is_meeting: bool = False
    attendees: list[str] = Field(default_factory=list)
    duration_minutes: int | None = Field(default=None, ge=1, le=24 * 60)

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("priority", mode="before")
    @classmethod
    def _lenient_priority(cls, v: Any) -> Priority:
        return Priority.from_raw(v)

    @field_validator(
        "description",
        "category",
        "subcategory",
        "recurrence_rule",
        "due_date",
        "reminder_time",
        "duration_minutes",
        mode="before",
    )
    @classmethod
    def _blank(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("attendees", mode="before")
    @classmethod
    def _attendees(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v

    @field_validator("due_date", "reminder_time", mode="after")
    @classmethod
    def _aware(cls, v: datetime | None) -> datetime | None:
        return _ensure_aware(v)


# ---- intents (closed, tagged on "intent") ----


class _Intent(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


TIME_FILTERS = ("today", "tomorrow", "this_week", "overdue")


def _normalize_time_filter(v: Any) -> str | None:
    """Map free-form filters ("this week", "This-Week") to a known token; unknown -> None."""
    if not isinstance(v, str):
        return None
    s = re.sub(r"[\s\-]+", "_", v.strip().lower())
    return s if s in TIME_FILTERS else None


class _TextIntent(_Intent):
    text: str | None = None

    @field_validator("text", mode="before")
    @classmethod
    def _blank_text(cls, v: Any) -> Any:
        return _blank_to_none(v)


class AddIntent(_TextIntent):
    intent: Literal["add"] = "add"


class RemindIntent(_TextIntent):
    intent: Literal["remind"] = "remind"


class MeetIntent(_TextIntent):
    intent: Literal["meet"] = "meet"


class ListIntent(_Intent):
    intent: Literal["list"] = "list"
    time_filter: str | None = Field(default=None, alias="timeFilter")

    @field_validator("time_filter", mode="before")
    @classmethod
    def _filter(cls, v: Any) -> str | None:
        return _normalize_time_filter(v)


class SummaryIntent(_Intent):
    intent: Literal["summary"] = "summary"


class QueryIntent(_Intent):
    intent: Literal["query"] = "query"
    search: str | None = None
    time_filter: str | None = Field(default=None, alias="timeFilter")

    @field_validator("search", mode="before")
    @classmethod
    def _blank(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("time_filter", mode="before")
    @classmethod
    def _filter(cls, v: Any) -> str | None:
        return _normalize_time_filter(v)


class UnknownIntent(_Intent):
    intent: Literal["unknown"] = "unknown"


ClassifiedIntent = Annotated[
    Union[AddIntent, RemindIntent, MeetIntent, ListIntent, SummaryIntent, QueryIntent, UnknownIntent],
    Field(discriminator="intent"),
]

_INTENT_ADAPTER: TypeAdapter[ClassifiedIntent] = TypeAdapter(ClassifiedIntent)


def parse_intent_json(raw: str | bytes) -> ClassifiedIntent:
    """Validate a classifier response. Raises pydantic.ValidationError on bad shape."""
    return _INTENT_ADAPTER.validate_json(raw)


class TaskSplit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tasks: list[str] = Field(default_factory=list)

    @field_validator("tasks", mode="after")
    @classmethod
    def _clean(cls, v: list[str]) -> list[str]:
        return [s.strip() for s in v if isinstance(s, str) and s.strip()]


class RelativeDate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    date: datetime

    @field_validator("date", mode="after")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:
        return _ensure_aware(v) or v
