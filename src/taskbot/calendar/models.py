# src/taskbot/calendar/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True, frozen=True)
class AvailabilitySlot:
    start: datetime
    end: datetime


@dataclass(slots=True, frozen=True)
class CalendarEvent:
    event_id: str | None
    summary: str
    start: datetime
    end: datetime


@dataclass(slots=True, frozen=True)
class ConflictSummary:
    """Availability of a requested slot: free, or the overlapping events plus nearby free alternatives."""

    requested: AvailabilitySlot
    free: bool
    conflicts: tuple[CalendarEvent, ...] = field(default_factory=tuple)
    alternatives: tuple[AvailabilitySlot, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class CreatedEvent:
    event_id: str
    html_link: str | None = None
