# src/taskbot/core/commands.py

"""
Deterministic command parser.

parse_command() turns raw message text into one ParsedCommand variant. Rules are
tried in a fixed order and the first match wins; anything else is UnknownCommand,
which is the only case that reaches the AI intent classifier.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Union

VideoPlatform = Literal["youtube", "instagram"]


@dataclass(slots=True, frozen=True)
class HelpCommand:
    pass


@dataclass(slots=True, frozen=True)
class AddCommand:
    text: str


@dataclass(slots=True, frozen=True)
class RemindCommand:
    text: str


@dataclass(slots=True, frozen=True)
class MeetCommand:
    # whole message: "meet"/"schedule" words help the model flag a meeting
    text: str


@dataclass(slots=True, frozen=True)
class ListCommand:
    filter: str | None = None


@dataclass(slots=True, frozen=True)
class DoneCommand:
    index: int | None = None
    search: str | None = None


@dataclass(slots=True, frozen=True)
class DeleteCommand:
    index: int


@dataclass(slots=True, frozen=True)
class MoveCommand:
    date_text: str
    index: int | None = None
    search: str | None = None


@dataclass(slots=True, frozen=True)
class CategoriesCommand:
    pass


@dataclass(slots=True, frozen=True)
class VideoLinkCommand:
    url: str
    platform: VideoPlatform


@dataclass(slots=True, frozen=True)
class VideosCommand:
    done_index: int | None = None


@dataclass(slots=True, frozen=True)
class SummaryCommand:
    pass


@dataclass(slots=True, frozen=True)
class UnknownCommand:
    text: str


ParsedCommand = Union[
    HelpCommand,
    AddCommand,
    RemindCommand,
    MeetCommand,
    ListCommand,
    DoneCommand,
    DeleteCommand,
    MoveCommand,
    CategoriesCommand,
    VideoLinkCommand,
    VideosCommand,
    SummaryCommand,
    UnknownCommand,
]


_YOUTUBE_RE = re.compile(
    r"https?://(?:www\.|m\.)?(?:youtube\.com/(?:watch\?\S*v=|shorts/)|youtu\.be/)[A-Za-z0-9_\-]+\S*",
    re.IGNORECASE,
)
_INSTAGRAM_RE = re.compile(
    r"https?://(?:www\.)?instagram\.com/(?:reel|reels|p)/[A-Za-z0-9_\-]+/?\S*",
    re.IGNORECASE,
)

_INT_RE = re.compile(r"^-?\d+$")

_ADD_RE = re.compile(r"^add\s+(?:(?:a\s+)?task\s+)?(?P<body>.+)$", re.IGNORECASE | re.DOTALL)
_ADD_REMINDER_RE = re.compile(
    r"^(?:add|set)\s+(?:a\s+)?reminder\s+(?P<body>.+)$", re.IGNORECASE | re.DOTALL
)
_REMIND_RE = re.compile(r"^(?:remind|reminder)\s+(?P<body>.+)$", re.IGNORECASE | re.DOTALL)
_MEET_RE = re.compile(r"^(?:meet|meeting|schedule)\s+\S", re.IGNORECASE)
_SHOW_TASKS_RE = re.compile(
    r"^(?:(?:show|get|list)\s+)?(?:my\s+)?(?P<today>today'?s\s+)?tasks$", re.IGNORECASE
)
_LIST_RE = re.compile(r"^list(?:\s+(?P<filter>.+))?$", re.IGNORECASE)
_DONE_RE = re.compile(r"^(?:done|complete)\s+(?P<ref>.+)$", re.IGNORECASE)
_DELETE_RE = re.compile(r"^(?:delete|remove)\s+(?P<ref>\S+)$", re.IGNORECASE)
_MOVE_RE = re.compile(r"^(?:move|reschedule)\s+(?P<ref>.+?)\s+to\s+(?P<date>.+)$", re.IGNORECASE)
_VIDEOS_RE = re.compile(r"^(?:videos|video|vids)(?:\s+(?:done|watched)\s+(?P<n>-?\d+))?$", re.IGNORECASE)


def detect_video_link(text: str) -> VideoLinkCommand | None:
    m = _YOUTUBE_RE.search(text)
    if m:
        return VideoLinkCommand(url=m.group(0), platform="youtube")
    m = _INSTAGRAM_RE.search(text)
    if m:
        return VideoLinkCommand(url=m.group(0), platform="instagram")
    return None


def _index_or_search(ref: str) -> tuple[int | None, str | None]:
    ref = ref.strip()
    if _INT_RE.match(ref):
        return int(ref), None
    return None, ref


def parse_command(text: str) -> ParsedCommand:
    trimmed = " ".join((text or "").split())
    lower = trimmed.lower()

    if lower in ("help", "/help", "?"):
        return HelpCommand()

    if lower in ("categories", "cats"):
        return CategoriesCommand()

    if lower == "summary":
        return SummaryCommand()

    video = detect_video_link(trimmed)
    if video is not None:
        return video

    m = _VIDEOS_RE.match(trimmed)
    if m:
        n = m.group("n")
        return VideosCommand(done_index=int(n) if n is not None else None)

    # "add a reminder ..." must win over plain "add ..."
    m = _ADD_REMINDER_RE.match(trimmed)
    if m:
        return RemindCommand(text=m.group("body").strip())

    m = _ADD_RE.match(trimmed)
    if m:
        return AddCommand(text=m.group("body").strip())

    m = _REMIND_RE.match(trimmed)
    if m:
        return RemindCommand(text=m.group("body").strip())

    if _MEET_RE.match(trimmed):
        return MeetCommand(text=trimmed)

    m = _SHOW_TASKS_RE.match(trimmed)
    if m:
        return ListCommand(filter="today" if m.group("today") else None)

    m = _LIST_RE.match(trimmed)
    if m:
        return ListCommand(filter=(m.group("filter") or "").strip() or None)

    m = _DONE_RE.match(trimmed)
    if m:
        index, search = _index_or_search(m.group("ref"))
        return DoneCommand(index=index, search=search)

    m = _DELETE_RE.match(trimmed)
    if m and _INT_RE.match(m.group("ref")):
        return DeleteCommand(index=int(m.group("ref")))

    m = _MOVE_RE.match(trimmed)
    if m:
        index, search = _index_or_search(m.group("ref"))
        return MoveCommand(date_text=m.group("date").strip(), index=index, search=search)

    return UnknownCommand(text=trimmed)
