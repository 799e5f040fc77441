# src/taskbot/core/conversation.py

"""
Conversation State Store.

Per-user in-memory state owned by one object (no module globals):
- pending confirmation slot (one per user, last writer wins)
- identity cache (TTL)
- "last shown task list" cache (TTL) for numeric references like "done 2"
- per-user lanes that serialize one user's messages and background work

TTL entries expire lazily on read; nothing runs in the background.
The clock is injectable so tests can move time deterministically.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Generic, TypeVar

from ..llm.schemas import ParsedTask
from ..tasks.task_models import DuplicateCandidate, Task, User

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

Clock = Callable[[], float]

AFFIRMATIVE_TOKENS = frozenset({"yes", "y", "yeah", "yep", "ok", "okay", "sure"})
NEGATIVE_TOKENS = frozenset({"no", "n", "nope", "cancel"})

_PUNCT_RE = re.compile(r"[^\w\s]+", re.UNICODE)


class TTLCache(Generic[K, V]):
    """Tiny key-value cache; stale entries are dropped when read."""

    def __init__(self, ttl_seconds: float, *, clock: Clock = time.monotonic) -> None:
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._items: dict[K, tuple[float, V]] = {}

    def get(self, key: K) -> V | None:
        entry = self._items.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self._ttl:
            del self._items[key]
            return None
        return value

    def set(self, key: K, value: V) -> None:
        self._items[key] = (self._clock(), value)

    def __len__(self) -> int:
        return len(self._items)


@dataclass(slots=True, frozen=True)
class PendingConfirmation:
    user_id: int
    parsed: ParsedTask
    candidates: tuple[DuplicateCandidate, ...]
    created_at: float


class ConfirmationReply(StrEnum):
    AFFIRMATIVE = "affirmative"
    NEGATIVE = "negative"
    OTHER = "other"


def classify_confirmation_reply(text: str) -> ConfirmationReply:
    norm = _PUNCT_RE.sub("", (text or "").strip().lower()).strip()
    if norm in AFFIRMATIVE_TOKENS:
        return ConfirmationReply.AFFIRMATIVE
    if norm in NEGATIVE_TOKENS:
        return ConfirmationReply.NEGATIVE
    return ConfirmationReply.OTHER


@dataclass(slots=True)
class _Lane:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    background: asyncio.Task | None = None
    holders: int = 0

    def idle(self) -> bool:
        return self.holders == 0 and (self.background is None or self.background.done())


class ConversationStateStore:
    def __init__(
        self,
        *,
        identity_ttl_seconds: float = 600.0,
        task_list_ttl_seconds: float = 600.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._clock = clock
        self._pending: dict[str, PendingConfirmation] = {}
        self._identities: TTLCache[str, User] = TTLCache(identity_ttl_seconds, clock=clock)
        self._task_lists: TTLCache[str, list[Task]] = TTLCache(task_list_ttl_seconds, clock=clock)
        self._lanes: dict[str, _Lane] = {}

    # ---- pending confirmation ----

    def set_pending(
        self, key: str, *, user_id: int, parsed: ParsedTask, candidates: list[DuplicateCandidate]
    ) -> PendingConfirmation:
        if key in self._pending:
            logger.info("Pending confirmation for %s overwritten", key)
        pending = PendingConfirmation(
            user_id=user_id,
            parsed=parsed,
            candidates=tuple(candidates),
            created_at=self._clock(),
        )
        self._pending[key] = pending
        return pending

    def get_pending(self, key: str) -> PendingConfirmation | None:
        return self._pending.get(key)

    def take_pending(self, key: str) -> PendingConfirmation | None:
        """Remove and return the pending confirmation (each one is consumed at most once)."""
        return self._pending.pop(key, None)

    # ---- caches ----

    def get_identity(self, key: str) -> User | None:
        return self._identities.get(key)

    def set_identity(self, key: str, user: User) -> None:
        self._identities.set(key, user)

    def get_task_list(self, key: str) -> list[Task] | None:
        return self._task_lists.get(key)

    def set_task_list(self, key: str, tasks: list[Task]) -> None:
        self._task_lists.set(key, list(tasks))

    # ---- per-user lanes ----

    def _lane(self, key: str) -> _Lane:
        lane = self._lanes.get(key)
        if lane is None:
            lane = _Lane()
            self._lanes[key] = lane
        return lane

    def _release(self, key: str, lane: _Lane) -> None:
        if lane.idle() and self._lanes.get(key) is lane:
            del self._lanes[key]

    @contextlib.asynccontextmanager
    async def exclusive(self, key: str) -> AsyncIterator[None]:
        """
        Serialize work for one user key.

        Waits for the user's lock and then for any background unit still in flight
        from an earlier message. Other keys are never blocked. The lane is dropped
        once nobody holds or waits for it and no background unit is running.
        """
        lane = self._lane(key)
        lane.holders += 1
        try:
            async with lane.lock:
                bg = lane.background
                if bg is not None and not bg.done():
                    logger.debug("Lane %s: waiting for in-flight background unit", key)
                    # The background unit reports its own failures.
                    await asyncio.wait({bg})
                lane.background = None
                yield
        finally:
            lane.holders -= 1
            self._release(key, lane)

    def attach_background(self, key: str, task: asyncio.Task) -> None:
        lane = self._lane(key)
        lane.background = task
        task.add_done_callback(lambda _t: self._release(key, lane))

    def background_for(self, key: str) -> asyncio.Task | None:
        lane = self._lanes.get(key)
        return lane.background if lane is not None else None
