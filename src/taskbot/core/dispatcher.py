# src/taskbot/core/dispatcher.py

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from .ports import Transport

logger = logging.getLogger(__name__)


class SentMessageTracker:
    """
    Remembers ids of messages this process sent, for a short time.

    Connectors consult it so the transport's echo of our own reply is never
    handled as a new inbound user message.
    """

    def __init__(self, ttl_seconds: float = 60.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._sent: dict[str, tuple[float, str]] = {}  # message_id -> (sent_at, origin)

    def _prune(self) -> None:
        now = self._clock()
        stale = [mid for mid, (ts, _) in self._sent.items() if now - ts >= self._ttl]
        for mid in stale:
            del self._sent[mid]

    def record(self, message_id: str, origin: str) -> None:
        self._prune()
        self._sent[message_id] = (self._clock(), origin)

    def is_tracked(self, message_id: str | None) -> bool:
        if not message_id:
            return False
        self._prune()
        return message_id in self._sent

    def origin_of(self, message_id: str) -> str | None:
        self._prune()
        entry = self._sent.get(message_id)
        return entry[1] if entry else None


class ReplyDispatcher:
    """
    Send a reply with at most one retry.

    The first send after a new inbound session may fail while the transport
    finishes establishing it; one retry after a short fixed delay absorbs that.
    A second failure propagates to the caller.
    """

    def __init__(
        self,
        transport: Transport,
        tracker: SentMessageTracker,
        *,
        retry_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._tracker = tracker
        self._retry_delay = float(retry_delay_seconds)
        self._sleep = sleep

    async def send(self, target: str, text: str) -> str | None:
        try:
            message_id = await self._transport.send_text(target=target, text=text)
        except Exception as e:
            logger.info("send to %s failed (%s), retrying in %.1fs", target, e.__class__.__name__, self._retry_delay)
            await self._sleep(self._retry_delay)
            try:
                message_id = await self._transport.send_text(target=target, text=text)
            except Exception:
                logger.error("send to %s failed after retry", target)
                raise

        if message_id:
            self._tracker.record(message_id, target)
        return message_id
