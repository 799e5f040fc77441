# tests/test_reply_dispatcher.py

from __future__ import annotations

import pytest

from taskbot.core.dispatcher import ReplyDispatcher, SentMessageTracker

from .fakes import FakeTransport


async def _no_sleep(_: float) -> None:
    return None


@pytest.mark.asyncio
async def test_send_records_message_id() -> None:
    transport = FakeTransport()
    tracker = SentMessageTracker()
    dispatcher = ReplyDispatcher(transport, tracker, sleep=_no_sleep)

    message_id = await dispatcher.send("!room", "hello")

    assert transport.sent == [("!room", "hello")]
    assert tracker.is_tracked(message_id)
    assert tracker.origin_of(message_id) == "!room"


@pytest.mark.asyncio
async def test_first_failure_is_retried_once_after_delay() -> None:
    transport = FakeTransport(fail_times=1)
    delays: list[float] = []

    async def sleep(d: float) -> None:
        delays.append(d)

    dispatcher = ReplyDispatcher(transport, SentMessageTracker(), retry_delay_seconds=1.5, sleep=sleep)
    await dispatcher.send("u1", "hi")

    assert transport.attempts == 2
    assert delays == [1.5]
    assert transport.texts() == ["hi"]


@pytest.mark.asyncio
async def test_second_failure_propagates() -> None:
    transport = FakeTransport(fail_times=2)
    dispatcher = ReplyDispatcher(transport, SentMessageTracker(), sleep=_no_sleep)

    with pytest.raises(ConnectionError):
        await dispatcher.send("u1", "hi")
    assert transport.attempts == 2


def test_tracker_forgets_after_ttl() -> None:
    now = [0.0]
    tracker = SentMessageTracker(ttl_seconds=60, clock=lambda: now[0])
    tracker.record("$a", "!room")
    assert tracker.is_tracked("$a")

    now[0] = 61.0
    assert not tracker.is_tracked("$a")
    assert not tracker.is_tracked(None)
