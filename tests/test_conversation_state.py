# tests/test_conversation_state.py

from __future__ import annotations

import asyncio

import pytest

from taskbot.core.conversation import (
    ConfirmationReply,
    ConversationStateStore,
    TTLCache,
    classify_confirmation_reply,
)
from taskbot.llm.schemas import ParsedTask
from taskbot.tasks.task_models import DuplicateCandidate, User


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_ttl_cache_expires_lazily() -> None:
    clock = FakeClock()
    cache: TTLCache[str, int] = TTLCache(10.0, clock=clock)
    cache.set("a", 1)

    clock.now += 9.9
    assert cache.get("a") == 1

    clock.now += 0.1
    assert cache.get("a") is None
    assert len(cache) == 0


def test_identity_and_task_list_are_per_key() -> None:
    clock = FakeClock()
    conv = ConversationStateStore(identity_ttl_seconds=60, task_list_ttl_seconds=5, clock=clock)
    conv.set_identity("u1", User(id=1, transport_id="u1", name="one"))
    conv.set_task_list("u1", [])

    assert conv.get_identity("u2") is None
    assert conv.get_identity("u1").id == 1

    clock.now += 6
    assert conv.get_task_list("u1") is None
    assert conv.get_identity("u1") is not None


def test_pending_is_consumed_once_and_last_writer_wins() -> None:
    conv = ConversationStateStore()
    dup = [DuplicateCandidate(task_id=1, title="Buy milk", similarity=0.8)]
    conv.set_pending("u1", user_id=1, parsed=ParsedTask(title="buy milk"), candidates=dup)
    conv.set_pending("u1", user_id=1, parsed=ParsedTask(title="buy oat milk"), candidates=dup)

    pending = conv.take_pending("u1")
    assert pending is not None
    assert pending.parsed.title == "buy oat milk"
    assert conv.take_pending("u1") is None


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("yes", ConfirmationReply.AFFIRMATIVE),
        ("Yep!", ConfirmationReply.AFFIRMATIVE),
        (" ok ", ConfirmationReply.AFFIRMATIVE),
        ("No.", ConfirmationReply.NEGATIVE),
        ("cancel", ConfirmationReply.NEGATIVE),
        ("yes please add it", ConfirmationReply.OTHER),
        ("list", ConfirmationReply.OTHER),
    ],
)
def test_confirmation_reply_classification(text: str, expected: ConfirmationReply) -> None:
    assert classify_confirmation_reply(text) is expected


@pytest.mark.asyncio
async def test_lane_waits_for_background_unit() -> None:
    conv = ConversationStateStore()
    order: list[str] = []
    release = asyncio.Event()

    async def background() -> None:
        await release.wait()
        order.append("background")

    async with conv.exclusive("u1"):
        conv.attach_background("u1", asyncio.create_task(background()))

    async def second_message() -> None:
        async with conv.exclusive("u1"):
            order.append("second")

    waiter = asyncio.create_task(second_message())
    await asyncio.sleep(0.01)
    assert order == []

    release.set()
    await waiter
    assert order == ["background", "second"]


@pytest.mark.asyncio
async def test_lanes_of_other_users_do_not_block() -> None:
    conv = ConversationStateStore()
    release = asyncio.Event()

    async with conv.exclusive("u1"):
        conv.attach_background("u1", asyncio.create_task(release.wait()))

    async with conv.exclusive("u2"):
        pass  # would hang if u1's background unit blocked u2

    release.set()
    await conv.background_for("u1")


@pytest.mark.asyncio
async def test_idle_lanes_are_dropped() -> None:
    conv = ConversationStateStore()
    release = asyncio.Event()

    async with conv.exclusive("u1"):
        assert "u1" in conv._lanes
    assert "u1" not in conv._lanes

    async with conv.exclusive("u2"):
        bg = asyncio.create_task(release.wait())
        conv.attach_background("u2", bg)
    # still running: the lane must survive so the next message waits for it
    assert conv.background_for("u2") is bg

    release.set()
    await bg
    await asyncio.sleep(0)
    assert conv._lanes == {}
    assert conv.background_for("u2") is None


@pytest.mark.asyncio
async def test_lane_survives_while_a_message_is_queued() -> None:
    conv = ConversationStateStore()
    entered = asyncio.Event()
    proceed = asyncio.Event()
    finish = asyncio.Event()

    async def first() -> None:
        async with conv.exclusive("u1"):
            entered.set()
            await proceed.wait()

    async def second() -> None:
        async with conv.exclusive("u1"):
            await finish.wait()

    t1 = asyncio.create_task(first())
    await entered.wait()
    t2 = asyncio.create_task(second())
    await asyncio.sleep(0)
    lane = conv._lanes["u1"]

    proceed.set()
    await t1
    # the queued message still owns the same lane
    assert conv._lanes.get("u1") is lane
    finish.set()
    await t2
    assert "u1" not in conv._lanes
