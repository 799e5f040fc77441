# src/taskbot/core/handler.py

"""
Inbound message pipeline.

    message -> per-user lane -> identity -> pending confirmation?
            -> command parser -> (unknown) intent classifier -> handler

add / remind / meet reply with an immediate acknowledgement and continue in a
detached orchestrator unit; everything else replies synchronously. Any error
that escapes a handler produces one generic apology; the process never dies
on a per-message error.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, assert_never

from ..llm.schemas import (
    AddIntent,
    ClassifiedIntent,
    ListIntent,
    MeetIntent,
    QueryIntent,
    RemindIntent,
    SummaryIntent,
    UnknownIntent,
)
from ..tasks.task_models import Task, TaskStatus, User
from . import formatter
from .commands import (
    AddCommand,
    CategoriesCommand,
    DeleteCommand,
    DoneCommand,
    HelpCommand,
    ListCommand,
    MeetCommand,
    MoveCommand,
    ParsedCommand,
    RemindCommand,
    SummaryCommand,
    UnknownCommand,
    VideoLinkCommand,
    VideosCommand,
    parse_command,
)
from .conversation import ConfirmationReply, classify_confirmation_reply
from .dispatcher import ReplyDispatcher
from .guardrail import CalendarGuardrail, DeletionDecision
from .meetings import MeetingScheduler
from .orchestrator import OrchestrationJob, TaskOrchestrator
from .ports import Transport
from .state import AppState
from .task_writer import TaskWriter, end_of_week
from .videos import VideoLibrary

logger = logging.getLogger(__name__)

_REMIND_ME_RE = re.compile(r"^me\s+(?:to\s+)?", re.IGNORECASE)


@dataclass(slots=True, frozen=True)
class IncomingMessage:
    sender_id: str
    text: str
    is_voice: bool = False
    # Connectors fill this when replies must go somewhere other than the sender.
    reply_to: str | None = None
    display_name: str | None = None
    message_id: str | None = None

    @property
    def target(self) -> str:
        return self.reply_to or self.sender_id


@dataclass(slots=True, frozen=True)
class Turn:
    """One message being handled: state is keyed by the sender, replies go to the target."""

    user: User
    key: str
    target: str


def normalize_remind(text: str) -> str:
    """'remind me to X' exactly once, whatever prefix the user typed."""
    body = _REMIND_ME_RE.sub("", text.strip())
    return f"remind me to {body}"


class MessageHandler:
    def __init__(self, state: AppState, transport: Transport) -> None:
        self.state = state
        settings = state.settings
        tz = state.tz
        self._tz = tz
        self._store = state.store
        self._llm = state.llm
        self._conversation = state.conversation

        self.dispatcher = ReplyDispatcher(
            transport,
            state.sent_tracker,
            retry_delay_seconds=float(getattr(settings, "reply_retry_delay_seconds", 1.0)),
        )
        writer = TaskWriter(state.store, tz=tz)
        meetings = MeetingScheduler(
            store=state.store,
            writer=writer,
            calendar=state.calendar,
            default_duration_minutes=int(getattr(settings, "meeting_default_duration_minutes", 30)),
            tz=tz,
        )
        self.orchestrator = TaskOrchestrator(
            llm=state.llm,
            store=state.store,
            conversation=state.conversation,
            dispatcher=self.dispatcher,
            writer=writer,
            meetings=meetings,
            duplicate_threshold=float(getattr(settings, "duplicate_threshold", 0.3)),
            tz=tz,
        )
        self.guardrail = CalendarGuardrail(store=state.store, calendar=state.calendar)
        self.videos = VideoLibrary(state.store)
        self._detached: set[asyncio.Task] = set()

    async def drain(self, timeout: float) -> None:
        """Let started adds and title lookups finish before the connector goes away."""
        await self.orchestrator.drain(timeout)
        if self._detached:
            await asyncio.wait(set(self._detached), timeout=timeout)

    # ---- entrypoint ----

    async def handle(self, msg: IncomingMessage) -> None:
        text = (msg.text or "").strip()
        if not text and not msg.is_voice:
            return

        key = msg.sender_id
        target = msg.target
        t0 = time.perf_counter()
        logger.info(
            "[HANDLER] START %s from=%s replyTo=%s",
            "[voice note]" if msg.is_voice else f"text={text[:50]!r}",
            key,
            target,
        )

        async with self._conversation.exclusive(key):
            try:
                user = await self._resolve_user(msg)
                turn = Turn(user=user, key=key, target=target)

                if await self._handle_pending(turn, text):
                    logger.info("[HANDLER] DONE (confirmation) %.0fms", (time.perf_counter() - t0) * 1000)
                    return

                if msg.is_voice:
                    await self._handle_voice(turn, text)
                    logger.info("[HANDLER] DONE (voice ack sent, processing in bg)")
                    return

                command = parse_command(text)
                logger.info("[HANDLER] command=%s (%.0fms)", type(command).__name__, (time.perf_counter() - t0) * 1000)
                await self._dispatch(turn, command)

                await self._acknowledge_reminders(user)
                logger.info("[HANDLER] DONE %.0fms", (time.perf_counter() - t0) * 1000)
            except Exception:
                logger.exception("[HANDLER] ERROR from=%s", key)
                try:
                    await self.dispatcher.send(target, formatter.GENERIC_APOLOGY)
                except Exception:
                    logger.exception("[HANDLER] apology could not be delivered to %s", target)

    # ---- pipeline steps ----

    async def _resolve_user(self, msg: IncomingMessage) -> User:
        key = msg.sender_id
        user = self._conversation.get_identity(key)
        if user is None:
            user = await self._store.get_or_create_user(key, msg.display_name)
            self._conversation.set_identity(key, user)
        return user

    async def _reply(self, turn: Turn, text: str) -> None:
        await self.dispatcher.send(turn.target, text)

    async def _handle_pending(self, turn: Turn, text: str) -> bool:
        """True when the message was consumed as a yes/no answer."""
        pending = self._conversation.take_pending(turn.key)
        if pending is None:
            return False

        answer = classify_confirmation_reply(text)
        if answer is ConfirmationReply.AFFIRMATIVE:
            task = await self.orchestrator.commit_confirmed(pending)
            logger.info("Pending confirmation for %s committed task=%s", turn.key, task.id)
            await self._reply(turn, formatter.format_added(task, tz=self._tz))
            return True
        if answer is ConfirmationReply.NEGATIVE:
            logger.info("Pending confirmation for %s cancelled", turn.key)
            await self._reply(turn, formatter.CANCELLED)
            return True

        logger.info("Pending confirmation for %s discarded, reprocessing message", turn.key)
        return False

    async def _handle_voice(self, turn: Turn, text: str) -> None:
        if not text:
            await self._reply(turn, "Could not transcribe voice note. Try again.")
            return
        logger.info("[HANDLER] Transcribed: %r", text[:80])
        await self._start_add(turn, text, ack=formatter.ACK_VOICE)

    async def _acknowledge_reminders(self, user: User) -> None:
        try:
            n = await self._store.acknowledge_reminders(user.id)
            if n:
                logger.debug("Acknowledged %d reminder(s) for user=%s", n, user.id)
        except Exception:
            logger.exception("Reminder acknowledgement failed user=%s", user.id)

    async def _dispatch(self, turn: Turn, command: ParsedCommand) -> None:
        if isinstance(command, HelpCommand):
            await self._reply(turn, formatter.format_help())
        elif isinstance(command, AddCommand):
            await self._start_add(turn, command.text)
        elif isinstance(command, RemindCommand):
            await self._start_add(turn, normalize_remind(command.text))
        elif isinstance(command, MeetCommand):
            await self._start_add(turn, command.text, force_meeting=True, ack=formatter.ACK_SCHEDULING)
        elif isinstance(command, ListCommand):
            await self._list(turn, command.filter)
        elif isinstance(command, DoneCommand):
            await self._done(turn, command)
        elif isinstance(command, DeleteCommand):
            await self._delete(turn, command)
        elif isinstance(command, MoveCommand):
            await self._move(turn, command)
        elif isinstance(command, CategoriesCommand):
            tree = await self._store.get_category_tree(turn.user.id)
            await self._reply(turn, formatter.format_category_tree(tree))
        elif isinstance(command, VideoLinkCommand):
            await self._save_video(turn, command)
        elif isinstance(command, VideosCommand):
            await self._videos(turn, command)
        elif isinstance(command, SummaryCommand):
            await self._summary(turn)
        elif isinstance(command, UnknownCommand):
            await self._classify(turn, command.text)
        else:
            assert_never(command)

    async def _dispatch_intent(self, turn: Turn, intent: ClassifiedIntent, text: str) -> None:
        if isinstance(intent, AddIntent):
            await self._start_add(turn, intent.text or text)
        elif isinstance(intent, RemindIntent):
            await self._start_add(turn, normalize_remind(intent.text or text))
        elif isinstance(intent, MeetIntent):
            await self._start_add(turn, intent.text or text, force_meeting=True, ack=formatter.ACK_SCHEDULING)
        elif isinstance(intent, QueryIntent):
            tasks = await self._store.list_tasks(
                turn.user.id, search=intent.search, **self._filter_kwargs(intent.time_filter)
            )
            self._conversation.set_task_list(turn.key, tasks)
            await self._reply(
                turn,
                formatter.format_query_result(tasks, search=intent.search, time_filter=intent.time_filter, tz=self._tz),
            )
        elif isinstance(intent, ListIntent):
            await self._list(turn, intent.time_filter)
        elif isinstance(intent, SummaryIntent):
            await self._summary(turn)
        elif isinstance(intent, UnknownIntent):
            await self._reply(turn, formatter.NOT_UNDERSTOOD)
        else:
            assert_never(intent)

    async def _classify(self, turn: Turn, text: str) -> None:
        logger.info("[HANDLER] Classifying intent for: %r", text[:50])
        intent = await self._llm.classify_intent(text)
        logger.info("[HANDLER] AI classified: %s", intent.intent)
        await self._dispatch_intent(turn, intent, text)

    # ---- add / remind / meet ----

    async def _start_add(
        self,
        turn: Turn,
        text: str,
        *,
        force_meeting: bool = False,
        ack: str = formatter.ACK_ADDING,
    ) -> None:
        await self._reply(turn, ack)
        self.orchestrator.spawn(
            OrchestrationJob(
                user=turn.user,
                user_key=turn.key,
                reply_to=turn.target,
                text=text,
                force_meeting=force_meeting,
            )
        )

    # ---- list / query ----

    def _filter_kwargs(self, flt: str | None) -> dict[str, Any]:
        if not flt:
            return {}
        f = flt.strip().lower()
        now = datetime.now(UTC)
        local_now = now.astimezone(self._tz)
        day_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)

        if f == "today":
            return {"due_from": day_start, "due_to": day_start + timedelta(days=1) - timedelta(microseconds=1)}
        if f == "tomorrow":
            start = day_start + timedelta(days=1)
            return {"due_from": start, "due_to": start + timedelta(days=1) - timedelta(microseconds=1)}
        if f in ("this_week", "this week", "week"):
            return {"due_from": day_start, "due_to": end_of_week(now, self._tz)}
        if f == "overdue":
            return {"due_to": now}
        if f in {s.value for s in TaskStatus}:
            return {"status": TaskStatus(f)}
        return {"category_name": flt.strip()}

    async def _list(self, turn: Turn, flt: str | None) -> None:
        tasks = await self._store.list_tasks(turn.user.id, **self._filter_kwargs(flt))
        self._conversation.set_task_list(turn.key, tasks)
        await self._reply(turn, formatter.format_task_list(tasks, tz=self._tz))

    # ---- task references ----

    async def _task_by_index(self, turn: Turn, index: int) -> Task | None:
        tasks = self._conversation.get_task_list(turn.key)
        if tasks is None:
            tasks = await self._store.get_recent_tasks(turn.user.id)
        if index < 1 or index > len(tasks):
            return None
        # The cached list may be stale: re-read the row.
        return await self._store.get_task(tasks[index - 1].id)

    async def _resolve_ref(self, turn: Turn, *, index: int | None, search: str | None, verb: str) -> Task | None:
        """Find the referenced task, or send the not-found / choose-one reply and return None."""
        if index is not None:
            task = await self._task_by_index(turn, index)
            if task is None:
                await self._reply(turn, f"Task #{index} not found. Use 'list' to see tasks.")
            return task

        matches = await self._store.search_open_tasks(turn.user.id, search or "")
        if not matches:
            await self._reply(turn, f"No open task matches \"{search}\".")
            return None
        if len(matches) > 1:
            self._conversation.set_task_list(turn.key, matches)
            await self._reply(turn, formatter.format_choice_list(matches, verb=verb))
            return None
        return matches[0]

    async def _done(self, turn: Turn, cmd: DoneCommand) -> None:
        task = await self._resolve_ref(turn, index=cmd.index, search=cmd.search, verb="done")
        if task is None:
            return
        await self._store.mark_complete(task.id)
        await self._reply(turn, f"Completed: {task.title}")

    async def _delete(self, turn: Turn, cmd: DeleteCommand) -> None:
        task = await self._resolve_ref(turn, index=cmd.index, search=None, verb="delete")
        if task is None:
            return
        result = await self.guardrail.delete_task(task)
        reply = f"Deleted: {task.title}"
        if result.decision is DeletionDecision.REMOTE_DELETED:
            reply += "\nThe calendar event was removed too."
        elif result.decision is DeletionDecision.REMOTE_FAILED:
            reply += "\nThe calendar event could not be removed; delete it in your calendar."
        await self._reply(turn, reply)

    async def _move(self, turn: Turn, cmd: MoveCommand) -> None:
        task = await self._resolve_ref(turn, index=cmd.index, search=cmd.search, verb="move")
        if task is None:
            return
        try:
            due = await self._llm.parse_relative_date(cmd.date_text)
        except Exception:
            logger.exception("parse_relative_date failed for %r", cmd.date_text)
            await self._reply(turn, f"Couldn't understand the date \"{cmd.date_text}\".")
            return
        await self._store.update_due_date(task.id, due)
        moved = await self._store.get_task(task.id) or task
        await self._reply(turn, formatter.format_moved(moved, tz=self._tz))

    # ---- videos ----

    async def _save_video(self, turn: Turn, cmd: VideoLinkCommand) -> None:
        try:
            saved = await self.videos.save(user_id=turn.user.id, url=cmd.url, platform=cmd.platform)
        except Exception:
            logger.exception("Video save failed user=%s", turn.user.id)
            await self._reply(turn, "Failed to save video. Try again.")
            return

        await self._reply(turn, "Added to Videos.\n\nType 'videos' to see your list.")
        enrich = asyncio.create_task(self.videos.enrich_title(task_id=saved.id, url=cmd.url, platform=cmd.platform))
        self._detached.add(enrich)
        enrich.add_done_callback(self._detached.discard)

    async def _videos(self, turn: Turn, cmd: VideosCommand) -> None:
        videos = await self.videos.list_open(turn.user.id)
        if cmd.done_index is None:
            await self._reply(turn, formatter.format_video_list(videos))
            return
        if cmd.done_index < 1 or cmd.done_index > len(videos):
            await self._reply(turn, f"Video #{cmd.done_index} not found. Use 'videos' to see your list.")
            return
        video = videos[cmd.done_index - 1]
        await self._store.mark_complete(video.id)
        await self._reply(turn, f"Watched: {formatter.video_display_title(video.title)}")

    # ---- summary ----

    async def _summary(self, turn: Turn) -> None:
        stats, today_tasks, reminders = await asyncio.gather(
            self._store.get_task_stats(turn.user.id),
            self._store.list_tasks(turn.user.id, **self._filter_kwargs("today")),
            self._store.get_upcoming_reminders(turn.user.id),
        )
        await self._reply(turn, formatter.format_summary(stats, today_tasks, reminders, tz=self._tz))
