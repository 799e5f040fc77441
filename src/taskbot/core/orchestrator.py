# src/taskbot/core/orchestrator.py

"""
Task Orchestrator: the detached unit behind add / remind / meet.

The caller has already sent an acknowledgement; this unit delivers the final
result through the same Reply Dispatcher. Steps:
1. split the input into distinct tasks (falls back to one task)
2. parse every fragment in parallel
3. single task: duplicate search + category resolution in parallel; duplicates
   park the task as a pending confirmation instead of persisting it
4. batch: persist every fragment directly, no duplicate confirmation; each
   fragment succeeds or fails on its own and the reply lists both
5. meeting-flagged tasks go to the Meeting Scheduler
6. any unhandled failure -> one fixed failure reply (the ack is never retracted)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, tzinfo

from ..llm.schemas import ParsedTask
from ..tasks.task_models import Task, User
from . import formatter
from .conversation import ConversationStateStore, PendingConfirmation
from .dispatcher import ReplyDispatcher
from .meetings import MeetingScheduler, MeetingState
from .ports import LLMProvider, TaskRepo
from .task_writer import TaskWriter

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class OrchestrationJob:
    user: User
    user_key: str
    reply_to: str
    text: str
    force_meeting: bool = False


class TaskOrchestrator:
    def __init__(
        self,
        *,
        llm: LLMProvider,
        store: TaskRepo,
        conversation: ConversationStateStore,
        dispatcher: ReplyDispatcher,
        writer: TaskWriter,
        meetings: MeetingScheduler,
        duplicate_threshold: float = 0.3,
        tz: tzinfo = UTC,
    ) -> None:
        self._llm = llm
        self._store = store
        self._conversation = conversation
        self._dispatcher = dispatcher
        self._writer = writer
        self._meetings = meetings
        self._threshold = float(duplicate_threshold)
        self._tz = tz
        self._running: set[asyncio.Task] = set()

    def spawn(self, job: OrchestrationJob) -> asyncio.Task:
        """Start the background unit and bind it to the user's lane. Nothing awaits its result."""
        task = asyncio.create_task(self.run(job), name=f"orchestrate:{job.user_key}")
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        self._conversation.attach_background(job.user_key, task)
        return task

    async def drain(self, timeout: float) -> None:
        """Wait up to `timeout` seconds for units still in flight (used on shutdown)."""
        if not self._running:
            return
        logger.info("[BG] waiting for %d unit(s) before shutdown", len(self._running))
        _, pending = await asyncio.wait(set(self._running), timeout=timeout)
        if pending:
            logger.warning("[BG] %d unit(s) still running after %.1fs", len(pending), timeout)

    async def run(self, job: OrchestrationJob) -> None:
        t0 = time.perf_counter()
        try:
            categories = await self._store.get_categories(job.user.id)
            category_names = [c.name for c in categories if c.parent_id is None]

            fragments = await self._llm.split_multi_task_input(job.text)
            if not fragments:
                fragments = [job.text]
            logger.info("[BG] user=%s fragments=%d", job.user.id, len(fragments))

            parsed = await asyncio.gather(
                *(self._llm.parse_natural_language(f, category_names) for f in fragments)
            )
            if job.force_meeting:
                parsed = [p.model_copy(update={"is_meeting": True}) for p in parsed]

            if len(parsed) == 1:
                await self._process_single(job, parsed[0])
            else:
                await self._process_batch(job, list(parsed))

            logger.info("[BG] DONE user=%s (%.0fms)", job.user.id, (time.perf_counter() - t0) * 1000)
        except Exception:
            logger.exception("[BG] ERROR user=%s", job.user.id)
            try:
                await self._dispatcher.send(job.reply_to, formatter.FAILED_TO_ADD)
            except Exception:
                logger.exception("[BG] failure reply could not be delivered to %s", job.reply_to)

    async def _process_single(self, job: OrchestrationJob, parsed: ParsedTask) -> None:
        if parsed.is_meeting:
            outcome = await self._meetings.schedule(user=job.user, parsed=parsed)
            await self._dispatcher.send(job.reply_to, outcome.reply)
            return

        duplicates, category_id = await asyncio.gather(
            self._store.find_duplicates(job.user.id, parsed.title, self._threshold),
            self._store.resolve_category_path(job.user.id, parsed.category, parsed.subcategory),
        )

        if duplicates:
            self._conversation.set_pending(
                job.user_key, user_id=job.user.id, parsed=parsed, candidates=duplicates
            )
            logger.info("[BG] user=%s %d duplicate(s) -> awaiting confirmation", job.user.id, len(duplicates))
            await self._dispatcher.send(job.reply_to, formatter.format_duplicate_prompt(parsed.title, duplicates))
            return

        task = await self._writer.persist(user_id=job.user.id, parsed=parsed, category_id=category_id)
        logger.info("[BG] user=%s task=%s added", job.user.id, task.id)
        await self._dispatcher.send(job.reply_to, formatter.format_added(task, tz=self._tz))

    async def _process_batch(self, job: OrchestrationJob, parsed: list[ParsedTask]) -> None:
        """Persist fragment by fragment; one failure never hides what was already saved."""
        report = formatter.BatchReport()
        for p in parsed:
            try:
                if p.is_meeting:
                    outcome = await self._meetings.schedule(user=job.user, parsed=p)
                    if outcome.state is MeetingState.TASK_PERSISTED and outcome.task is not None:
                        suffix = " (calendar event created)" if outcome.event_id else ""
                        report.added.append(f"{outcome.task.title}{suffix}")
                    else:
                        report.not_scheduled.append(f"{p.title}\n{outcome.reply}")
                    continue

                category_id = await self._store.resolve_category_path(job.user.id, p.category, p.subcategory)
                task = await self._writer.persist(user_id=job.user.id, parsed=p, category_id=category_id)
                report.added.append(task.title)
            except Exception:
                logger.exception("[BG] user=%s batch fragment %r failed", job.user.id, p.title)
                report.failed.append(p.title)

        logger.info(
            "[BG] user=%s batch: %d added, %d not scheduled, %d failed",
            job.user.id,
            len(report.added),
            len(report.not_scheduled),
            len(report.failed),
        )
        await self._dispatcher.send(job.reply_to, formatter.format_batch_result(report))

    async def commit_confirmed(self, pending: PendingConfirmation) -> Task:
        """Persist exactly the task that was parked for confirmation."""
        parsed = pending.parsed
        category_id = await self._store.resolve_category_path(pending.user_id, parsed.category, parsed.subcategory)
        return await self._writer.persist(user_id=pending.user_id, parsed=parsed, category_id=category_id)
