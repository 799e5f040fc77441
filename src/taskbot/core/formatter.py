# src/taskbot/core/formatter.py

"""User-visible reply texts (plain text, transport-agnostic)."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, tzinfo

from ..calendar.client import CalendarError, CalendarErrorKind
from ..calendar.models import ConflictSummary
from ..tasks.task_models import CategoryNode, DuplicateCandidate, Priority, Reminder, Task, TaskStats, TaskStatus

ACK_ADDING = "Adding..."
ACK_SCHEDULING = "Scheduling..."
ACK_VOICE = "Processing voice note..."
FAILED_TO_ADD = "Failed to add task. Try again."
GENERIC_APOLOGY = "Something went wrong. Try again."
CANCELLED = "Cancelled."
NOT_UNDERSTOOD = (
    "I didn't understand that.\n\n"
    "Use 'add [task]' to create a task, or send 'help' for all commands."
)

_PRIORITY_LABEL = {Priority.HIGH: "High", Priority.MEDIUM: "Medium", Priority.LOW: "Low"}
_STATUS_MARK = {TaskStatus.COMPLETED: "[x]", TaskStatus.IN_PROGRESS: "[~]", TaskStatus.PENDING: "[ ]"}


def _when(dt: datetime, tz: tzinfo, now: datetime | None = None) -> str:
    local = dt.astimezone(tz)
    today = (now or datetime.now(UTC)).astimezone(tz).date()
    delta = (local.date() - today).days
    if delta == 0:
        day = "Today"
    elif delta == 1:
        day = "Tomorrow"
    else:
        day = local.strftime("%b %d").replace(" 0", " ")
    if local.hour == 23 and local.minute == 59:
        return day
    return f"{day} {local.strftime('%H:%M')}"


def _slot(start: datetime, end: datetime, tz: tzinfo) -> str:
    s = start.astimezone(tz)
    e = end.astimezone(tz)
    return f"{s.strftime('%a %b %d %H:%M')}-{e.strftime('%H:%M')}"


def format_help() -> str:
    return (
        "Commands:\n"
        "  add [task]            add a task (plain sentences work too)\n"
        "  remind [what] [when]  add a reminder\n"
        "  meet [who] [when]     schedule a meeting (checks your calendar)\n"
        "  list                  open tasks\n"
        "  list today | pending | completed | [category]\n"
        "  done [number|text]    complete a task\n"
        "  delete [number]       delete a task\n"
        "  move [number|text] to [date]  reschedule a task\n"
        "  categories            your category tree\n"
        "  videos / videos done [number]  saved videos\n"
        "  summary               overview of your tasks\n"
        "  help                  this message\n"
        "\n"
        "Tip: paste a YouTube or Instagram link to save it for later."
    )


def format_task_list(tasks: Sequence[Task], *, tz: tzinfo = UTC, now: datetime | None = None) -> str:
    if not tasks:
        return "No tasks found. Send a message to add one!"

    lines = []
    for i, t in enumerate(tasks, start=1):
        cat = f" [{t.category_name}]" if t.category_name else ""
        due = f" - {_when(t.due_at, tz, now)}" if t.due_at else ""
        prio = " (!)" if t.priority is Priority.HIGH else ""
        lines.append(f"{i}. {_STATUS_MARK.get(t.status, '[ ]')} {t.title}{prio}{cat}{due}")

    return "Your tasks:\n\n" + "\n".join(lines) + "\n\nReply 'done [number]' to complete a task."


def format_choice_list(tasks: Sequence[Task], *, verb: str) -> str:
    lines = [f"{i}. {t.title}" for i, t in enumerate(tasks, start=1)]
    return (
        "Several tasks match:\n\n" + "\n".join(lines) + f"\n\nReply '{verb} [number]' to pick one."
    )


def format_added(task: Task, *, tz: tzinfo = UTC, note: str | None = None) -> str:
    out = f"Added: {task.title}\nPriority: {_PRIORITY_LABEL.get(task.priority, 'Medium')}"
    if task.category_name:
        out += f" - {task.category_name}"
    if task.due_at:
        out += f"\nDue: {_when(task.due_at, tz)}"
    if task.reminder_at:
        out += f"\nReminder: {_when(task.reminder_at, tz)}"
    if task.calendar_event_id:
        out += "\nCalendar event created."
    if note:
        out += f"\n\n{note}"
    return out


def format_moved(task: Task, *, tz: tzinfo = UTC) -> str:
    out = f"Moved: {task.title}"
    if task.due_at:
        out += f"\nDue: {_when(task.due_at, tz)}"
    if task.reminder_at:
        out += f"\nReminder: {_when(task.reminder_at, tz)}"
    return out


@dataclass(slots=True)
class BatchReport:
    added: list[str] = field(default_factory=list)
    not_scheduled: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def _count(n: int, noun: str) -> str:
    return f"{n} {noun}" + ("" if n == 1 else "s")


def format_batch_result(report: BatchReport) -> str:
    header = [f"{_count(len(report.added), 'task')} added"]
    if report.not_scheduled:
        header.append(f"{_count(len(report.not_scheduled), 'meeting')} not scheduled")
    if report.failed:
        header.append(f"{_count(len(report.failed), 'task')} failed")

    blocks = [", ".join(header) + ":"]
    if report.added:
        blocks.append("\n".join(f"- {line}" for line in report.added))
    if report.not_scheduled:
        blocks.append("Not scheduled:\n" + "\n".join(f"- {line}" for line in report.not_scheduled))
    if report.failed:
        blocks.append("Not saved, send these again:\n" + "\n".join(f"- {line}" for line in report.failed))
    return "\n\n".join(blocks)


def format_duplicate_prompt(title: str, candidates: Sequence[DuplicateCandidate]) -> str:
    dup_list = "\n".join(f"- \"{d.title}\" ({round(d.similarity * 100)}% match)" for d in candidates)
    return f"Similar task(s) found:\n\n{dup_list}\n\nStill create \"{title}\"?\nReply yes or no."


def format_conflicts(title: str, summary: ConflictSummary, *, tz: tzinfo = UTC) -> str:
    req = summary.requested
    out = [f"Can't schedule \"{title}\" at {_slot(req.start, req.end, tz)}: the slot is busy."]
    out.append("\nConflicts:")
    for ev in summary.conflicts:
        out.append(f"- {ev.summary} ({_slot(ev.start, ev.end, tz)})")
    if summary.alternatives:
        out.append("\nFree alternatives:")
        for alt in summary.alternatives:
            out.append(f"- {_slot(alt.start, alt.end, tz)}")
    out.append("\nSend the meeting again with one of these times.")
    return "\n".join(out)


def calendar_error_message(err: CalendarError) -> str:
    if err.kind is CalendarErrorKind.PERMISSION_INSUFFICIENT:
        return (
            "Calendar permission is insufficient (SCOPE_UPGRADE_NEEDED). "
            "Reconnect your calendar and grant event access."
        )
    if err.kind is CalendarErrorKind.TOKEN_EXPIRED:
        return "Your calendar connection has expired. Reconnect your calendar and try again."
    return f"Couldn't create the calendar event: {err.message}"


def format_category_tree(tree: Sequence[CategoryNode]) -> str:
    if not tree:
        return "No categories."

    lines: list[str] = []

    def walk(nodes: Sequence[CategoryNode], depth: int) -> None:
        for node in nodes:
            bullet = "*" if depth == 0 else "-"
            lines.append(f"{'  ' * depth}{bullet} {node.name}")
            walk(node.children, depth + 1)

    walk(tree, 0)
    return "Your categories:\n\n" + "\n".join(lines)


def format_summary(
    stats: TaskStats,
    today_tasks: Sequence[Task],
    reminders: Sequence[Reminder],
    *,
    tz: tzinfo = UTC,
) -> str:
    out = [
        "Summary:",
        f"  pending: {stats.pending}",
        f"  in progress: {stats.in_progress}",
        f"  completed: {stats.completed}",
        f"  total: {stats.total}",
    ]
    out.append("\nToday:")
    if today_tasks:
        out.extend(f"- {t.title}" for t in today_tasks)
    else:
        out.append("- nothing due today")
    if reminders:
        out.append("\nUpcoming reminders:")
        out.extend(f"- {r.task_title or 'task'} ({_when(r.remind_at, tz)})" for r in reminders)
    return "\n".join(out)


def format_query_result(
    tasks: Sequence[Task],
    *,
    search: str | None,
    time_filter: str | None,
    tz: tzinfo = UTC,
) -> str:
    parts = []
    if search:
        parts.append(f"matching \"{search}\"")
    if time_filter:
        parts.append(time_filter.replace("_", " "))
    header = "Tasks " + " ".join(parts) if parts else "Tasks"
    if not tasks:
        return f"{header}: none found."
    lines = [f"{i}. {t.title}" + (f" - {_when(t.due_at, tz)}" if t.due_at else "") for i, t in enumerate(tasks, 1)]
    return f"{header} ({len(tasks)}):\n\n" + "\n".join(lines)


def video_display_title(title: str) -> str:
    for prefix in ("[YT] ", "[IG] "):
        if title.startswith(prefix):
            return title[len(prefix):]
    return title


def format_video_list(videos: Sequence[Task]) -> str:
    if not videos:
        return "No saved videos. Paste a YouTube or Instagram link to save one."
    lines = []
    for i, v in enumerate(videos, start=1):
        url = f"\n   {v.description}" if v.description else ""
        lines.append(f"{i}. {v.title}{url}")
    return "Your videos:\n\n" + "\n".join(lines) + "\n\nReply 'videos done [number]' when watched."
