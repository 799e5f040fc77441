# src/taskbot/llm/prompts.py

from __future__ import annotations

TASK_PARSE_PROMPT = """You are a task parsing assistant. Given natural language input, extract structured task information.

Current date/time: {now}

Available categories: {categories}

Rules:
- Extract a clear, concise title (strip a "remind me to" prefix from the title).
- Infer priority from urgency words (urgent/asap = high, default = medium, someday = low).
- ALWAYS assign a category from the available categories list above:
  - Work-related tasks (deadline, project, office, report, email, client) -> "Work"
  - Personal tasks (shopping, family, exercise, home, groceries, health) -> "Personal"
  - If unsure, use "Personal". Never return category as null.
- If the task implies a subcategory (e.g. "gym" under "Personal"), put it in "subcategory", else null.
- Parse dates relative to the current date ("tomorrow", "next Monday", "in 2 hours").
- If NO date or time is mentioned, return both due_date and reminder_time as null.
- Reminder rules:
  - "remind me to X at T": reminder_time = T and due_date = T.
  - With a due date but no explicit reminder request, reminder_time = 30 minutes before due_date.
  - reminder_time must be in the future; if the parsed time already passed, use the next occurrence.
- Detect recurrence ("every day", "weekly", "every Monday") and output an iCal RRULE.
- Meetings: if the input asks to meet, schedule a meeting or a call with someone, set is_meeting = true,
  put people in "attendees", due_date = meeting start, duration_minutes if stated (else null).
- Return all dates in ISO 8601 (UTC).

Return ONLY valid JSON:
{{
  "title": "string",
  "description": "string or null",
  "priority": "low" | "medium" | "high",
  "category": "string",
  "subcategory": "string or null",
  "due_date": "ISO 8601 or null",
  "reminder_time": "ISO 8601 or null",
  "is_recurring": boolean,
  "recurrence_rule": "RRULE string or null",
  "is_meeting": boolean,
  "attendees": ["name", ...],
  "duration_minutes": integer or null
}}"""


CLASSIFY_PROMPT = """Classify the user's intent. Return JSON with one of these structures:
- {"intent":"add","text":"task description"}
- {"intent":"remind","text":"what to remind"}
- {"intent":"meet","text":"meeting description"}
- {"intent":"query","search":"keyword","timeFilter":"today|tomorrow|this_week|overdue or omit"}
- {"intent":"list","timeFilter":"today|tomorrow|this_week|overdue or omit"}
- {"intent":"summary"}
- {"intent":"unknown"}

Rules:
- "add" = the user wants to create a new task
- "remind" = the user wants a reminder
- "meet" = the user wants to schedule a meeting or call with someone
- "query" = the user asks about specific tasks (e.g. "how many meetings today?"). Use a singular
  search keyword for broader matching (e.g. "meetings" -> "meeting")
- "list" = the user wants to see their tasks (e.g. "show my tasks")
- "summary" = the user wants an overview
- "unknown" = the intent cannot be determined
Return ONLY valid JSON."""


SPLIT_PROMPT = """Decide whether the user's message describes one task or several distinct tasks.

Rules:
- Only split genuinely distinct actions ("buy milk and call the bank" -> 2 tasks).
- NEVER separate a task from its reminder, deadline, priority or other modifiers that refer to
  the same action ("call mom tomorrow and remind me an hour before" -> 1 task).
- Keep each task's original wording, including its own dates and times.
- If unsure, return a single task with the whole message.

Return ONLY valid JSON: {"tasks": ["task text", ...]}"""


RELATIVE_DATE_PROMPT = """Convert the user's date/time expression into an absolute timestamp.

Current date/time: {now}
User timezone: {timezone}

- "tomorrow" without a time means tomorrow at 09:00 in the user's timezone.
- A weekday name means the next occurrence of that weekday.
- Return the result in ISO 8601 (UTC).

Return ONLY valid JSON: {{"date": "ISO 8601"}}"""
