# src/taskbot/llm/offline.py

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime

from .schemas import ClassifiedIntent, ParsedTask, UnknownIntent

_REMIND_PREFIX_RE = re.compile(r"^\s*remind\s+me\s+(?:to\s+)?", re.IGNORECASE)


class OfflineLLMClient:
    """
    Offline deterministic provider used for demos when no external API is configured.

    Behavior:
    - classify -> always `unknown` (only explicit commands work)
    - split -> the whole input is one task
    - parse -> title is the input verbatim, medium priority, first known category
    - relative dates and transcription are unavailable (raise)
    """

    async def classify_intent(self, text: str) -> ClassifiedIntent:
        return UnknownIntent()

    async def split_multi_task_input(self, text: str) -> list[str]:
        return [text]

    async def parse_natural_language(self, text: str, known_categories: Sequence[str]) -> ParsedTask:
        title = _REMIND_PREFIX_RE.sub("", text).strip() or text.strip()
        category = next((c for c in known_categories if c), "Personal")
        return ParsedTask(title=title, category=category)

    async def parse_relative_date(self, text: str) -> datetime:
        raise RuntimeError("Offline mode: date parsing needs an LLM. Set TASKBOT_LLM_API_KEY.")

    async def transcribe_audio(self, audio: bytes, *, filename: str = "voice.ogg") -> str:
        raise RuntimeError("Offline mode: voice notes need an LLM. Set TASKBOT_LLM_API_KEY.")
