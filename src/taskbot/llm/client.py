# src/taskbot/llm/client.py

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from .prompts import CLASSIFY_PROMPT, RELATIVE_DATE_PROMPT, SPLIT_PROMPT, TASK_PARSE_PROMPT
from .schemas import ClassifiedIntent, ParsedTask, RelativeDate, TaskSplit, UnknownIntent, parse_intent_json

logger = logging.getLogger(__name__)

BAD_MODEL_COOLDOWN_SECONDS = 3600.0


def _is_auth_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {
        "AuthenticationError",
        "PermissionDeniedError",
        "UnauthorizedError",
    }


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"RateLimitError", "TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {
        "APIConnectionError",
        "APITimeoutError",
        "Timeout",
        "ConnectTimeout",
        "ReadTimeout",
        "WriteTimeout",
    }


def _is_not_found_error(exc: Exception) -> bool:
    # OpenAI-compatible SDK uses NotFoundError for HTTP 404
    return exc.__class__.__name__ in {"NotFoundError"}


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if "LLM API key is not set" in msg:
        return "LLM is not configured (missing API key). Set TASKBOT_LLM_API_KEY in .env (see .env.example)."
    if "LLM model list is empty" in msg:
        return "LLM is not configured (no models). Set TASKBOT_LLM_MODELS in .env (see .env.example)."
    if "LLM base URL is not set" in msg:
        return "LLM is not configured (missing base URL). Set TASKBOT_LLM_BASE_URL in .env (see .env.example)."
    return msg


class OpenRouterLLMClient:
    """
    Language-model provider for the conversation engine (OpenAI-compatible API).

    Every call is a JSON-mode chat completion validated with pydantic.
    Models are tried in the order from settings:
    - 404 (model not available) -> mark model bad for an hour, try next.
    - Rate limit / network issues -> try next.
    - Auth issues -> fail fast (no retries across models).

    classify_intent and split_multi_task_input never raise: they degrade to
    `unknown` and `[text]`. parse_natural_language and parse_relative_date raise.
    """

    def __init__(
        self,
        settings: Any,
        *,
        client: AsyncOpenAI | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._models: List[str] = [m.strip() for m in (getattr(settings, "llm_models", []) or []) if m.strip()]
        self._headers: Dict[str, str] = dict(getattr(settings, "extra_headers", {}) or {})
        self._clock = clock
        self._bad_models: dict[str, float] = {}  # model -> retry_at (monotonic)

        if client is not None:
            self._client = client
            return

        api_key = getattr(settings, "llm_api_key", None)
        base_url = getattr(settings, "llm_base_url", "") or ""

        if not api_key or not str(api_key).strip():
            raise RuntimeError("LLM API key is not set. Set TASKBOT_LLM_API_KEY in your .env.")
        if not base_url.strip():
            raise RuntimeError("LLM base URL is not set. Set TASKBOT_LLM_BASE_URL in your .env.")

        connect_s = float(getattr(settings, "llm_connect_timeout_seconds", 5.0))
        read_s = float(getattr(settings, "llm_read_timeout_seconds", 25.0))

        # No SDK retries: fallback across models is quicker.
        self._client = AsyncOpenAI(
            base_url=str(base_url),
            api_key=str(api_key),
            timeout=httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s),
            max_retries=0,
        )

    async def _complete_json(
        self,
        *,
        system_prompt: str,
        user_text: str,
        temperature: float,
    ) -> str:
        """Return the raw JSON content of the first model that answers."""
        if not self._models:
            raise RuntimeError("LLM model list is empty. Set TASKBOT_LLM_MODELS in your .env.")

        last_error: Optional[Exception] = None
        now = self._clock()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            t0 = self._clock()
            try:
                resp = await self._client.chat.completions.create(
                    model=model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_text},
                    ],
                    response_format={"type": "json_object"},
                    temperature=temperature,
                    extra_headers=self._headers or None,
                )
                content = resp.choices[0].message.content if resp.choices else None
                if content and content.strip():
                    logger.debug("LLM: model=%s answered in %.0fms", model, (self._clock() - t0) * 1000)
                    return content

                last_error = RuntimeError(f"Model returned no content: {model}")
                logger.info("LLM: empty response from model=%s, trying next", model)

            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise RuntimeError(
                        "LLM authentication failed. Check your API key (TASKBOT_LLM_API_KEY)."
                    ) from e

                if _is_not_found_error(e):
                    self._bad_models[model] = self._clock() + BAD_MODEL_COOLDOWN_SECONDS
                    logger.info("LLM: model not available (404): %s", model)
                    continue

                if _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                    continue

                if _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                    continue

                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise RuntimeError("LLM is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise RuntimeError("LLM network/timeout error. Try again later or change models.") from last_error
            raise RuntimeError("All LLM models failed.") from last_error

        raise RuntimeError("All LLM models failed.")

    # ---- provider API ----

    async def classify_intent(self, text: str) -> ClassifiedIntent:
        try:
            raw = await self._complete_json(system_prompt=CLASSIFY_PROMPT, user_text=text, temperature=0.0)
            intent = parse_intent_json(raw)
        except ValidationError as e:
            logger.info("LLM: classifier output failed validation (%s errors) -> unknown", e.error_count())
            return UnknownIntent()
        except Exception:
            logger.exception("LLM: classify_intent failed -> unknown")
            return UnknownIntent()

        logger.debug("LLM: classified intent=%s", intent.intent)
        return intent

    async def split_multi_task_input(self, text: str) -> list[str]:
        try:
            raw = await self._complete_json(system_prompt=SPLIT_PROMPT, user_text=text, temperature=0.0)
            split = TaskSplit.model_validate_json(raw)
        except Exception as e:
            logger.info("LLM: split failed (%s) -> single task", e.__class__.__name__)
            return [text]

        if not split.tasks:
            return [text]
        return split.tasks

    async def parse_natural_language(self, text: str, known_categories: Sequence[str]) -> ParsedTask:
        categories = ", ".join(c for c in known_categories if c) or "Personal, Work"
        prompt = TASK_PARSE_PROMPT.format(now=datetime.now(UTC).isoformat(), categories=categories)
        raw = await self._complete_json(system_prompt=prompt, user_text=text, temperature=0.1)
        return ParsedTask.model_validate_json(raw)

    async def parse_relative_date(self, text: str) -> datetime:
        prompt = RELATIVE_DATE_PROMPT.format(
            now=datetime.now(UTC).isoformat(),
            timezone=getattr(self._settings, "timezone", "UTC"),
        )
        raw = await self._complete_json(system_prompt=prompt, user_text=text, temperature=0.0)
        return RelativeDate.model_validate_json(raw).date

    async def transcribe_audio(self, audio: bytes, *, filename: str = "voice.ogg") -> str:
        model = getattr(self._settings, "transcription_model", "whisper-1")
        result = await self._client.audio.transcriptions.create(model=model, file=(filename, audio))
        text = (getattr(result, "text", "") or "").strip()
        if not text:
            raise RuntimeError("Transcription returned no text.")
        return text
