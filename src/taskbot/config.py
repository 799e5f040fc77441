# src/taskbot/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Every tunable of the conversation engine (TTLs, retry delay, thresholds) lives here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

ENV_PREFIX = "TASKBOT"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    timezone: str

    # ---- Connector flags ----
    console_enabled: bool
    matrix_enabled: bool

    # ---- LLM (OpenAI-compatible, OpenRouter by default) ----
    llm_api_key: Optional[str]
    llm_base_url: str
    llm_models: List[str]
    extra_headers: Dict[str, str]
    llm_connect_timeout_seconds: float
    llm_read_timeout_seconds: float
    transcription_model: str

    # ---- Matrix ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_rooms: List[str]

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    matrix_store_path: Path
    tasks_db_path: Path

    # ---- Calendar backend ----
    calendar_backend_url: str
    calendar_timeout_seconds: float
    meeting_default_duration_minutes: int

    # ---- Conversation engine tuning ----
    identity_cache_ttl_seconds: float
    task_list_cache_ttl_seconds: float
    reply_retry_delay_seconds: float
    echo_ttl_seconds: float
    duplicate_threshold: float
    shutdown_grace_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _first_env(_k("APP_NAME"), default="taskbot") or "taskbot"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        timezone = _env(_k("TIMEZONE"), "UTC")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        matrix_enabled = _env_bool(_k("MATRIX_ENABLED"), False)

        llm_api_key = _first_env(_k("LLM_API_KEY"), "OPENROUTER_API_KEY", "OPENAI_API_KEY", default=None)
        llm_base_url = _env(_k("LLM_BASE_URL"), "https://openrouter.ai/api/v1")

        http_referer = _env(_k("HTTP_REFERER"), "https://example.com")
        # Use explicit title header if provided; else fall back to app_name
        title = _env(_k("APP_TITLE"), app_name)

        extra_headers = {
            "HTTP-Referer": http_referer,
            "X-Title": title,
        }

        llm_models = _env_list(
            _k("LLM_MODELS"),
            [
                "openai/gpt-4o-mini",
                "google/gemini-2.0-flash-001",
                "deepseek/deepseek-chat-v3-0324",
            ],
        )

        connect_timeout = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0)
        read_timeout = _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 25.0)
        transcription_model = _env(_k("TRANSCRIPTION_MODEL"), "whisper-1")

        matrix_homeserver = (_first_env(_k("MATRIX_HOMESERVER"), "MATRIX_HOMESERVER", default="") or "").strip()
        matrix_user_id = (_first_env(_k("MATRIX_USER_ID"), "MATRIX_USER_ID", default="") or "").strip()
        matrix_password = (_first_env(_k("MATRIX_PASSWORD"), "MATRIX_PASSWORD", default="") or "").strip()
        matrix_rooms = _env_list(_k("MATRIX_ROOMS"), _env_list("MATRIX_ROOMS", []))

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskbot"))
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        calendar_backend_url = _env(_k("CALENDAR_BACKEND_URL"), "").strip().rstrip("/")
        calendar_timeout_seconds = _env_float(_k("CALENDAR_TIMEOUT_SECONDS"), 25.0)
        meeting_default_duration_minutes = _env_int(_k("MEETING_DEFAULT_DURATION_MINUTES"), 30)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            timezone=timezone,
            console_enabled=console_enabled,
            matrix_enabled=matrix_enabled,
            llm_api_key=llm_api_key,
            llm_base_url=llm_base_url,
            llm_models=llm_models,
            extra_headers=extra_headers,
            # keep read >= connect as a sane baseline
            llm_connect_timeout_seconds=connect_timeout,
            llm_read_timeout_seconds=max(read_timeout, connect_timeout),
            transcription_model=transcription_model,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_rooms=matrix_rooms,
            data_dir=data_dir,
            matrix_store_path=matrix_store_path,
            tasks_db_path=tasks_db_path,
            calendar_backend_url=calendar_backend_url,
            calendar_timeout_seconds=calendar_timeout_seconds,
            meeting_default_duration_minutes=meeting_default_duration_minutes,
            identity_cache_ttl_seconds=_env_float(_k("IDENTITY_CACHE_TTL_SECONDS"), 600.0),
            task_list_cache_ttl_seconds=_env_float(_k("TASK_LIST_CACHE_TTL_SECONDS"), 600.0),
            reply_retry_delay_seconds=_env_float(_k("REPLY_RETRY_DELAY_SECONDS"), 1.0),
            echo_ttl_seconds=_env_float(_k("ECHO_TTL_SECONDS"), 60.0),
            duplicate_threshold=_env_float(_k("DUPLICATE_THRESHOLD"), 0.3),
            shutdown_grace_seconds=_env_float(_k("SHUTDOWN_GRACE_SECONDS"), 10.0),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
