# src/taskbot/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs the connectors in one event loop:
- console REPL (optional),
- Matrix connector (optional).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    # TaskStore uses short-lived sqlite connections per call; no explicit close required.
    for name in ("calendar", "llm"):
        closer = getattr(getattr(state, name, None), "aclose", None)
        if closer is None:
            continue
        try:
            await closer()
        except Exception:
            logger.debug("%s close failed.", name, exc_info=True)


async def _run(state: AppState) -> None:
    settings = state.settings
    stop_matrix = asyncio.Event()
    matrix_task: asyncio.Task | None = None

    if settings.matrix_enabled:
        from ..connectors.matrix_connector import run_matrix_bot

        matrix_task = asyncio.create_task(run_matrix_bot(state, stop_matrix), name="matrix")

    try:
        if settings.console_enabled:
            await run_console_loop(state)
        elif matrix_task is not None:
            logger.info("Console disabled. Running Matrix connector only. Press Ctrl+C to stop.")
            await matrix_task
        else:
            logger.warning("No connector enabled (console and Matrix are both off).")
    finally:
        if matrix_task is not None and not matrix_task.done():
            stop_matrix.set()
            matrix_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await matrix_task
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=getattr(settings, "data_dir", ".local/taskbot"), console_level=console_level)

    # keep noisy libs readable
    logging.getLogger("nio").setLevel(max(console_level, logging.INFO))
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt, shutting down...")
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
