# src/taskbot/connectors/console_connector.py

from __future__ import annotations

import asyncio
import itertools
import logging
import sys
from datetime import datetime

from ..core.handler import IncomingMessage, MessageHandler
from ..core.state import AppState

logger = logging.getLogger(__name__)

CONSOLE_USER = "console:local"


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


class ConsoleTransport:
    """Prints replies to stdout. Replies from background units show up between prompts."""

    def __init__(self, app_name: str = "taskbot") -> None:
        self._app_name = app_name
        self._ids = itertools.count(1)

    @property
    def self_id(self) -> str:
        return f"console:{self._app_name}"

    async def send_text(self, *, target: str, text: str) -> str | None:
        print(f"[{_ts_local()}] <<< {self._app_name}: {text}\n", flush=True)
        return f"console-{next(self._ids)}"


async def run_console_loop(state: AppState) -> None:
    app_name = str(getattr(state.settings, "app_name", "taskbot"))
    handler = MessageHandler(state, ConsoleTransport(app_name))

    logger.info("Console connector started.")
    print(f"[{_ts_local()}] [CONSOLE] Type your messages. Send 'help' for commands. Use /exit to quit.\n")

    while True:
        try:
            user_input = (await asyncio.to_thread(input, ">>> You: ")).strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> You: {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        await handler.handle(IncomingMessage(sender_id=CONSOLE_USER, text=user_input, display_name="console"))

    await handler.drain(float(getattr(state.settings, "shutdown_grace_seconds", 10.0)))
    logger.info("Console connector finished.")
