# src/taskbot/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Remote calendar deletions are written here (and to the main log).
AUDIT_LOGGER = "taskbot.audit"

# First matching prefix wins; anything unlisted reaches the console only at ERROR.
_CONSOLE_THRESHOLDS: tuple[tuple[str, int], ...] = (
    ("taskbot.connectors.matrix_", logging.WARNING),  # sync chatter
    (AUDIT_LOGGER, logging.WARNING),  # audit lines live in their own file
    ("taskbot.", logging.NOTSET),
)

_FORMAT = logging.Formatter(
    fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


class ConsoleThresholdFilter(logging.Filter):
    def __init__(
        self,
        thresholds: tuple[tuple[str, int], ...] = _CONSOLE_THRESHOLDS,
        default: int = logging.ERROR,
    ) -> None:
        super().__init__()
        self._thresholds = thresholds
        self._default = default

    def filter(self, record: logging.LogRecord) -> bool:
        for prefix, level in self._thresholds:
            if record.name == prefix or record.name.startswith(prefix):
                return record.levelno >= level
        return record.levelno >= self._default


def _file_handler(path: Path, level: int) -> logging.FileHandler:
    fh = logging.FileHandler(str(path), encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(_FORMAT)
    return fh


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskbot",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Console (filtered per source) + full debug log `taskbot.log` + `calendar_audit.log`.

    Safe to call again: handlers installed by an earlier call are replaced.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    audit = logging.getLogger(AUDIT_LOGGER)
    for lg in (root, audit):
        for h in list(lg.handlers):
            lg.removeHandler(h)
            h.close()

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(_FORMAT)
    ch.addFilter(ConsoleThresholdFilter())
    root.addHandler(ch)
    root.addHandler(_file_handler(log_dir / "taskbot.log", file_level))

    audit.setLevel(logging.INFO)
    audit.addHandler(_file_handler(log_dir / "calendar_audit.log", logging.INFO))

    # warnings.warn(...) shows up as 'py.warnings' and is filtered like third-party noise
    logging.captureWarnings(True)
