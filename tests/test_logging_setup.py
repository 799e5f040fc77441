# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from taskbot.logging_setup import AUDIT_LOGGER, ConsoleThresholdFilter, setup_logging


@pytest.fixture()
def restore_logging():
    root = logging.getLogger()
    audit = logging.getLogger(AUDIT_LOGGER)
    saved_handlers, saved_level = list(root.handlers), root.level
    yield
    for lg in (root, audit):
        for h in list(lg.handlers):
            lg.removeHandler(h)
            h.close()
    for h in saved_handlers:
        root.addHandler(h)
    root.setLevel(saved_level)
    audit.setLevel(logging.NOTSET)
    logging.captureWarnings(False)


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.mark.parametrize(
    ("name", "level", "shown"),
    [
        ("taskbot.core.handler", logging.INFO, True),
        ("taskbot.connectors.matrix_connector", logging.INFO, False),
        ("taskbot.connectors.matrix_connector", logging.WARNING, True),
        ("taskbot.connectors.console_connector", logging.DEBUG, True),
        (AUDIT_LOGGER, logging.INFO, False),
        ("httpx", logging.WARNING, False),
        ("nio.crypto", logging.ERROR, True),
        ("py.warnings", logging.WARNING, False),
    ],
)
def test_console_thresholds(name: str, level: int, shown: bool) -> None:
    assert ConsoleThresholdFilter().filter(_record(name, level)) is shown


def test_audit_lines_get_their_own_file(tmp_path: Path, restore_logging) -> None:
    setup_logging(log_dir=tmp_path)

    logging.getLogger(AUDIT_LOGGER).info("calendar audit: deleted event=evt-9")
    logging.getLogger("taskbot.core.handler").info("handled message")
    for lg in (logging.getLogger(), logging.getLogger(AUDIT_LOGGER)):
        for h in lg.handlers:
            h.flush()

    audit_text = (tmp_path / "calendar_audit.log").read_text(encoding="utf-8")
    main_text = (tmp_path / "taskbot.log").read_text(encoding="utf-8")
    assert "deleted event=evt-9" in audit_text
    assert "handled message" not in audit_text
    # the full log keeps everything, audit lines included
    assert "deleted event=evt-9" in main_text
    assert "handled message" in main_text


def test_setup_twice_does_not_duplicate_handlers(tmp_path: Path, restore_logging) -> None:
    setup_logging(log_dir=tmp_path)
    setup_logging(log_dir=tmp_path)

    assert len(logging.getLogger().handlers) == 2
    assert len(logging.getLogger(AUDIT_LOGGER).handlers) == 1
