# tests/test_console_connector.py

from __future__ import annotations

import asyncio

import pytest

from taskbot.connectors.console_connector import CONSOLE_USER, run_console_loop


@pytest.mark.asyncio
async def test_exit_right_after_add_still_saves_the_task(state, monkeypatch, capsys) -> None:
    lines = iter(["add buy milk", "/exit"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(lines))

    await run_console_loop(state)

    user = await state.store.get_or_create_user(CONSOLE_USER)
    assert [t.title for t in await state.store.list_tasks(user.id)] == ["buy milk"]
    assert "Added: buy milk" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_eof_ends_the_loop(state, monkeypatch) -> None:
    def eof(prompt: str = "") -> str:
        raise EOFError

    monkeypatch.setattr("builtins.input", eof)

    await asyncio.wait_for(run_console_loop(state), timeout=5)
