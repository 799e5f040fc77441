# src/taskbot/connectors/matrix_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import time

from nio import (
    AsyncClient,
    DownloadResponse,
    MatrixRoom,
    RoomEncryptedAudio,
    RoomMessageAudio,
    RoomMessageText,
    RoomSendResponse,
)
from nio.crypto.attachments import decrypt_attachment

from ..core.handler import IncomingMessage, MessageHandler
from ..core.state import AppState
from .matrix_client import create_matrix_client

logger = logging.getLogger(__name__)


def _ms_now() -> int:
    return int(time.time() * 1000)


def _room_allowlist(settings_rooms: list[str]) -> set[str] | None:
    rooms = [r.strip() for r in (settings_rooms or []) if str(r).strip()]
    return set(rooms) if rooms else None


class MatrixTransport:
    """Sends plain-text replies into a room; the reply target is the room id."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    @property
    def self_id(self) -> str:
        return str(self._client.user_id)

    async def send_text(self, *, target: str, text: str) -> str | None:
        resp = await self._client.room_send(
            room_id=target,
            message_type="m.room.message",
            content={"msgtype": "m.text", "body": text},
            ignore_unverified_devices=True,
        )
        if not isinstance(resp, RoomSendResponse):
            raise RuntimeError(f"room_send to {target} failed: {resp!r}")
        return resp.event_id


async def _download_audio(client: AsyncClient, event: RoomMessageAudio | RoomEncryptedAudio) -> bytes:
    resp = await client.download(mxc=event.url)
    if not isinstance(resp, DownloadResponse):
        raise RuntimeError(f"audio download failed: {resp!r}")
    if isinstance(event, RoomEncryptedAudio):
        return decrypt_attachment(resp.body, event.key["k"], event.hashes["sha256"], event.iv)
    return resp.body


async def run_matrix_bot(state: AppState, stop_event: asyncio.Event) -> None:
    """
    Matrix connector: init -> callbacks -> manual sync loop until stop_event is set.

    Every inbound message becomes its own asyncio task; ordering per user is
    enforced inside MessageHandler by the conversation lanes.
    """
    settings = state.settings
    startup_ts = _ms_now()
    allowed_rooms = _room_allowlist(getattr(settings, "matrix_rooms", []) or [])
    logger.info("Matrix allowed_rooms=%s", allowed_rooms if allowed_rooms is not None else "ALL")

    client = await create_matrix_client(settings)
    if client is None:
        logger.error("Matrix client creation failed; connector will stop.")
        return

    handler = MessageHandler(state, MatrixTransport(client))
    inflight: set[asyncio.Task] = set()

    def accept(room: MatrixRoom, event) -> bool:
        ts = getattr(event, "server_timestamp", None)
        if ts is not None and ts <= startup_ts:
            return False
        if event.sender == client.user_id:
            return False
        if allowed_rooms is not None and room.room_id not in allowed_rooms:
            return False
        if state.sent_tracker.is_tracked(getattr(event, "event_id", None)):
            logger.debug("Skipping echo of our own message %s", event.event_id)
            return False
        return True

    def submit(msg: IncomingMessage) -> None:
        task = asyncio.create_task(handler.handle(msg))
        inflight.add(task)
        task.add_done_callback(inflight.discard)

    async def on_text(room: MatrixRoom, event: RoomMessageText) -> None:
        if not accept(room, event):
            return
        body = (event.body or "").strip()
        if not body:
            return
        logger.info("Matrix <%s> %s: %r", room.display_name, event.sender, body[:80])
        submit(
            IncomingMessage(
                sender_id=event.sender,
                text=body,
                reply_to=room.room_id,
                display_name=room.user_name(event.sender),
                message_id=event.event_id,
            )
        )

    async def on_audio(room: MatrixRoom, event: RoomMessageAudio | RoomEncryptedAudio) -> None:
        if not accept(room, event):
            return
        logger.info("Matrix <%s> %s: voice note", room.display_name, event.sender)
        try:
            audio = await _download_audio(client, event)
            text = await state.llm.transcribe_audio(audio, filename=event.body or "voice.ogg")
        except Exception:
            logger.exception("Voice note from %s could not be transcribed", event.sender)
            text = ""
        submit(
            IncomingMessage(
                sender_id=event.sender,
                text=text,
                is_voice=True,
                reply_to=room.room_id,
                display_name=room.user_name(event.sender),
                message_id=event.event_id,
            )
        )

    client.add_event_callback(on_text, RoomMessageText)
    client.add_event_callback(on_audio, (RoomMessageAudio, RoomEncryptedAudio))

    try:
        logger.info("Matrix initial sync...")
        await client.sync(timeout=30000, full_state=True)
        logger.info("Matrix initial sync done. Joined rooms: %d", len(client.rooms))

        while not stop_event.is_set():
            await client.sync(timeout=30000, full_state=False)
    except asyncio.CancelledError:
        logger.info("Matrix connector cancelled.")
    except Exception:
        logger.exception("Matrix connector crashed.")
    finally:
        grace = float(getattr(state.settings, "shutdown_grace_seconds", 10.0))
        if inflight:
            await asyncio.wait(inflight, timeout=grace)
        await handler.drain(grace)
        with contextlib.suppress(Exception):
            await client.close()
        logger.info("Matrix connector stopped.")
