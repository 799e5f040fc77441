# src/taskbot/connectors/matrix_client.py

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from nio import AsyncClient, AsyncClientConfig, LoginResponse
from nio.crypto import ENCRYPTION_ENABLED

logger = logging.getLogger(__name__)


def _read_session(path: Path) -> dict[str, str]:
    data: Any = json.loads(path.read_text("utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Expected JSON object")
    missing = [k for k in ("access_token", "user_id", "device_id") if not data.get(k)]
    if missing:
        raise ValueError(f"session.json is missing {', '.join(missing)}")
    return {k: str(data[k]) for k in ("access_token", "user_id", "device_id")}


def _write_session(path: Path, resp: LoginResponse) -> None:
    tmp = path.with_suffix(".tmp")
    payload = {"access_token": resp.access_token, "user_id": resp.user_id, "device_id": resp.device_id}
    tmp.write_text(json.dumps(payload), "utf-8")
    os.replace(tmp, path)
    try:
        os.chmod(path, 0o600)
    except OSError:
        logger.debug("chmod on %s not supported", path)


async def create_matrix_client(settings) -> AsyncClient | None:
    """
    Build a logged-in AsyncClient for the bot account.

    The access token and device id are kept in <matrix_store_path>/session.json so
    restarts reuse the same device. The password is only needed once, to create it.
    """
    homeserver = (getattr(settings, "matrix_homeserver", "") or "").strip()
    user_id = (getattr(settings, "matrix_user_id", "") or "").strip()
    password = (getattr(settings, "matrix_password", "") or "").strip()
    store_dir = Path(getattr(settings, "matrix_store_path", Path(".local/taskbot/matrix_store")))

    if not homeserver or not user_id:
        logger.error("Matrix is not configured: set TASKBOT_MATRIX_HOMESERVER and TASKBOT_MATRIX_USER_ID")
        return None

    store_dir.mkdir(parents=True, exist_ok=True)
    session_file = store_dir / "session.json"

    if ENCRYPTION_ENABLED:
        logger.info("matrix-nio built with E2EE support")
    else:
        logger.warning("matrix-nio E2EE dependencies missing: encrypted rooms will not work")

    client = AsyncClient(
        homeserver,
        user_id,
        store_path=str(store_dir) if ENCRYPTION_ENABLED else None,
        config=AsyncClientConfig(encryption_enabled=ENCRYPTION_ENABLED, store_sync_tokens=True),
    )

    if session_file.exists():
        try:
            session = _read_session(session_file)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable %s, will log in with password: %r", session_file, e)
        else:
            client.access_token = session["access_token"]
            client.user_id = session["user_id"]
            client.device_id = session["device_id"]
            if ENCRYPTION_ENABLED:
                try:
                    client.load_store()
                except Exception as e:
                    logger.warning("Failed to load E2EE store: %r", e)
            logger.info("Matrix session restored for %s", client.user_id)
            return client

    if not password:
        logger.error("No Matrix session.json and no password. Set TASKBOT_MATRIX_PASSWORD once to log in.")
        await client.close()
        return None

    device_name = f"{getattr(settings, 'app_name', 'taskbot')} (Python)"
    logger.info("Logging in to Matrix (device_name=%r)...", device_name)
    resp = await client.login(password=password, device_name=device_name)
    if not isinstance(resp, LoginResponse):
        logger.error("Matrix login failed: %r", resp)
        await client.close()
        return None

    try:
        _write_session(session_file, resp)
        logger.info("Matrix session saved to %s (user=%s)", session_file, resp.user_id)
    except OSError as e:
        logger.error("Failed to write %s: %r", session_file, e)

    return client
