# src/taskbot/core/videos.py

from __future__ import annotations

import html
import logging
import re

import httpx

from ..tasks.task_models import Priority, Task
from .commands import VideoPlatform
from .ports import TaskRepo

logger = logging.getLogger(__name__)

VIDEOS_CATEGORY = "Videos"
_SUBCATEGORY = {"youtube": "YouTube", "instagram": "Instagram"}
_PREFIX = {"youtube": "[YT]", "instagram": "[IG]"}

_YT_ID_RE = re.compile(r"(?:v=|youtu\.be/|shorts/)([A-Za-z0-9_\-]+)")
_IG_CODE_RE = re.compile(r"/(?:reel|reels|p)/([A-Za-z0-9_\-]+)")

OEMBED_TIMEOUT_SECONDS = 5.0


def quick_title(url: str, platform: VideoPlatform) -> str:
    """Title derived from the URL alone (no network)."""
    if platform == "youtube":
        m = _YT_ID_RE.search(url)
        return f"YouTube Video ({m.group(1)})" if m else "YouTube Video"
    m = _IG_CODE_RE.search(url)
    return f"Instagram Reel ({m.group(1)})" if m else "Instagram Reel"


def clean_title(raw: str, max_len: int = 80) -> str:
    title = html.unescape(raw).strip()
    title = re.sub(r"\s+on Instagram:\s*", ": ", title)
    title = " ".join(title.split())
    if len(title) > max_len:
        title = title[:max_len].rstrip() + "..."
    return title


async def fetch_video_title(http: httpx.AsyncClient, url: str, platform: VideoPlatform) -> str | None:
    if platform == "youtube":
        endpoint = "https://www.youtube.com/oembed"
        params = {"url": url, "format": "json"}
    else:
        endpoint = "https://api.instagram.com/oembed"
        params = {"url": url}

    resp = await http.get(endpoint, params=params, timeout=OEMBED_TIMEOUT_SECONDS)
    if resp.status_code != 200:
        logger.debug("oEmbed %s -> %s", platform, resp.status_code)
        return None

    data = resp.json()
    if not isinstance(data, dict):
        return None
    if platform == "instagram" and data.get("author_name"):
        return clean_title(f"{data['author_name']}'s reel")
    if data.get("title"):
        return clean_title(str(data["title"]))
    return None


class VideoLibrary:
    """Video bookmarks stored as low-priority tasks under Videos/<platform>."""

    def __init__(self, store: TaskRepo, *, http: httpx.AsyncClient | None = None) -> None:
        self._store = store
        self._http = http

    async def save(self, *, user_id: int, url: str, platform: VideoPlatform) -> Task:
        category_id = await self._store.resolve_category_path(user_id, VIDEOS_CATEGORY, _SUBCATEGORY[platform])
        return await self._store.add_task(
            user_id=user_id,
            title=f"{_PREFIX[platform]} {quick_title(url, platform)}",
            description=url,
            priority=Priority.LOW,
            category_id=category_id,
        )

    async def enrich_title(self, *, task_id: int, url: str, platform: VideoPlatform) -> None:
        """Replace the quick title with the platform's title. Runs detached; failures are only logged."""
        try:
            if self._http is not None:
                title = await fetch_video_title(self._http, url, platform)
            else:
                async with httpx.AsyncClient() as http:
                    title = await fetch_video_title(http, url, platform)
            if title and title != quick_title(url, platform):
                await self._store.update_title(task_id, f"{_PREFIX[platform]} {title}")
                logger.info("Video title enriched task=%s", task_id)
        except Exception:
            logger.exception("Video title enrichment failed task=%s", task_id)

    async def list_open(self, user_id: int) -> list[Task]:
        return await self._store.list_tasks(user_id, category_name=VIDEOS_CATEGORY)
