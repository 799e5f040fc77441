# src/taskbot/calendar/client.py

"""
HTTP client for the calendar backend.

The backend owns OAuth and the Google Calendar API; this client only speaks its
small REST surface:
- GET    /api/calendar/status?user_id=...
- POST   /api/tasks/check-availability
- POST   /api/calendar/events
- GET    /api/calendar/events/{event_id}?user_id=...
- DELETE /api/calendar/events/{event_id}?user_id=...

Every failure is mapped onto one closed set of error kinds (CalendarErrorKind).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any
from urllib.parse import quote

import httpx

from .models import AvailabilitySlot, CalendarEvent, ConflictSummary, CreatedEvent

logger = logging.getLogger(__name__)


class CalendarErrorKind(StrEnum):
    PERMISSION_INSUFFICIENT = "permission_insufficient"
    NOT_FOUND = "not_found"
    TOKEN_EXPIRED = "token_expired"
    OTHER = "other"


class CalendarError(RuntimeError):
    def __init__(self, kind: CalendarErrorKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(f"{kind.value}: {message}")


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            err = err.get("message")
        if isinstance(err, str) and err.strip():
            return " ".join(err.split())[:200]

    raw = response.text.strip()
    if raw:
        return " ".join(raw.split())[:200]
    return f"Backend error: {response.status_code}"


def classify_calendar_failure(status_code: int | None, message: str) -> CalendarErrorKind:
    m = (message or "").lower()
    if status_code == 403 or "scope_upgrade_needed" in m or "insufficient" in m:
        return CalendarErrorKind.PERMISSION_INSUFFICIENT
    if status_code == 404 or status_code == 410:
        return CalendarErrorKind.NOT_FOUND
    if status_code == 401 or "invalid_grant" in m or "token expired" in m or "token has been expired" in m:
        return CalendarErrorKind.TOKEN_EXPIRED
    return CalendarErrorKind.OTHER


def _parse_dt(raw: Any) -> datetime:
    if isinstance(raw, dict):
        raw = raw.get("dateTime") or raw.get("date")
    if not isinstance(raw, str) or not raw.strip():
        raise CalendarError(CalendarErrorKind.OTHER, f"Unexpected datetime in backend payload: {raw!r}")
    dt = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat().replace("+00:00", "Z")


class CalendarBackendClient:
    """Calendar service implementation backed by the app's REST backend."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 25.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = await self._http.request(method, url, params=params, json=json_body)
        except httpx.TimeoutException as exc:
            raise CalendarError(CalendarErrorKind.OTHER, "Backend request timed out") from exc
        except httpx.HTTPError as exc:
            raise CalendarError(CalendarErrorKind.OTHER, f"Backend request failed: {exc}") from exc

        logger.debug("calendar: %s %s -> %s", method, path, response.status_code)

        if response.status_code < 200 or response.status_code >= 300:
            message = _error_message(response)
            kind = classify_calendar_failure(response.status_code, message)
            raise CalendarError(kind, message)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            payload = response.json()
        except ValueError as exc:
            raise CalendarError(CalendarErrorKind.OTHER, "Backend returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise CalendarError(CalendarErrorKind.OTHER, "Backend returned an unexpected JSON payload shape")
        return payload

    async def is_connected(self, *, user_id: int) -> bool:
        payload = await self._request("GET", "/api/calendar/status", params={"user_id": str(user_id)})
        data = payload.get("data") or {}
        return bool(data.get("connected")) and data.get("configured", True) is not False

    async def check_availability(
        self,
        *,
        user_id: int,
        start: datetime,
        duration_minutes: int,
    ) -> ConflictSummary:
        payload = await self._request(
            "POST",
            "/api/tasks/check-availability",
            json_body={"user_id": str(user_id), "due_date": _iso(start), "duration_minutes": duration_minutes},
        )
        data = payload.get("data", payload)

        requested = AvailabilitySlot(start=start, end=start + timedelta(minutes=duration_minutes))
        conflicts = tuple(
            CalendarEvent(
                event_id=c.get("id") or c.get("eventId"),
                summary=str(c.get("summary") or "(busy)"),
                start=_parse_dt(c.get("start")),
                end=_parse_dt(c.get("end")),
            )
            for c in (data.get("conflicts") or [])
        )
        alternatives = tuple(
            AvailabilitySlot(start=_parse_dt(a.get("start")), end=_parse_dt(a.get("end")))
            for a in (data.get("alternatives") or [])
        )
        return ConflictSummary(
            requested=requested,
            free=bool(data.get("free")) and not conflicts,
            conflicts=conflicts,
            alternatives=alternatives,
        )

    async def create_event(
        self,
        *,
        user_id: int,
        summary: str,
        start: datetime,
        duration_minutes: int,
        description: str | None = None,
        attendee_names: list[str] | None = None,
    ) -> CreatedEvent:
        body: dict[str, Any] = {
            "user_id": str(user_id),
            "summary": summary,
            "start": _iso(start),
            "duration_minutes": duration_minutes,
        }
        lines = [description] if description else []
        if attendee_names:
            body["attendee_names"] = list(attendee_names)
            lines.append(f"Attendees: {', '.join(attendee_names)}")
        if lines:
            body["description"] = "\n\n".join(lines)

        payload = await self._request("POST", "/api/calendar/events", json_body=body)
        data = payload.get("data") or {}
        event_id = data.get("eventId") or data.get("id")
        if not event_id:
            raise CalendarError(CalendarErrorKind.OTHER, "Backend did not return an event id")
        return CreatedEvent(event_id=str(event_id), html_link=data.get("htmlLink"))

    async def get_event(self, *, user_id: int, event_id: str) -> CalendarEvent:
        payload = await self._request(
            "GET",
            f"/api/calendar/events/{quote(event_id, safe='')}",
            params={"user_id": str(user_id)},
        )
        data = payload.get("data") or {}
        return CalendarEvent(
            event_id=str(data.get("id") or event_id),
            summary=str(data.get("summary") or ""),
            start=_parse_dt(data.get("start")),
            end=_parse_dt(data.get("end")),
        )

    async def delete_event(self, *, user_id: int, event_id: str) -> None:
        await self._request(
            "DELETE",
            f"/api/calendar/events/{quote(event_id, safe='')}",
            params={"user_id": str(user_id)},
        )
