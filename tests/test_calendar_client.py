# tests/test_calendar_client.py

from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest

from taskbot.calendar.client import (
    CalendarBackendClient,
    CalendarError,
    CalendarErrorKind,
    classify_calendar_failure,
)


def _client(handler) -> CalendarBackendClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CalendarBackendClient("https://backend.test", http_client=http)


@pytest.mark.parametrize(
    ("status", "message", "kind"),
    [
        (403, "forbidden", CalendarErrorKind.PERMISSION_INSUFFICIENT),
        (400, "SCOPE_UPGRADE_NEEDED", CalendarErrorKind.PERMISSION_INSUFFICIENT),
        (404, "not found", CalendarErrorKind.NOT_FOUND),
        (410, "deleted", CalendarErrorKind.NOT_FOUND),
        (401, "unauthorized", CalendarErrorKind.TOKEN_EXPIRED),
        (400, "invalid_grant", CalendarErrorKind.TOKEN_EXPIRED),
        (500, "boom", CalendarErrorKind.OTHER),
        (None, "connection reset", CalendarErrorKind.OTHER),
    ],
)
def test_failure_classification(status, message, kind) -> None:
    assert classify_calendar_failure(status, message) is kind


@pytest.mark.asyncio
async def test_check_availability_parses_conflicts_and_alternatives() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "data": {
                    "free": False,
                    "conflicts": [
                        {"id": "e1", "summary": "Dentist", "start": "2026-10-20T14:00:00Z", "end": "2026-10-20T15:00:00Z"}
                    ],
                    "alternatives": [{"start": "2026-10-20T15:00:00Z", "end": "2026-10-20T15:30:00Z"}],
                }
            },
        )

    start = datetime(2026, 10, 20, 14, 0, tzinfo=UTC)
    summary = await _client(handler).check_availability(user_id=7, start=start, duration_minutes=30)

    assert seen["path"] == "/api/tasks/check-availability"
    assert seen["body"] == {"user_id": "7", "due_date": "2026-10-20T14:00:00Z", "duration_minutes": 30}
    assert not summary.free
    assert summary.conflicts[0].summary == "Dentist"
    assert summary.alternatives[0].start == datetime(2026, 10, 20, 15, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_create_event_returns_event_id() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["attendee_names"] == ["Alex"]
        assert body["description"] == "Attendees: Alex"
        return httpx.Response(200, json={"success": True, "data": {"eventId": "abc", "htmlLink": "https://cal/abc"}})

    created = await _client(handler).create_event(
        user_id=1,
        summary="Sync",
        start=datetime(2026, 10, 20, 14, 0, tzinfo=UTC),
        duration_minutes=30,
        attendee_names=["Alex"],
    )
    assert created.event_id == "abc"
    assert created.html_link == "https://cal/abc"


@pytest.mark.asyncio
async def test_error_status_maps_to_kind() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "Event not found"})

    with pytest.raises(CalendarError) as exc_info:
        await _client(handler).get_event(user_id=1, event_id="gone")
    assert exc_info.value.kind is CalendarErrorKind.NOT_FOUND
    assert exc_info.value.message == "Event not found"


@pytest.mark.asyncio
async def test_transport_failure_is_other() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(CalendarError) as exc_info:
        await _client(handler).is_connected(user_id=1)
    assert exc_info.value.kind is CalendarErrorKind.OTHER
