"""Read-only Google Calendar v3 queries: freeBusy and events.list."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from advisor_availability.config import DEFAULT_PAGE_SIZE
from advisor_availability.errors import UpstreamQueryError, safe_error_message
from advisor_availability.models import (
    BusyInterval,
    CalendarOverlay,
    ClientMeeting,
    TimeWindow,
    format_rfc3339,
    parse_all_day,
    parse_instant,
    sort_key,
)
from advisor_availability.ownership import (
    ClientIdentity,
    derive_advisor_response_status,
    event_matches_client,
)

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
# Server-side projection: only what classification needs.
EVENT_LIST_FIELDS = (
    "items(id,summary,start,end,status,transparency,"
    "attendees(email,responseStatus,self),organizer(email,self)),nextPageToken"
)
DEFAULT_MEETING_TITLE = "Client meeting"


def normalize_event_time(payload: Any) -> datetime | None:
    """Prefer ``dateTime``; fall back to an all-day ``date`` at midnight UTC."""
    if not isinstance(payload, dict):
        return None
    timed = parse_instant(payload.get("dateTime"))
    if timed is not None:
        return timed
    return parse_all_day(payload.get("date"))


def _meeting_title(summary: Any) -> str:
    if isinstance(summary, str) and summary.strip():
        return summary.strip()
    return DEFAULT_MEETING_TITLE


def classify_event(
    event: dict[str, Any],
    *,
    calendar_id: str,
    client: ClientIdentity | None,
    advisor_email_hint: str | None = None,
) -> ClientMeeting | BusyInterval | None:
    """Map one events.list item to a meeting, a busy interval, or ``None`` (skipped)."""
    if event.get("status") == "cancelled" or event.get("transparency") == "transparent":
        return None

    start_at = normalize_event_time(event.get("start"))
    end_at = normalize_event_time(event.get("end"))
    if start_at is None or end_at is None or end_at <= start_at:
        return None

    start_iso = format_rfc3339(start_at)
    end_iso = format_rfc3339(end_at)
    if event_matches_client(event, client):
        event_id = event.get("id")
        return ClientMeeting(
            event_id=str(event_id) if event_id is not None else "",
            calendar_id=calendar_id,
            start_iso=start_iso,
            end_iso=end_iso,
            title=_meeting_title(event.get("summary")),
            advisor_response_status=derive_advisor_response_status(event, advisor_email_hint),
        )
    return BusyInterval(start_iso=start_iso, end_iso=end_iso, calendar_id=calendar_id)


class GoogleCalendarClient:
    """Bearer-authenticated reader bound to one access token."""

    def __init__(
        self,
        access_token: str,
        http_client: httpx.AsyncClient,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._access_token = access_token
        self._http_client = http_client
        self._page_size = max(1, min(page_size, DEFAULT_PAGE_SIZE))

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{GOOGLE_CALENDAR_API_BASE_URL}{path}"
        try:
            response = await self._http_client.request(
                method,
                url,
                params=params,
                json=json_body,
                headers={"Authorization": f"Bearer {self._access_token}"},
            )
        except httpx.HTTPError as exc:
            raise UpstreamQueryError(f"Google {operation} request failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise UpstreamQueryError(
                f"Google {operation} request failed "
                f"({response.status_code}): {safe_error_message(response)}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamQueryError(
                f"Google {operation} returned invalid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        if not isinstance(payload, dict):
            raise UpstreamQueryError(
                f"Google {operation} returned an unexpected JSON payload shape",
                status_code=response.status_code,
                body=response.text,
            )
        return payload

    async def fetch_busy_intervals(
        self,
        calendar_ids: list[str] | tuple[str, ...],
        window: TimeWindow,
    ) -> list[BusyInterval]:
        """One freeBusy call covering every calendar for *window*."""
        payload = await self._request_json(
            "POST",
            "/freeBusy",
            operation="freeBusy",
            json_body={
                "timeMin": window.time_min,
                "timeMax": window.time_max,
                "items": [{"id": calendar_id} for calendar_id in calendar_ids],
            },
        )

        calendars = payload.get("calendars")
        if not isinstance(calendars, dict):
            calendars = {}

        intervals: list[BusyInterval] = []
        skipped = 0
        for calendar_id, calendar_payload in calendars.items():
            busy_entries = (
                calendar_payload.get("busy") if isinstance(calendar_payload, dict) else None
            )
            if not isinstance(busy_entries, list):
                continue
            for entry in busy_entries:
                start_at = parse_instant(entry.get("start")) if isinstance(entry, dict) else None
                end_at = parse_instant(entry.get("end")) if isinstance(entry, dict) else None
                if start_at is None or end_at is None:
                    skipped += 1
                    continue
                intervals.append(
                    BusyInterval(
                        start_iso=format_rfc3339(start_at),
                        end_iso=format_rfc3339(end_at),
                        calendar_id=str(calendar_id),
                    )
                )

        if skipped:
            logger.debug("Skipped %d malformed freeBusy entries", skipped)
        intervals.sort(key=lambda interval: sort_key(interval.start_iso))
        return intervals

    async def fetch_calendar_events(
        self,
        calendar_id: str,
        window: TimeWindow,
        *,
        client: ClientIdentity | None,
        advisor_email_hint: str | None = None,
    ) -> CalendarOverlay:
        """Page through events.list for one calendar and classify each event."""
        overlay = CalendarOverlay()
        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        page_token: str | None = None
        pages = 0

        while True:
            params: dict[str, Any] = {
                "timeMin": window.time_min,
                "timeMax": window.time_max,
                "singleEvents": "true",
                "orderBy": "startTime",
                "showDeleted": "false",
                "maxResults": str(self._page_size),
                "fields": EVENT_LIST_FIELDS,
            }
            if page_token:
                params["pageToken"] = page_token

            payload = await self._request_json("GET", path, operation="events", params=params)
            pages += 1

            items = payload.get("items")
            for item in items if isinstance(items, list) else []:
                if not isinstance(item, dict):
                    continue
                classified = classify_event(
                    item,
                    calendar_id=calendar_id,
                    client=client,
                    advisor_email_hint=advisor_email_hint,
                )
                if isinstance(classified, ClientMeeting):
                    overlay.client_meetings.append(classified)
                elif isinstance(classified, BusyInterval):
                    overlay.non_client_busy_intervals.append(classified)

            next_token = payload.get("nextPageToken")
            page_token = next_token if isinstance(next_token, str) and next_token else None
            if page_token is None:
                break

        logger.debug(
            "Fetched %d page(s) for calendar %s: %d client meeting(s), %d busy interval(s)",
            pages,
            calendar_id,
            len(overlay.client_meetings),
            len(overlay.non_client_busy_intervals),
        )
        return overlay
