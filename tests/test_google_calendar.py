"""Tests for the freeBusy and events.list readers."""

from __future__ import annotations

import json

import httpx
import pytest

from advisor_availability.errors import UpstreamQueryError
from advisor_availability.google_calendar import (
    EVENT_LIST_FIELDS,
    GOOGLE_CALENDAR_API_BASE_URL,
    GoogleCalendarClient,
    classify_event,
    normalize_event_time,
)
from advisor_availability.models import BusyInterval, ClientMeeting, TimeWindow
from advisor_availability.ownership import ClientIdentity

pytestmark = pytest.mark.unit

WINDOW = TimeWindow(time_min="2026-03-03T00:00:00Z", time_max="2026-03-04T00:00:00Z")
CLIENT = ClientIdentity.from_email("tito@example.com")


def _timed_event(event_id: str, start: str, end: str, **extra) -> dict:
    return {
        "id": event_id,
        "start": {"dateTime": start},
        "end": {"dateTime": end},
        **extra,
    }


class TestNormalizeEventTime:
    def test_prefers_date_time(self):
        parsed = normalize_event_time(
            {"dateTime": "2026-03-03T09:00:00-05:00", "date": "2026-03-01"}
        )
        assert parsed is not None
        assert parsed.isoformat() == "2026-03-03T14:00:00+00:00"

    def test_falls_back_to_all_day_date_at_midnight_utc(self):
        parsed = normalize_event_time({"date": "2026-03-03"})
        assert parsed is not None
        assert parsed.isoformat() == "2026-03-03T00:00:00+00:00"

    def test_falls_back_when_date_time_is_unparseable(self):
        parsed = normalize_event_time({"dateTime": "garbage", "date": "2026-03-03"})
        assert parsed is not None
        assert parsed.day == 3

    @pytest.mark.parametrize("payload", [None, {}, {"date": "03/03/2026"}, "2026-03-03"])
    def test_returns_none_when_nothing_parses(self, payload):
        assert normalize_event_time(payload) is None


class TestClassifyEvent:
    def test_client_event_becomes_meeting(self):
        event = _timed_event(
            "evt-1",
            "2026-03-03T17:00:00Z",
            "2026-03-03T17:30:00Z",
            summary="  Client Kickoff ",
            attendees=[
                {"email": "tito@example.com"},
                {"email": "advisor@firm.com", "self": True, "responseStatus": "accepted"},
            ],
        )

        assert classify_event(event, calendar_id="primary", client=CLIENT) == ClientMeeting(
            event_id="evt-1",
            calendar_id="primary",
            start_iso="2026-03-03T17:00:00Z",
            end_iso="2026-03-03T17:30:00Z",
            title="Client Kickoff",
            advisor_response_status="accepted",
        )

    def test_blank_title_defaults(self):
        event = _timed_event(
            "evt-1",
            "2026-03-03T17:00:00Z",
            "2026-03-03T17:30:00Z",
            attendees=[{"email": "tito@example.com"}],
        )
        meeting = classify_event(event, calendar_id="primary", client=CLIENT)
        assert isinstance(meeting, ClientMeeting)
        assert meeting.title == "Client meeting"

    def test_other_event_becomes_busy_interval(self):
        event = _timed_event(
            "evt-2",
            "2026-03-03T19:00:00Z",
            "2026-03-03T19:30:00Z",
            attendees=[{"email": "team@company.com"}],
        )
        assert classify_event(event, calendar_id="work", client=CLIENT) == BusyInterval(
            start_iso="2026-03-03T19:00:00Z",
            end_iso="2026-03-03T19:30:00Z",
            calendar_id="work",
        )

    @pytest.mark.parametrize(
        "extra",
        [{"status": "cancelled"}, {"transparency": "transparent"}],
    )
    def test_cancelled_and_transparent_events_are_dropped(self, extra):
        event = _timed_event(
            "evt-3",
            "2026-03-03T19:00:00Z",
            "2026-03-03T19:30:00Z",
            attendees=[{"email": "tito@example.com"}],
            **extra,
        )
        assert classify_event(event, calendar_id="primary", client=CLIENT) is None

    @pytest.mark.parametrize(
        ("start", "end"),
        [
            ("2026-03-03T19:00:00Z", "2026-03-03T19:00:00Z"),
            ("2026-03-03T19:30:00Z", "2026-03-03T19:00:00Z"),
            ("2026-03-03T19:00:00Z", "bogus"),
        ],
    )
    def test_non_positive_or_unparseable_ranges_are_dropped(self, start, end):
        event = _timed_event("evt-4", start, end)
        assert classify_event(event, calendar_id="primary", client=CLIENT) is None

    def test_out_of_range_offset_timestamp_is_dropped(self):
        event = _timed_event(
            "evt-7",
            "0001-01-01T00:00:00+01:00",
            "0001-01-01T02:00:00+01:00",
            attendees=[{"email": "tito@example.com"}],
        )
        assert classify_event(event, calendar_id="primary", client=CLIENT) is None

    def test_all_day_event_is_busy_from_midnight_utc(self):
        event = {"id": "evt-5", "start": {"date": "2026-03-03"}, "end": {"date": "2026-03-04"}}
        assert classify_event(event, calendar_id="primary", client=CLIENT) == BusyInterval(
            start_iso="2026-03-03T00:00:00Z",
            end_iso="2026-03-04T00:00:00Z",
            calendar_id="primary",
        )

    def test_no_client_identity_routes_everything_to_busy(self):
        event = _timed_event(
            "evt-6",
            "2026-03-03T17:00:00Z",
            "2026-03-03T17:30:00Z",
            attendees=[{"email": "tito@example.com"}],
        )
        assert isinstance(classify_event(event, calendar_id="primary", client=None), BusyInterval)


class TestFetchBusyIntervals:
    async def test_maps_free_busy_response(self, make_http_client):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "calendars": {
                        "team@example.com": {
                            "busy": [
                                {"start": "2026-03-03T18:00:00Z", "end": "2026-03-03T18:30:00Z"}
                            ]
                        },
                        "primary": {
                            "busy": [
                                {"start": "2026-03-03T17:00:00Z", "end": "2026-03-03T17:30:00Z"},
                                {"start": "2026-03-03T19:00:00Z"},
                                {"end": "2026-03-03T20:00:00Z"},
                                {"start": "nope", "end": "2026-03-03T20:00:00Z"},
                            ]
                        },
                    }
                },
            )

        client = GoogleCalendarClient("token", make_http_client(handler))
        busy = await client.fetch_busy_intervals(["primary", "team@example.com"], WINDOW)

        assert busy == [
            BusyInterval(
                start_iso="2026-03-03T17:00:00Z",
                end_iso="2026-03-03T17:30:00Z",
                calendar_id="primary",
            ),
            BusyInterval(
                start_iso="2026-03-03T18:00:00Z",
                end_iso="2026-03-03T18:30:00Z",
                calendar_id="team@example.com",
            ),
        ]
        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{GOOGLE_CALENDAR_API_BASE_URL}/freeBusy"
        assert request.headers["Authorization"] == "Bearer token"
        assert json.loads(request.content) == {
            "timeMin": "2026-03-03T00:00:00Z",
            "timeMax": "2026-03-04T00:00:00Z",
            "items": [{"id": "primary"}, {"id": "team@example.com"}],
        }

    async def test_out_of_range_busy_entries_are_skipped(self, make_http_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "calendars": {
                        "primary": {
                            "busy": [
                                {
                                    "start": "0001-01-01T00:00:00+01:00",
                                    "end": "2026-03-03T09:00:00Z",
                                },
                                {"start": "2026-03-03T09:00:00Z", "end": "2026-03-03T10:00:00Z"},
                            ]
                        }
                    }
                },
            )

        client = GoogleCalendarClient("token", make_http_client(handler))
        assert await client.fetch_busy_intervals(["primary"], WINDOW) == [
            BusyInterval(
                start_iso="2026-03-03T09:00:00Z",
                end_iso="2026-03-03T10:00:00Z",
                calendar_id="primary",
            )
        ]

    async def test_missing_calendars_object_yields_no_intervals(self, make_http_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"kind": "calendar#freeBusy"})

        client = GoogleCalendarClient("token", make_http_client(handler))
        assert await client.fetch_busy_intervals(["primary"], WINDOW) == []

    async def test_error_status_raises_query_error(self, make_http_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "timeRangeTooLong"}})

        client = GoogleCalendarClient("token", make_http_client(handler))
        with pytest.raises(UpstreamQueryError, match=r"freeBusy.*\(400\).*timeRangeTooLong") as exc:
            await client.fetch_busy_intervals(["primary"], WINDOW)

        assert exc.value.status_code == 400
        assert "timeRangeTooLong" in exc.value.body


class TestFetchCalendarEvents:
    async def test_follows_pagination_and_projects_fields(self, make_http_client):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if "pageToken" not in request.url.params:
                return httpx.Response(
                    200,
                    json={
                        "items": [
                            _timed_event(
                                "evt-1",
                                "2026-03-03T17:00:00Z",
                                "2026-03-03T17:30:00Z",
                                attendees=[{"email": "tito@example.com"}],
                            )
                        ],
                        "nextPageToken": "page-2",
                    },
                )
            return httpx.Response(
                200,
                json={
                    "items": [
                        _timed_event("evt-2", "2026-03-03T18:00:00Z", "2026-03-03T18:30:00Z"),
                        _timed_event(
                            "evt-3",
                            "2026-03-03T19:00:00Z",
                            "2026-03-03T19:30:00Z",
                            status="cancelled",
                        ),
                        "not-an-event",
                    ]
                },
            )

        client = GoogleCalendarClient("token", make_http_client(handler), page_size=50)
        overlay = await client.fetch_calendar_events(
            "team@example.com", WINDOW, client=CLIENT, advisor_email_hint=None
        )

        assert [meeting.event_id for meeting in overlay.client_meetings] == ["evt-1"]
        assert overlay.non_client_busy_intervals == [
            BusyInterval(
                start_iso="2026-03-03T18:00:00Z",
                end_iso="2026-03-03T18:30:00Z",
                calendar_id="team@example.com",
            )
        ]

        assert len(requests) == 2
        first, second = requests
        assert "/calendars/team%40example.com/events" in str(first.url)
        assert first.url.params["timeMin"] == WINDOW.time_min
        assert first.url.params["timeMax"] == WINDOW.time_max
        assert first.url.params["singleEvents"] == "true"
        assert first.url.params["orderBy"] == "startTime"
        assert first.url.params["showDeleted"] == "false"
        assert first.url.params["maxResults"] == "50"
        assert first.url.params["fields"] == EVENT_LIST_FIELDS
        assert "organizer(email,self)" in first.url.params["fields"]
        assert second.url.params["pageToken"] == "page-2"

    async def test_error_status_raises_query_error(self, make_http_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="Not Found")

        client = GoogleCalendarClient("token", make_http_client(handler))
        with pytest.raises(UpstreamQueryError, match=r"events.*\(404\)") as exc:
            await client.fetch_calendar_events("missing", WINDOW, client=CLIENT)

        assert exc.value.status_code == 404
        assert exc.value.body == "Not Found"

    async def test_invalid_json_raises_query_error(self, make_http_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="not json")

        client = GoogleCalendarClient("token", make_http_client(handler))
        with pytest.raises(UpstreamQueryError, match="invalid JSON"):
            await client.fetch_calendar_events("primary", WINDOW, client=CLIENT)
