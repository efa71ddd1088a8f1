"""Value types produced by a resolution call.

Timestamps are carried as UTC RFC 3339 strings (``...Z``) so that the
deduplication keys compare exactly what callers receive.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class AdvisorResponseStatus(StrEnum):
    """Binary RSVP state of the advisor for a client meeting."""

    accepted = "accepted"
    pending = "pending"


class TimeWindow(BaseModel):
    """Half-open ``[time_min, time_max)`` range for one provider query."""

    model_config = ConfigDict(frozen=True)

    time_min: str
    time_max: str


class BusyInterval(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_iso: str
    end_iso: str
    calendar_id: str

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.start_iso, self.end_iso, self.calendar_id)


class ClientMeeting(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    calendar_id: str
    start_iso: str
    end_iso: str
    title: str
    advisor_response_status: AdvisorResponseStatus = AdvisorResponseStatus.pending

    @property
    def dedup_key(self) -> tuple[str, str, str, str]:
        return (self.event_id, self.start_iso, self.end_iso, self.calendar_id)


class CalendarOverlay(BaseModel):
    """Classified events for a single calendar/window pair, in provider order."""

    client_meetings: list[ClientMeeting] = Field(default_factory=list)
    non_client_busy_intervals: list[BusyInterval] = Field(default_factory=list)


class LookupResult(BaseModel):
    """Deduplicated, chronologically ordered outcome of a client-meeting lookup."""

    client_meetings: list[ClientMeeting] = Field(default_factory=list)
    non_client_busy_intervals: list[BusyInterval] = Field(default_factory=list)


def format_rfc3339(value: datetime) -> str:
    normalized = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return normalized.astimezone(UTC).isoformat().replace("+00:00", "Z")


def parse_instant(value: object) -> datetime | None:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    Naive values are taken as UTC. Returns ``None`` for anything unparseable.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    normalized = value.strip()
    if normalized.endswith(("Z", "z")):
        normalized = f"{normalized[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        # Offsets can push instants near year 1 or 9999 out of range.
        return parsed.astimezone(UTC)
    except (ValueError, OverflowError):
        return None


def parse_all_day(value: object) -> datetime | None:
    """Interpret a ``YYYY-MM-DD`` all-day boundary as midnight UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = date.fromisoformat(value.strip())
    except ValueError:
        return None
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=UTC)


def sort_key(start_iso: str) -> datetime:
    parsed = parse_instant(start_iso)
    return parsed if parsed is not None else datetime.min.replace(tzinfo=UTC)
