"""Decide whether a Google Calendar event is a meeting with a given client.

Corporate domains are a reliable proxy for "this organization", so any
non-self participant on the client's domain counts. Popular consumer mailbox
domains are shared by millions of unrelated people; for those only the exact
client address counts.
"""

from __future__ import annotations

import re
from collections.abc import Collection
from dataclasses import dataclass
from typing import Any

from advisor_availability.models import AdvisorResponseStatus

POPULAR_FREE_EMAIL_DOMAINS: frozenset[str] = frozenset(
    {
        "live.com",
        "gmail.com",
        "mail.google.com",
        "hotmail.com",
        "mail.ru",
        "yahoo.com",
    }
)

_DOMAIN_STRIP_PATTERN = re.compile(r"[^a-z0-9.-]")


def normalize_email(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def extract_email_domain(value: Any) -> str | None:
    normalized = normalize_email(value)
    at_index = normalized.rfind("@")
    if at_index <= 0 or at_index >= len(normalized) - 1:
        return None
    domain = _DOMAIN_STRIP_PATTERN.sub("", normalized[at_index + 1 :])
    return domain or None


@dataclass(frozen=True)
class ClientIdentity:
    """Normalized client address plus the match rule derived from its domain."""

    email: str
    domain: str
    exact_match: bool

    @classmethod
    def from_email(
        cls,
        client_email: Any,
        *,
        free_email_domains: Collection[str] = POPULAR_FREE_EMAIL_DOMAINS,
    ) -> ClientIdentity | None:
        """Return ``None`` when no usable email or domain can be determined."""
        email = normalize_email(client_email)
        domain = extract_email_domain(email)
        if not email or not domain:
            return None
        return cls(email=email, domain=domain, exact_match=domain in free_email_domains)

    def matches_address(self, value: Any) -> bool:
        if self.exact_match:
            return normalize_email(value) == self.email
        return extract_email_domain(value) == self.domain


def _attendees(event: dict[str, Any]) -> list[dict[str, Any]]:
    attendees = event.get("attendees")
    if not isinstance(attendees, list):
        return []
    return [attendee for attendee in attendees if isinstance(attendee, dict)]


def _organizer(event: dict[str, Any]) -> dict[str, Any]:
    organizer = event.get("organizer")
    return organizer if isinstance(organizer, dict) else {}


def event_matches_client(event: dict[str, Any], client: ClientIdentity | None) -> bool:
    """True when a non-self attendee or a non-self organizer matches *client*."""
    if client is None:
        return False

    for attendee in _attendees(event):
        if attendee.get("self") is not True and client.matches_address(attendee.get("email")):
            return True

    organizer = _organizer(event)
    return organizer.get("self") is not True and client.matches_address(organizer.get("email"))


def normalize_response_status(raw_status: Any) -> AdvisorResponseStatus:
    if isinstance(raw_status, str) and raw_status.strip().lower() == "accepted":
        return AdvisorResponseStatus.accepted
    return AdvisorResponseStatus.pending


def derive_advisor_response_status(
    event: dict[str, Any],
    advisor_email_hint: str | None = None,
) -> AdvisorResponseStatus:
    """Resolve the advisor's RSVP for a matched meeting.

    Precedence: the self attendee, then the attendee matching the advisor
    email hint, then a self organizer (accepted), then the organizer's own
    status, then pending.
    """
    attendees = _attendees(event)

    self_attendee = next((a for a in attendees if a.get("self") is True), None)
    if self_attendee is not None and self_attendee.get("responseStatus"):
        return normalize_response_status(self_attendee["responseStatus"])

    advisor_email = normalize_email(advisor_email_hint)
    if advisor_email:
        advisor_attendee = next(
            (a for a in attendees if normalize_email(a.get("email")) == advisor_email),
            None,
        )
        if advisor_attendee is not None and advisor_attendee.get("responseStatus"):
            return normalize_response_status(advisor_attendee["responseStatus"])

    organizer = _organizer(event)
    if organizer.get("self") is True:
        return AdvisorResponseStatus.accepted

    if organizer.get("responseStatus"):
        return normalize_response_status(organizer["responseStatus"])

    return AdvisorResponseStatus.pending
