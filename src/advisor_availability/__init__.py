"""Advisor availability and client-meeting lookup over Google Calendar."""

from advisor_availability.config import LookupSettings, OAuthConfig
from advisor_availability.errors import (
    AvailabilityError,
    ConfigurationError,
    MalformedResponseError,
    UpstreamAuthError,
    UpstreamQueryError,
)
from advisor_availability.models import (
    AdvisorResponseStatus,
    BusyInterval,
    ClientMeeting,
    LookupResult,
    TimeWindow,
)
from advisor_availability.resolver import lookup_busy_intervals, lookup_client_meetings
from advisor_availability.windows import split_time_range

__all__ = [
    "AdvisorResponseStatus",
    "AvailabilityError",
    "BusyInterval",
    "ClientMeeting",
    "ConfigurationError",
    "LookupResult",
    "LookupSettings",
    "MalformedResponseError",
    "OAuthConfig",
    "TimeWindow",
    "UpstreamAuthError",
    "UpstreamQueryError",
    "lookup_busy_intervals",
    "lookup_client_meetings",
    "split_time_range",
]
