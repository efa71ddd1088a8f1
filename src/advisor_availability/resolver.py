"""Public lookups: client meetings and busy intervals over an arbitrary range.

Both operations exchange the refresh token once, split the range into
provider-sized windows, query every ``(window, calendar)`` pair, and only
then deduplicate and sort. Any upstream failure aborts the whole lookup.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import TypeVar

import httpx
from opentelemetry import trace

from advisor_availability.config import LookupSettings, OAuthConfig
from advisor_availability.google_calendar import GoogleCalendarClient
from advisor_availability.logging import reset_lookup_context, set_lookup_context
from advisor_availability.models import (
    BusyInterval,
    CalendarOverlay,
    ClientMeeting,
    LookupResult,
    sort_key,
)
from advisor_availability.oauth import exchange_refresh_token
from advisor_availability.ownership import ClientIdentity
from advisor_availability.windows import split_time_range

logger = logging.getLogger(__name__)

_TRACER_NAME = "advisor_availability"

T = TypeVar("T")


@asynccontextmanager
async def _http_client_scope(
    http_client: httpx.AsyncClient | None,
    settings: LookupSettings,
) -> AsyncIterator[httpx.AsyncClient]:
    if http_client is not None:
        yield http_client
        return
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as owned_client:
        yield owned_client


async def _run_all(
    factories: Sequence[Callable[[], Awaitable[T]]],
    max_concurrent_requests: int,
) -> list[T]:
    """Run fetches and return results in submission order.

    With a limit of 1 the fetches run one after another. Otherwise they run
    under a semaphore; the first failure cancels the rest and propagates.
    """
    if max_concurrent_requests <= 1:
        return [await factory() for factory in factories]

    semaphore = asyncio.Semaphore(max_concurrent_requests)

    async def _bounded(factory: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            return await factory()

    tasks = [asyncio.ensure_future(_bounded(factory)) for factory in factories]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def merge_overlays(overlays: Sequence[CalendarOverlay]) -> LookupResult:
    """Deduplicate (first occurrence wins) and order by start time."""
    meetings: dict[tuple[str, str, str, str], ClientMeeting] = {}
    busy: dict[tuple[str, str, str], BusyInterval] = {}
    for overlay in overlays:
        for meeting in overlay.client_meetings:
            meetings.setdefault(meeting.dedup_key, meeting)
        for interval in overlay.non_client_busy_intervals:
            busy.setdefault(interval.dedup_key, interval)

    return LookupResult(
        client_meetings=sorted(meetings.values(), key=lambda m: sort_key(m.start_iso)),
        non_client_busy_intervals=sorted(busy.values(), key=lambda b: sort_key(b.start_iso)),
    )


def merge_busy_intervals(chunks: Sequence[Sequence[BusyInterval]]) -> list[BusyInterval]:
    busy: dict[tuple[str, str, str], BusyInterval] = {}
    for chunk in chunks:
        for interval in chunk:
            busy.setdefault(interval.dedup_key, interval)
    return sorted(busy.values(), key=lambda b: sort_key(b.start_iso))


async def lookup_client_meetings(
    oauth_config: OAuthConfig,
    window_start_iso: str,
    window_end_iso: str,
    client_email: str | None,
    *,
    advisor_email_hint: str | None = None,
    http_client: httpx.AsyncClient | None = None,
    settings: LookupSettings | None = None,
) -> LookupResult:
    """Split the advisor's events in range into this client's meetings and other busy time.

    Returns an empty result, without any network call, when *client_email*
    carries no usable address or domain.
    """
    settings = settings or LookupSettings()
    client = ClientIdentity.from_email(
        client_email, free_email_domains=settings.free_email_domains
    )
    if client is None:
        logger.info("Client email has no usable domain; skipping client-meeting lookup")
        return LookupResult()

    context_token = set_lookup_context(uuid.uuid4().hex)
    tracer = trace.get_tracer(_TRACER_NAME)
    try:
        with tracer.start_as_current_span("availability.lookup_client_meetings") as span:
            windows = split_time_range(
                window_start_iso, window_end_iso, settings.max_window_days
            )
            span.set_attribute("availability.window_count", len(windows))
            span.set_attribute("availability.calendar_count", len(oauth_config.calendar_ids))
            span.set_attribute("availability.exact_match", client.exact_match)

            async with _http_client_scope(http_client, settings) as client_http:
                access_token = await exchange_refresh_token(oauth_config, client_http)
                calendar = GoogleCalendarClient(
                    access_token, client_http, page_size=settings.page_size
                )
                factories = [
                    functools.partial(
                        calendar.fetch_calendar_events,
                        calendar_id,
                        window,
                        client=client,
                        advisor_email_hint=advisor_email_hint,
                    )
                    for window in windows
                    for calendar_id in oauth_config.calendar_ids
                ]
                overlays = await _run_all(factories, settings.max_concurrent_requests)

            result = merge_overlays(overlays)
            logger.info(
                "Resolved %d client meeting(s) and %d other busy interval(s) "
                "across %d window(s) and %d calendar(s)",
                len(result.client_meetings),
                len(result.non_client_busy_intervals),
                len(windows),
                len(oauth_config.calendar_ids),
            )
            return result
    finally:
        reset_lookup_context(context_token)


async def lookup_busy_intervals(
    oauth_config: OAuthConfig,
    window_start_iso: str,
    window_end_iso: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    settings: LookupSettings | None = None,
) -> list[BusyInterval]:
    """Return the advisor's busy intervals in range from the freeBusy endpoint."""
    settings = settings or LookupSettings()
    context_token = set_lookup_context(uuid.uuid4().hex)
    tracer = trace.get_tracer(_TRACER_NAME)
    try:
        with tracer.start_as_current_span("availability.lookup_busy_intervals") as span:
            windows = split_time_range(
                window_start_iso, window_end_iso, settings.max_window_days
            )
            span.set_attribute("availability.window_count", len(windows))
            span.set_attribute("availability.calendar_count", len(oauth_config.calendar_ids))

            async with _http_client_scope(http_client, settings) as client_http:
                access_token = await exchange_refresh_token(oauth_config, client_http)
                calendar = GoogleCalendarClient(
                    access_token, client_http, page_size=settings.page_size
                )
                factories = [
                    functools.partial(
                        calendar.fetch_busy_intervals, oauth_config.calendar_ids, window
                    )
                    for window in windows
                ]
                chunks = await _run_all(factories, settings.max_concurrent_requests)

            intervals = merge_busy_intervals(chunks)
            logger.info(
                "Resolved %d busy interval(s) across %d window(s)",
                len(intervals),
                len(windows),
            )
            return intervals
    finally:
        reset_lookup_context(context_token)
