"""Split a lookup range into windows the provider will accept."""

from __future__ import annotations

import math
from datetime import timedelta

from advisor_availability.config import DEFAULT_MAX_WINDOW_DAYS
from advisor_availability.models import TimeWindow, format_rfc3339, parse_instant


def split_time_range(
    window_start_iso: str,
    window_end_iso: str,
    max_window_days: float = DEFAULT_MAX_WINDOW_DAYS,
) -> list[TimeWindow]:
    """Partition ``[start, end)`` into contiguous windows of at most *max_window_days*.

    Unparseable bounds, or an end that is not after the start, yield a single
    window carrying the raw input so the provider reports the problem.
    """
    start_at = parse_instant(window_start_iso)
    end_at = parse_instant(window_end_iso)
    if start_at is None or end_at is None or end_at <= start_at:
        return [TimeWindow(time_min=window_start_iso, time_max=window_end_iso)]

    max_window = timedelta(days=max(1, math.floor(max_window_days)))
    windows: list[TimeWindow] = []
    cursor = start_at
    while cursor < end_at:
        try:
            chunk_end = min(end_at, cursor + max_window)
        except OverflowError:
            chunk_end = end_at
        windows.append(
            TimeWindow(time_min=format_rfc3339(cursor), time_max=format_rfc3339(chunk_end))
        )
        cursor = chunk_end
    return windows
