"""Error hierarchy for availability and client-meeting lookups.

Every fatal error derives from :class:`AvailabilityError` so callers (HTTP
handlers, CLI) can translate the whole family with one ``except`` clause.
Malformed-but-recoverable provider records never surface here; they are
dropped where they are detected.
"""

from __future__ import annotations

import re

import httpx

_REDACT_KEYS = r"client_secret|refresh_token|access_token|id_token"


class AvailabilityError(RuntimeError):
    """Base error for the resolution engine."""


class ConfigurationError(AvailabilityError):
    """Raised when OAuth credentials or settings are missing or invalid."""


class UpstreamError(AvailabilityError):
    """Raised when the calendar provider rejects or garbles a request."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class UpstreamAuthError(UpstreamError):
    """Raised when the refresh-token exchange fails."""


class MalformedResponseError(UpstreamAuthError):
    """Raised when the token endpoint succeeds without a usable access_token."""


class UpstreamQueryError(UpstreamError):
    """Raised when a free/busy or events request fails."""


def redact_credentials(message: str) -> str:
    """Mask credential values in ``key=value`` and JSON ``"key": "value"`` shapes."""
    redacted = re.sub(
        rf"(?i)\b({_REDACT_KEYS})\s*=\s*([^\s&,;]+)",
        r"\1=[REDACTED]",
        message,
    )
    redacted = re.sub(
        rf"""(?i)(['"]?(?:{_REDACT_KEYS})['"]?\s*:\s*)(['"]).*?\2""",
        r'\1"[REDACTED]"',
        redacted,
    )
    return redacted


def safe_error_message(response: httpx.Response) -> str:
    """Return a short, single-line, redacted summary of an error response."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            message = error_payload.get("message")
            if isinstance(message, str) and message.strip():
                return redact_credentials(" ".join(message.split()))[:200]
        if isinstance(error_payload, str) and error_payload.strip():
            description = payload.get("error_description")
            if isinstance(description, str) and description.strip():
                error_payload = f"{error_payload}: {description}"
            return redact_credentials(" ".join(error_payload.split()))[:200]

    raw_text = response.text.strip()
    if raw_text:
        return redact_credentials(" ".join(raw_text.split()))[:200]
    return "Request failed without an error payload"
