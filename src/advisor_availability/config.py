"""OAuth credential parsing and lookup settings.

``OAuthConfig`` is parsed from the stored Google provider secret (JSON) or from
environment variables. ``LookupSettings`` comes from an optional TOML file with
an ``[availability]`` section. ``${VAR_NAME}`` references inside that section
are expanded from the environment before its values are validated.
"""

from __future__ import annotations

import json
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from advisor_availability.errors import ConfigurationError
from advisor_availability.ownership import POPULAR_FREE_EMAIL_DOMAINS

DEFAULT_CALENDAR_ID = "primary"
# Google freeBusy rejects ranges longer than roughly three months.
DEFAULT_MAX_WINDOW_DAYS = 85
# Upper bound accepted by events.list maxResults.
DEFAULT_PAGE_SIZE = 2500
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

ENV_CLIENT_ID = "GOOGLE_OAUTH_CLIENT_ID"
ENV_CLIENT_SECRET = "GOOGLE_OAUTH_CLIENT_SECRET"
ENV_REFRESH_TOKEN = "GOOGLE_REFRESH_TOKEN"
ENV_CALENDAR_IDS = "GOOGLE_CALENDAR_IDS"

_REQUIRED_FIELDS = ("client_id", "client_secret", "refresh_token")
_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_VALID_LOG_FORMATS = {"text", "json"}


class OAuthConfig(BaseModel):
    """Google OAuth client credentials plus the calendars to inspect.

    Invalid field values raise ``ConfigurationError`` whether the config is
    built directly or through one of the ``from_*`` parsers.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)
    calendar_ids: tuple[str, ...] = (DEFAULT_CALENDAR_ID,)

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
                for error in exc.errors()
            )
            raise ConfigurationError(f"Invalid Google OAuth config: {problems}") from exc

    @field_validator("client_id", "client_secret", "refresh_token")
    @classmethod
    def _normalize_non_empty(cls, value: str, info: ValidationInfo) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be a non-empty string")
        return normalized

    @field_validator("calendar_ids", mode="before")
    @classmethod
    def _normalize_calendar_ids(cls, value: Any) -> tuple[str, ...]:
        return _coerce_calendar_ids(value)

    @classmethod
    def from_json(cls, raw_value: str | None) -> OAuthConfig:
        """Parse the stored provider secret.

        Raises ``ConfigurationError`` naming every missing or blank required field.
        """
        if not isinstance(raw_value, str) or not raw_value.strip():
            raise ConfigurationError("Google OAuth secret is empty")

        try:
            payload = json.loads(raw_value)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Google OAuth secret must be valid JSON: {exc.msg}") from exc

        if not isinstance(payload, dict):
            raise ConfigurationError("Google OAuth secret must decode to a JSON object")

        return cls.from_mapping(payload)

    @classmethod
    def from_mapping(cls, payload: dict[str, Any]) -> OAuthConfig:
        values = {key: _extract_credential_value(payload, key) for key in _REQUIRED_FIELDS}
        _ensure_required(values)
        return cls(
            client_id=values["client_id"],
            client_secret=values["client_secret"],
            refresh_token=values["refresh_token"],
            calendar_ids=payload.get("calendar_ids"),
        )

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> OAuthConfig:
        env = os.environ if environ is None else environ
        values = {
            "client_id": env.get(ENV_CLIENT_ID),
            "client_secret": env.get(ENV_CLIENT_SECRET),
            "refresh_token": env.get(ENV_REFRESH_TOKEN),
        }
        missing = sorted(
            name
            for key, name in zip(
                _REQUIRED_FIELDS,
                (ENV_CLIENT_ID, ENV_CLIENT_SECRET, ENV_REFRESH_TOKEN),
                strict=True,
            )
            if not isinstance(values[key], str) or not values[key].strip()
        )
        if missing:
            raise ConfigurationError(
                f"Missing required Google OAuth environment variable(s): {', '.join(missing)}"
            )
        raw_calendar_ids = env.get(ENV_CALENDAR_IDS, "")
        return cls(
            client_id=values["client_id"],
            client_secret=values["client_secret"],
            refresh_token=values["refresh_token"],
            calendar_ids=raw_calendar_ids.split(","),
        )


def _extract_credential_value(payload: dict[str, Any], key: str) -> Any:
    if key in payload:
        return payload[key]

    # Client-secret files downloaded from the Google console nest fields here.
    for nested_key in ("installed", "web"):
        nested = payload.get(nested_key)
        if isinstance(nested, dict) and key in nested:
            return nested[key]
    return None


def _ensure_required(values: dict[str, Any]) -> None:
    missing = sorted(key for key, value in values.items() if value is None)
    if missing:
        raise ConfigurationError(
            f"Missing required Google OAuth field(s): {', '.join(missing)}"
        )

    invalid = sorted(
        key
        for key, value in values.items()
        if not isinstance(value, str) or not value.strip()
    )
    if invalid:
        raise ConfigurationError(
            f"Google OAuth field(s) must be non-empty strings: {', '.join(invalid)}"
        )


def _coerce_calendar_ids(value: Any) -> tuple[str, ...]:
    """Keep non-blank string ids in order; duplicates are preserved."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list | tuple):
        return (DEFAULT_CALENDAR_ID,)
    calendar_ids = tuple(
        item.strip() for item in value if isinstance(item, str) and item.strip()
    )
    return calendar_ids or (DEFAULT_CALENDAR_ID,)


# ---------------------------------------------------------------------------
# Lookup settings
# ---------------------------------------------------------------------------


@dataclass
class LoggingSettings:
    """Logging configuration from the [availability.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"


@dataclass
class LookupSettings:
    """Tunables for a resolution call.

    ``max_concurrent_requests`` of 1 keeps the per-window, per-calendar fetches
    strictly sequential. Higher values fan the fetches out with a bound.
    """

    max_window_days: int = DEFAULT_MAX_WINDOW_DAYS
    page_size: int = DEFAULT_PAGE_SIZE
    max_concurrent_requests: int = 1
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    free_email_domains: frozenset[str] = POPULAR_FREE_EMAIL_DOMAINS
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def _expand_env(value: Any, key_path: str, unset: list[str]) -> Any:
    """Replace ``${NAME}`` in string values, recording unset names with their key."""
    if isinstance(value, dict):
        return {key: _expand_env(item, f"{key_path}.{key}", unset) for key, item in value.items()}
    if isinstance(value, list):
        return [
            _expand_env(item, f"{key_path}[{index}]", unset) for index, item in enumerate(value)
        ]
    if not isinstance(value, str):
        return value

    def _lookup(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in os.environ:
            return os.environ[name]
        unset.append(f"{name} ({key_path})")
        return match.group(0)

    return _ENV_REFERENCE.sub(_lookup, value)


def _positive_int(section: dict[str, Any], key: str, default: int) -> int:
    raw = section.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"availability.{key} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ConfigurationError(f"availability.{key} must be >= 1, got {value}")
    return value


def _parse_logging(section: dict[str, Any]) -> LoggingSettings:
    logging_section = section.get("logging", {})
    if not isinstance(logging_section, dict):
        raise ConfigurationError("availability.logging must be a table")

    level = str(logging_section.get("level", "INFO")).strip().upper() or "INFO"
    fmt = str(logging_section.get("format", "text")).strip().lower() or "text"
    if fmt not in _VALID_LOG_FORMATS:
        raise ConfigurationError(
            f"availability.logging.format must be one of {sorted(_VALID_LOG_FORMATS)}, got {fmt!r}"
        )
    return LoggingSettings(level=level, format=fmt)


def _parse_free_email_domains(section: dict[str, Any]) -> frozenset[str]:
    raw = section.get("free_email_domains")
    if raw is None:
        return POPULAR_FREE_EMAIL_DOMAINS
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise ConfigurationError("availability.free_email_domains must be a list of strings")
    return frozenset(item.strip().lower() for item in raw if item.strip())


def parse_settings(data: dict[str, Any]) -> LookupSettings:
    """Build ``LookupSettings`` from an already-decoded TOML document."""
    section = data.get("availability", {})
    if not isinstance(section, dict):
        raise ConfigurationError("[availability] must be a table")
    unset: list[str] = []
    section = _expand_env(section, "availability", unset)
    if unset:
        raise ConfigurationError(
            f"Settings reference unset environment variable(s): {', '.join(unset)}"
        )

    timeout_raw = section.get("http_timeout_seconds", DEFAULT_HTTP_TIMEOUT_SECONDS)
    try:
        http_timeout_seconds = float(timeout_raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"availability.http_timeout_seconds must be a number, got {timeout_raw!r}"
        ) from exc
    if http_timeout_seconds <= 0:
        raise ConfigurationError("availability.http_timeout_seconds must be positive")

    return LookupSettings(
        max_window_days=_positive_int(section, "max_window_days", DEFAULT_MAX_WINDOW_DAYS),
        page_size=min(_positive_int(section, "page_size", DEFAULT_PAGE_SIZE), DEFAULT_PAGE_SIZE),
        max_concurrent_requests=_positive_int(section, "max_concurrent_requests", 1),
        http_timeout_seconds=http_timeout_seconds,
        free_email_domains=_parse_free_email_domains(section),
        logging=_parse_logging(section),
    )


def load_settings(path: Path | None = None) -> LookupSettings:
    """Load settings from *path*, or return defaults when no path is given."""
    if path is None:
        return LookupSettings()

    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Invalid TOML in {path}: {exc}") from exc

    return parse_settings(data)
