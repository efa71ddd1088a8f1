"""CLI for previewing an advisor's availability against Google Calendar."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import NoReturn

import click

from advisor_availability.config import LookupSettings, OAuthConfig, load_settings
from advisor_availability.errors import AvailabilityError, ConfigurationError
from advisor_availability.logging import configure_logging
from advisor_availability.resolver import lookup_busy_intervals, lookup_client_meetings


def _load_oauth_config(credentials_path: Path | None) -> OAuthConfig:
    if credentials_path is None:
        return OAuthConfig.from_env()
    try:
        raw = credentials_path.read_text()
    except OSError as exc:
        raise ConfigurationError(f"Cannot read credentials file {credentials_path}: {exc}") from exc
    return OAuthConfig.from_json(raw)


def _emit(payload: object) -> None:
    click.echo(json.dumps(payload, indent=2))


def _fail(exc: AvailabilityError) -> NoReturn:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


_credentials_option = click.option(
    "--credentials",
    "credentials_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Google OAuth secret JSON (defaults to GOOGLE_* environment variables)",
)
_start_option = click.option("--start", "window_start", required=True, help="Range start (ISO)")
_end_option = click.option("--end", "window_end", required=True, help="Range end (ISO)")


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="TOML file with an [availability] section",
)
@click.option("--log-level", default=None, help="Override the configured log level")
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"]),
    default=None,
    help="Override the configured log format",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    log_level: str | None,
    log_format: str | None,
) -> None:
    """Resolve advisor busy time and client meetings from Google Calendar."""
    try:
        settings = load_settings(config_path)
    except ConfigurationError as exc:
        _fail(exc)
    configure_logging(
        level=log_level or settings.logging.level,
        fmt=log_format or settings.logging.format,
    )
    ctx.obj = settings


@cli.command()
@_credentials_option
@_start_option
@_end_option
@click.pass_obj
def busy(
    settings: LookupSettings,
    credentials_path: Path | None,
    window_start: str,
    window_end: str,
) -> None:
    """Print busy intervals in the range as JSON."""
    try:
        oauth_config = _load_oauth_config(credentials_path)
        intervals = asyncio.run(
            lookup_busy_intervals(oauth_config, window_start, window_end, settings=settings)
        )
    except AvailabilityError as exc:
        _fail(exc)
    _emit([interval.model_dump(mode="json") for interval in intervals])


@cli.command()
@_credentials_option
@_start_option
@_end_option
@click.option("--client-email", required=True, help="Client contact email address")
@click.option("--advisor-email", default=None, help="Advisor email, used to find their RSVP")
@click.pass_obj
def meetings(
    settings: LookupSettings,
    credentials_path: Path | None,
    window_start: str,
    window_end: str,
    client_email: str,
    advisor_email: str | None,
) -> None:
    """Print this client's meetings and the remaining busy time as JSON."""
    try:
        oauth_config = _load_oauth_config(credentials_path)
        result = asyncio.run(
            lookup_client_meetings(
                oauth_config,
                window_start,
                window_end,
                client_email,
                advisor_email_hint=advisor_email,
                settings=settings,
            )
        )
    except AvailabilityError as exc:
        _fail(exc)
    _emit(result.model_dump(mode="json"))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
