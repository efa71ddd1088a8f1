"""Refresh-token exchange against Google's OAuth token endpoint."""

from __future__ import annotations

import logging

import httpx

from advisor_availability.config import OAuthConfig
from advisor_availability.errors import (
    MalformedResponseError,
    UpstreamAuthError,
    safe_error_message,
)

logger = logging.getLogger(__name__)

GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"


async def exchange_refresh_token(
    oauth_config: OAuthConfig,
    http_client: httpx.AsyncClient,
) -> str:
    """Trade the long-lived refresh token for a short-lived access token.

    Single-shot: no retry and no caching. Each resolution call exchanges anew.
    """
    try:
        response = await http_client.post(
            GOOGLE_OAUTH_TOKEN_URL,
            data={
                "client_id": oauth_config.client_id,
                "client_secret": oauth_config.client_secret,
                "refresh_token": oauth_config.refresh_token,
                "grant_type": "refresh_token",
            },
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as exc:
        raise UpstreamAuthError(f"Google OAuth token request failed: {exc}") from exc

    if response.status_code < 200 or response.status_code >= 300:
        logger.warning("Google OAuth token exchange rejected (status=%d)", response.status_code)
        raise UpstreamAuthError(
            "Google token exchange failed "
            f"({response.status_code}): {safe_error_message(response)}",
            status_code=response.status_code,
            body=response.text,
        )

    try:
        payload = response.json()
    except ValueError as exc:
        raise MalformedResponseError(
            "Google token exchange returned invalid JSON",
            status_code=response.status_code,
            body=response.text,
        ) from exc

    access_token = payload.get("access_token") if isinstance(payload, dict) else None
    if not isinstance(access_token, str) or not access_token.strip():
        raise MalformedResponseError(
            "Google token exchange response missing access_token",
            status_code=response.status_code,
            body=response.text,
        )

    logger.debug("Exchanged refresh token for access token")
    return access_token.strip()
