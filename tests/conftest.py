"""Shared fixtures: OAuth config and httpx clients backed by MockTransport."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import httpx
import pytest

from advisor_availability.config import OAuthConfig
from advisor_availability.oauth import GOOGLE_OAUTH_TOKEN_URL

Handler = Callable[[httpx.Request], httpx.Response]


def is_token_request(request: httpx.Request) -> bool:
    return str(request.url) == GOOGLE_OAUTH_TOKEN_URL


def token_response(access_token: str = "access") -> httpx.Response:
    return httpx.Response(200, json={"access_token": access_token, "expires_in": 3600})


@pytest.fixture
def oauth_config() -> OAuthConfig:
    return OAuthConfig(
        client_id="client",
        client_secret="secret",
        refresh_token="refresh",
        calendar_ids=("primary",),
    )


@pytest.fixture
async def make_http_client() -> AsyncIterator[Callable[[Handler], httpx.AsyncClient]]:
    """Build ``httpx.AsyncClient`` instances routed to an in-process handler."""
    clients: list[httpx.AsyncClient] = []

    def _factory(handler: Handler) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _factory

    for client in clients:
        await client.aclose()
