from __future__ import annotations

import asyncio
from typing import Callable
from urllib.parse import parse_qs

import httpx
import pytest

from outlook_assistant.config import Settings
from outlook_assistant.refresher import TokenRefresher
from outlook_assistant.tokens import TokenRecord, now_ms

HOUR_MS = 3600 * 1000


def live_tokens(access_token: str = "live-access", refresh_token: str | None = "live-refresh") -> TokenRecord:
    return TokenRecord(access_token=access_token, refresh_token=refresh_token, expires_at=now_ms() + HOUR_MS)


def expired_tokens(access_token: str = "old-access", refresh_token: str | None = "old-refresh") -> TokenRecord:
    return TokenRecord(access_token=access_token, refresh_token=refresh_token, expires_at=now_ms() - 1000)


def expiring_tokens(access_token: str = "soon-access", refresh_token: str | None = "soon-refresh") -> TokenRecord:
    """Still valid, but inside the five-minute refresh window."""
    return TokenRecord(access_token=access_token, refresh_token=refresh_token, expires_at=now_ms() + 60 * 1000)


class FakeTokenEndpoint:
    """Stands in for the identity provider's token endpoint."""

    def __init__(self) -> None:
        self.requests: list[dict[str, str]] = []
        self.status_code = 200
        self.body: dict | None = None
        self.delay = 0.0
        self.error: Exception | None = None
        self._counter = 0

    def fail_with(self, status_code: int, body: dict) -> None:
        self.status_code = status_code
        self.body = body

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.requests.append(form)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.body is not None:
            return httpx.Response(self.status_code, json=self.body)
        self._counter += 1
        return httpx.Response(
            200,
            json={
                "token_type": "Bearer",
                "scope": "Mail.Read User.Read",
                "expires_in": 3600,
                "access_token": f"new-access-{self._counter}",
                "refresh_token": f"new-refresh-{self._counter}",
            },
        )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        client_id="client-id",
        client_secret="client-secret",
        token_path=tmp_path / "outlook-mcp-tokens.json",
        accounts_dir=tmp_path / "accounts",
        refresh_timeout=5,
    )


@pytest.fixture
def token_endpoint() -> FakeTokenEndpoint:
    return FakeTokenEndpoint()


@pytest.fixture
def make_refresher(settings) -> Callable[..., TokenRefresher]:
    def _make(handler, custom_settings: Settings | None = None) -> TokenRefresher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return TokenRefresher(custom_settings or settings, http_client=client)

    return _make


@pytest.fixture
def refresher(make_refresher, token_endpoint) -> TokenRefresher:
    return make_refresher(token_endpoint)
