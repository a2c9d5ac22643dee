"""Fixtures for provider connector tests: seeded credentials and a recording transport."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs

import httpx
import pytest

from cloudsync.services.credential_store import CredentialStore
from cloudsync.services.settings_repository import SettingsRepository
from tests.conftest import TEST_SECRET_KEY

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from cloudsync.providers import Provider

NOW = 1_700_000_000


class RecordingTransport(httpx.MockTransport):
    """Mock transport answering from a route table and recording every request.

    Routes are keyed by ``(method, url-without-query)``. A route value is either
    a response or a callable taking the request. Unrouted requests get a 404.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], httpx.Response | Callable[..., httpx.Response]] = {}
        self.requests: list[httpx.Request] = []
        super().__init__(self._handle)

    def route(
        self,
        method: str,
        url: str,
        response: httpx.Response | Callable[..., httpx.Response],
    ) -> None:
        self.routes[(method, url)] = response

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url.copy_with(query=None)))
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(handler):
            return handler(request)
        return handler

    def calls(self) -> list[tuple[str, str]]:
        return [
            (request.method, str(request.url.copy_with(query=None))) for request in self.requests
        ]


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content)


def form_body(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def credentials(db_session: AsyncSession) -> CredentialStore:
    return CredentialStore(SettingsRepository(db_session), TEST_SECRET_KEY)


@pytest.fixture
def connect(
    credentials: CredentialStore,
) -> Callable[..., Awaitable[None]]:
    """Seed a fully connected provider with a valid cached access token."""

    async def _connect(provider: Provider, **overrides: str | int) -> None:
        fields: dict[str, str | int] = {
            "client_id": "client-id",
            "client_secret": "client-secret",
            "refresh_token": "refresh-token",
            "access_token": "access-token",
            "token_expires_at": NOW + 3600,
        }
        fields.update(overrides)
        await credentials.set_credentials(provider, fields)

    return _connect
