"""Tests for the shared OAuth token plumbing."""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from cloudsync.connectors.dropbox import DropboxConnector
from cloudsync.connectors.google_drive import GoogleDriveConnector
from cloudsync.exceptions import OAuthFlowError
from cloudsync.providers import Provider
from tests.test_connectors.conftest import NOW, RecordingTransport, form_body

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from cloudsync.services.credential_store import CredentialStore

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
REDIRECT_URI = "http://test/api/providers/google/callback"


def _google(credentials: CredentialStore, transport: RecordingTransport) -> GoogleDriveConnector:
    return GoogleDriveConnector(credentials, transport=transport, clock=lambda: NOW)


class TestAccessToken:
    async def test_not_connected_makes_no_request(
        self, credentials: CredentialStore, transport: RecordingTransport
    ) -> None:
        assert await _google(credentials, transport).get_access_token() is None
        assert transport.requests == []

    async def test_connected_without_client_makes_no_request(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
    ) -> None:
        await credentials.set_credentials(Provider.GOOGLE, {"refresh_token": "r"})
        assert await _google(credentials, transport).get_access_token() is None
        assert transport.requests == []

    async def test_valid_cached_token_is_reused(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
        connect: Callable[..., Awaitable[None]],
    ) -> None:
        await connect(Provider.GOOGLE)
        assert await _google(credentials, transport).get_access_token() == "access-token"
        assert transport.requests == []

    async def test_token_near_expiry_is_refreshed(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
        connect: Callable[..., Awaitable[None]],
    ) -> None:
        await connect(Provider.GOOGLE, token_expires_at=NOW + 30)
        transport.route(
            "POST",
            GOOGLE_TOKEN_URL,
            httpx.Response(200, json={"access_token": "fresh", "expires_in": 3599}),
        )
        assert await _google(credentials, transport).get_access_token() == "fresh"

        form = form_body(transport.requests[0])
        assert form["grant_type"] == "refresh_token"
        assert form["refresh_token"] == "refresh-token"
        assert form["client_id"] == "client-id"
        assert form["client_secret"] == "client-secret"

        creds = await credentials.get_credentials(Provider.GOOGLE)
        assert creds.access_token == "fresh"
        assert creds.token_expires_at == NOW + 3599
        assert creds.refresh_token == "refresh-token"

    async def test_rotated_refresh_token_is_stored(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
        connect: Callable[..., Awaitable[None]],
    ) -> None:
        await connect(Provider.GOOGLE, access_token="")
        transport.route(
            "POST",
            GOOGLE_TOKEN_URL,
            httpx.Response(200, json={"access_token": "fresh", "refresh_token": "rotated"}),
        )
        await _google(credentials, transport).get_access_token()
        creds = await credentials.get_credentials(Provider.GOOGLE)
        assert creds.refresh_token == "rotated"
        assert creds.token_expires_at == NOW + 3600

    async def test_failed_refresh_leaves_credentials_untouched(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
        connect: Callable[..., Awaitable[None]],
    ) -> None:
        await connect(Provider.GOOGLE, token_expires_at=NOW - 10)
        transport.route(
            "POST", GOOGLE_TOKEN_URL, httpx.Response(400, json={"error": "invalid_grant"})
        )
        assert await _google(credentials, transport).get_access_token() is None
        creds = await credentials.get_credentials(Provider.GOOGLE)
        assert creds.refresh_token == "refresh-token"
        assert creds.access_token == "access-token"

    async def test_transport_error_returns_none(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
        connect: Callable[..., Awaitable[None]],
    ) -> None:
        await connect(Provider.GOOGLE, token_expires_at=0)

        def _fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        transport.route("POST", GOOGLE_TOKEN_URL, _fail)
        assert await _google(credentials, transport).get_access_token() is None

    async def test_non_json_token_response_returns_none(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
        connect: Callable[..., Awaitable[None]],
    ) -> None:
        await connect(Provider.GOOGLE, token_expires_at=0)
        transport.route("POST", GOOGLE_TOKEN_URL, httpx.Response(200, text="<html>"))
        assert await _google(credentials, transport).get_access_token() is None

    async def test_basic_auth_providers_keep_secret_out_of_form(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
        connect: Callable[..., Awaitable[None]],
    ) -> None:
        await connect(Provider.DROPBOX, token_expires_at=0)
        transport.route(
            "POST",
            "https://api.dropboxapi.com/oauth2/token",
            httpx.Response(200, json={"access_token": "sl.fresh", "expires_in": 14400}),
        )
        connector = DropboxConnector(credentials, transport=transport, clock=lambda: NOW)
        assert await connector.get_access_token() == "sl.fresh"
        request = transport.requests[0]
        assert request.headers["Authorization"].startswith("Basic ")
        assert "client_secret" not in form_body(request)


class TestAuthorizationFlow:
    async def test_authorization_url(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
        connect: Callable[..., Awaitable[None]],
    ) -> None:
        await connect(Provider.GOOGLE)
        url = await _google(credentials, transport).authorization_url(REDIRECT_URI, "state-123")
        parsed = urlparse(url)
        params = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
            "https://accounts.google.com/o/oauth2/v2/auth"
        )
        assert params["client_id"] == "client-id"
        assert params["redirect_uri"] == REDIRECT_URI
        assert params["state"] == "state-123"
        assert params["response_type"] == "code"
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"

    async def test_authorization_url_requires_client(
        self, credentials: CredentialStore, transport: RecordingTransport
    ) -> None:
        with pytest.raises(OAuthFlowError) as excinfo:
            await _google(credentials, transport).authorization_url(REDIRECT_URI, "s")
        assert excinfo.value.notice == "missing-credentials"

    async def test_complete_authorization_stores_tokens(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
    ) -> None:
        await credentials.set_credentials(
            Provider.GOOGLE, {"client_id": "client-id", "client_secret": "client-secret"}
        )
        transport.route(
            "POST",
            GOOGLE_TOKEN_URL,
            httpx.Response(
                200,
                json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600},
            ),
        )
        await _google(credentials, transport).complete_authorization("auth-code", REDIRECT_URI)

        form = form_body(transport.requests[0])
        assert form["grant_type"] == "authorization_code"
        assert form["code"] == "auth-code"
        assert form["redirect_uri"] == REDIRECT_URI
        creds = await credentials.get_credentials(Provider.GOOGLE)
        assert creds.is_connected
        assert creds.refresh_token == "rt"
        assert creds.token_expires_at == NOW + 3600

    async def test_complete_authorization_without_refresh_token_fails(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
    ) -> None:
        await credentials.set_credentials(
            Provider.GOOGLE, {"client_id": "client-id", "client_secret": "client-secret"}
        )
        transport.route("POST", GOOGLE_TOKEN_URL, httpx.Response(200, json={"access_token": "at"}))
        with pytest.raises(OAuthFlowError) as excinfo:
            await _google(credentials, transport).complete_authorization("code", REDIRECT_URI)
        assert excinfo.value.notice == "oauth-error"
        assert not (await credentials.get_credentials(Provider.GOOGLE)).is_connected

    async def test_rejected_code_fails(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
    ) -> None:
        await credentials.set_credentials(
            Provider.GOOGLE, {"client_id": "client-id", "client_secret": "client-secret"}
        )
        transport.route("POST", GOOGLE_TOKEN_URL, httpx.Response(400, json={"error": "bad"}))
        with pytest.raises(OAuthFlowError, match="code exchange failed"):
            await _google(credentials, transport).complete_authorization("code", REDIRECT_URI)


class TestRevoke:
    async def test_revoke_clears_tokens_and_keeps_client(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
        connect: Callable[..., Awaitable[None]],
    ) -> None:
        await connect(Provider.GOOGLE)
        transport.route("POST", "https://oauth2.googleapis.com/revoke", httpx.Response(200))
        assert await _google(credentials, transport).revoke() is True
        assert form_body(transport.requests[0]) == {"token": "refresh-token"}

        creds = await credentials.get_credentials(Provider.GOOGLE)
        assert not creds.is_connected
        assert creds.access_token == ""
        assert creds.has_client

    async def test_failed_remote_revoke_still_forgets_tokens(
        self,
        credentials: CredentialStore,
        transport: RecordingTransport,
        connect: Callable[..., Awaitable[None]],
    ) -> None:
        await connect(Provider.GOOGLE)
        transport.route("POST", "https://oauth2.googleapis.com/revoke", httpx.Response(503))
        assert await _google(credentials, transport).revoke() is False
        assert not (await credentials.get_credentials(Provider.GOOGLE)).is_connected

    async def test_revoke_when_disconnected_skips_remote(
        self, credentials: CredentialStore, transport: RecordingTransport
    ) -> None:
        assert await _google(credentials, transport).revoke() is True
        assert transport.requests == []
