"""Shared OAuth 2.0 plumbing for provider connectors.

Each connector authenticates with a long-lived refresh token stored in the
credential store. Access tokens are cached next to it and refreshed on demand
when they are within a minute of expiry.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from cloudsync.connectors.base import ConnectorError
from cloudsync.exceptions import OAuthFlowError

if TYPE_CHECKING:
    from collections.abc import Callable

    from cloudsync.providers import Provider
    from cloudsync.services.credential_store import CredentialStore, ProviderCredentials

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class OAuthConnector:
    """Base class for connectors that authenticate with refresh tokens."""

    provider: Provider
    token_url: str = ""
    authorize_endpoint: str = ""
    scope: str = ""
    default_expires_in: int = 3600
    # Send client credentials as HTTP Basic auth instead of form fields.
    client_auth_basic: bool = False

    def __init__(
        self,
        credentials: CredentialStore,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._timeout = timeout
        self._transport = transport
        self._clock = clock

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def is_connected(self) -> bool:
        creds = await self._credentials.get_credentials(self.provider)
        return creds.is_connected

    # Authorization flow

    def _token_endpoint(self, creds: ProviderCredentials) -> str:
        return self.token_url

    def _authorize_url_base(self, creds: ProviderCredentials) -> str:
        return self.authorize_endpoint

    def _authorize_params(self) -> dict[str, str]:
        return {}

    async def authorization_url(self, redirect_uri: str, state: str) -> str:
        """Build the consent screen URL.

        Raises OAuthFlowError("missing-credentials") when no client id/secret
        has been saved for the provider.
        """
        creds = await self._credentials.get_credentials(self.provider)
        if not creds.has_client:
            raise OAuthFlowError("missing-credentials", f"{self.provider} client is not configured")
        params = {
            "client_id": creds.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "state": state,
            **self._authorize_params(),
        }
        return f"{self._authorize_url_base(creds)}?{urlencode(params)}"

    async def complete_authorization(self, code: str, redirect_uri: str) -> None:
        """Exchange an authorization code and persist the resulting tokens.

        Raises OAuthFlowError on failure.
        """
        creds = await self._credentials.get_credentials(self.provider)
        if not creds.has_client:
            raise OAuthFlowError("missing-credentials", f"{self.provider} client is not configured")
        tokens = await self._request_token(
            creds,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )
        if tokens is None:
            raise OAuthFlowError("oauth-error", f"{self.provider} code exchange failed")
        if not tokens.get("refresh_token"):
            raise OAuthFlowError("oauth-error", f"{self.provider} returned no refresh token")
        await self._store_tokens(tokens)
        logger.info("Connected %s", self.provider.label)

    async def revoke(self) -> bool:
        """Revoke remotely (best effort), then forget the stored tokens.

        Client id and secret are kept. Returns whether the remote call succeeded.
        """
        creds = await self._credentials.get_credentials(self.provider)
        remote_ok = True
        if creds.is_connected:
            remote_ok = await self._revoke_remote(creds)
        await self._credentials.set_credentials(
            self.provider,
            {"refresh_token": "", "access_token": "", "token_expires_at": ""},
            preserve_empty=False,
        )
        return remote_ok

    async def _revoke_remote(self, creds: ProviderCredentials) -> bool:
        return True

    # Access tokens

    async def get_access_token(self) -> str | None:
        """Return a usable access token, refreshing it when needed.

        Returns None without any HTTP call when the provider is not fully
        configured. A failed refresh leaves stored credentials untouched.
        """
        creds = await self._credentials.get_credentials(self.provider)
        if not creds.is_connected or not creds.has_client:
            logger.info("%s is not connected; skipping request", self.provider.label)
            return None

        now = int(self._clock())
        if creds.access_token and creds.token_expires_at > now + TOKEN_EXPIRY_MARGIN_SECONDS:
            return creds.access_token

        tokens = await self._request_token(
            creds,
            {"grant_type": "refresh_token", "refresh_token": creds.refresh_token},
        )
        if tokens is None:
            return None
        access_token = tokens.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            logger.warning("%s token response missing access_token", self.provider.label)
            return None
        await self._store_tokens(tokens)
        return access_token

    async def _store_tokens(self, tokens: dict[str, Any]) -> None:
        try:
            expires_in = int(tokens.get("expires_in") or self.default_expires_in)
        except (TypeError, ValueError):
            expires_in = self.default_expires_in
        fields: dict[str, str | int] = {
            "access_token": str(tokens.get("access_token") or ""),
            "token_expires_at": int(self._clock()) + expires_in,
        }
        refresh_token = tokens.get("refresh_token")
        if isinstance(refresh_token, str) and refresh_token:
            fields["refresh_token"] = refresh_token
        await self._credentials.set_credentials(self.provider, fields)

    async def _request_token(
        self, creds: ProviderCredentials, data: dict[str, str]
    ) -> dict[str, Any] | None:
        payload = dict(data)
        auth: tuple[str, str] | None = None
        if self.client_auth_basic:
            auth = (creds.client_id, creds.client_secret)
        else:
            payload["client_id"] = creds.client_id
            payload["client_secret"] = creds.client_secret

        try:
            async with self._client() as client:
                resp = await client.post(self._token_endpoint(creds), data=payload, auth=auth)
        except httpx.HTTPError:
            logger.exception("%s token request failed", self.provider.label)
            return None

        if resp.status_code != 200:
            logger.warning(
                "%s token request failed with status %s", self.provider.label, resp.status_code
            )
            return None
        try:
            body = resp.json()
        except ValueError:
            logger.warning("%s token response is not JSON", self.provider.label)
            return None
        if not isinstance(body, dict):
            return None
        return body

    # API calls

    async def _api_request(
        self, method: str, url: str, *, action: str, **kwargs: Any
    ) -> httpx.Response | ConnectorError:
        """Perform an authenticated request; failures come back as ConnectorError."""
        token = await self.get_access_token()
        if token is None:
            return ConnectorError("not-connected", f"{self.provider.label} is not connected")

        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
        try:
            async with self._client() as client:
                resp = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.exception("%s %s request failed", self.provider.label, action)
            return ConnectorError("transport", f"{action} failed: {exc.__class__.__name__}")

        if resp.status_code >= 400:
            logger.warning(
                "%s %s failed with status %s: %s",
                self.provider.label,
                action,
                resp.status_code,
                resp.text[:200],
            )
            return ConnectorError(
                "http-error", f"{action} failed with status {resp.status_code}", resp.status_code
            )
        return resp

    async def _api_json(
        self, method: str, url: str, *, action: str, **kwargs: Any
    ) -> dict[str, Any] | ConnectorError:
        resp = await self._api_request(method, url, action=action, **kwargs)
        if isinstance(resp, ConnectorError):
            return resp
        try:
            body = resp.json()
        except ValueError:
            logger.warning("%s %s returned a non-JSON body", self.provider.label, action)
            return ConnectorError("invalid-response", f"{action} returned a non-JSON body")
        if not isinstance(body, dict):
            return ConnectorError("invalid-response", f"{action} returned an unexpected body")
        return body
