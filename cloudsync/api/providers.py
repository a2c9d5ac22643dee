"""Provider API endpoints: credentials, OAuth connect/callback and revocation."""

from __future__ import annotations

import logging
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cloudsync.api.deps import (
    get_credential_store,
    get_provider,
    get_provider_connector,
    get_repository,
    get_session,
    get_settings,
    require_admin,
)
from cloudsync.config import Settings
from cloudsync.connectors.oauth import OAuthConnector
from cloudsync.connectors.registry import get_connector, list_providers
from cloudsync.exceptions import OAuthFlowError, UnknownProviderError
from cloudsync.providers import Provider, parse_provider
from cloudsync.schemas.providers import (
    AuthorizeResponse,
    CredentialsUpdate,
    NoticeResponse,
    ProviderResponse,
)
from cloudsync.services.credential_store import CredentialStore
from cloudsync.services.oauth_state import OAuthStateStore, PendingAuthorization
from cloudsync.services.settings_repository import SettingsRepository
from cloudsync.services.sync_log import SyncLog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/providers", tags=["providers"])


def _notice_redirect(
    settings: Settings, notice: str, provider: str | None = None
) -> RedirectResponse:
    params = {"notice": notice}
    if provider:
        params["service"] = provider
    base = settings.admin_redirect_url
    separator = "&" if "?" in base else "?"
    return RedirectResponse(
        url=f"{base}{separator}{urlencode(params)}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


@router.get("", response_model=list[ProviderResponse], dependencies=[Depends(require_admin)])
async def list_providers_endpoint(
    credentials: Annotated[CredentialStore, Depends(get_credential_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> list[ProviderResponse]:
    """List providers with their connection state. Secrets are never returned."""
    responses: list[ProviderResponse] = []
    for provider in list_providers():
        creds = await credentials.get_credentials(provider)
        responses.append(
            ProviderResponse(
                service=provider.value,
                label=provider.label,
                connected=creds.is_connected,
                has_client=creds.has_client,
                client_id=creds.client_id,
                tenant_id=creds.tenant_id,
                redirect_uri=settings.oauth_redirect_uri(provider.value),
            )
        )
    return responses


@router.put(
    "/{provider}/credentials",
    response_model=NoticeResponse,
    dependencies=[Depends(require_admin)],
)
async def update_credentials_endpoint(
    body: CredentialsUpdate,
    provider: Annotated[Provider, Depends(get_provider)],
    credentials: Annotated[CredentialStore, Depends(get_credential_store)],
) -> NoticeResponse:
    """Save client credentials. Blank fields keep what is already stored."""
    fields = body.model_dump(exclude_none=True)
    if provider is not Provider.SHAREPOINT:
        fields.pop("tenant_id", None)
    await credentials.set_credentials(provider, fields)
    creds = await credentials.get_credentials(provider)
    if not creds.has_client:
        return NoticeResponse(notice="missing-credentials")
    return NoticeResponse(notice="credentials-saved")


@router.delete(
    "/{provider}/credentials",
    response_model=NoticeResponse,
    dependencies=[Depends(require_admin)],
)
async def clear_credentials_endpoint(
    provider: Annotated[Provider, Depends(get_provider)],
    credentials: Annotated[CredentialStore, Depends(get_credential_store)],
) -> NoticeResponse:
    """Remove every stored field for the provider (recovery from corrupt secrets)."""
    await credentials.clear_credentials(provider)
    return NoticeResponse(notice="credentials-cleared")


@router.post(
    "/reset-tokens",
    response_model=NoticeResponse,
    dependencies=[Depends(require_admin)],
)
async def reset_tokens_endpoint(
    credentials: Annotated[CredentialStore, Depends(get_credential_store)],
) -> NoticeResponse:
    """Discard cached access tokens so the next call refreshes them."""
    for provider in list_providers():
        await credentials.set_credentials(
            provider, {"access_token": "", "token_expires_at": ""}, preserve_empty=False
        )
    return NoticeResponse(notice="tokens-reset")


@router.post(
    "/{provider}/authorize",
    response_model=AuthorizeResponse,
    dependencies=[Depends(require_admin)],
)
async def authorize_endpoint(
    request: Request,
    provider: Annotated[Provider, Depends(get_provider)],
    connector: Annotated[OAuthConnector, Depends(get_provider_connector)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthorizeResponse:
    """Start the OAuth flow: return the provider consent URL."""
    redirect_uri = settings.oauth_redirect_uri(provider.value)
    state_store: OAuthStateStore = request.app.state.oauth_state
    state = state_store.issue(PendingAuthorization(provider=provider, redirect_uri=redirect_uri))
    try:
        url = await connector.authorization_url(redirect_uri, state)
    except OAuthFlowError as exc:
        state_store.pop(state)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.notice) from exc
    return AuthorizeResponse(authorization_url=url)


@router.get("/{provider}/callback")
async def oauth_callback_endpoint(
    request: Request,
    provider: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    code: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
    error: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    """Handle the provider redirect: verify state, exchange the code, store tokens."""
    try:
        parsed = parse_provider(provider)
    except UnknownProviderError as exc:
        return _notice_redirect(settings, exc.notice)

    state_store: OAuthStateStore = request.app.state.oauth_state
    pending = state_store.pop(state) if state else None
    if pending is None or pending.provider is not parsed:
        logger.warning("Rejected %s OAuth callback with invalid or expired state", parsed)
        return _notice_redirect(settings, "invalid-state", parsed.value)
    if error or not code:
        logger.warning("%s OAuth callback reported an error: %s", parsed, error or "missing code")
        return _notice_redirect(settings, "oauth-error", parsed.value)

    credentials = CredentialStore(SettingsRepository(session), settings.secret_key)
    connector = get_connector(
        parsed,
        credentials,
        timeout=settings.http_timeout_seconds,
        transport=request.app.state.http_transport,
    )
    try:
        await connector.complete_authorization(code, pending.redirect_uri)
    except OAuthFlowError as exc:
        logger.warning("%s OAuth callback failed: %s", parsed, exc)
        return _notice_redirect(settings, exc.notice, parsed.value)

    await SyncLog(session, capacity=settings.sync_log_capacity).append(
        "Provider connected", {"service": parsed.value}
    )
    return _notice_redirect(settings, "connected", parsed.value)


@router.post(
    "/{provider}/revoke",
    response_model=NoticeResponse,
    dependencies=[Depends(require_admin)],
)
async def revoke_endpoint(
    provider: Annotated[Provider, Depends(get_provider)],
    connector: Annotated[OAuthConnector, Depends(get_provider_connector)],
    repository: Annotated[SettingsRepository, Depends(get_repository)],
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> NoticeResponse:
    """Revoke remotely (best effort) and forget the stored tokens and change cursor."""
    remote_ok = await connector.revoke()
    await repository.clear_cursor(provider)
    await SyncLog(session, capacity=settings.sync_log_capacity).append(
        "Provider disconnected",
        {"service": provider.value, "remote_revoked": remote_ok},
        level=logging.INFO if remote_ok else logging.WARNING,
    )
    return NoticeResponse(notice="revoked")
