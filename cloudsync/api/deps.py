"""Shared API dependencies: settings, DB session, admin auth, sync services."""

from __future__ import annotations

import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from cloudsync.config import Settings
from cloudsync.connectors.oauth import OAuthConnector
from cloudsync.connectors.registry import get_connector
from cloudsync.exceptions import UnknownProviderError
from cloudsync.providers import Provider, parse_provider
from cloudsync.services.credential_store import CredentialStore
from cloudsync.services.scheduler import SyncScheduler
from cloudsync.services.settings_repository import SettingsRepository
from cloudsync.services.sync_engine import SyncEngine, create_sync_engine, general_defaults

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_scheduler(request: Request) -> SyncScheduler:
    scheduler: SyncScheduler = request.app.state.scheduler
    return scheduler


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


async def require_admin(
    settings: Annotated[Settings, Depends(get_settings)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> None:
    """Require the admin API token. Raises 401 otherwise."""
    expected = settings.admin_api_token
    if (
        credentials is None
        or not expected
        or not secrets.compare_digest(credentials.credentials.encode(), expected.encode())
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_provider(provider: str) -> Provider:
    """Resolve the ``{provider}`` path segment. Raises 404 for unknown slugs."""
    try:
        return parse_provider(provider)
    except UnknownProviderError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.notice) from exc


def get_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SettingsRepository:
    return SettingsRepository(session, general_defaults=general_defaults(settings))


def get_credential_store(
    repository: Annotated[SettingsRepository, Depends(get_repository)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CredentialStore:
    return CredentialStore(repository, settings.secret_key)


def get_provider_connector(
    request: Request,
    provider: Annotated[Provider, Depends(get_provider)],
    credentials: Annotated[CredentialStore, Depends(get_credential_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> OAuthConnector:
    return get_connector(
        provider,
        credentials,
        timeout=settings.http_timeout_seconds,
        transport=request.app.state.http_transport,
    )


async def get_sync_engine(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SyncEngine:
    return await create_sync_engine(
        session,
        settings,
        transport=request.app.state.http_transport,
        name_filters=request.app.state.name_filters,
    )
