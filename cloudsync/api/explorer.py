"""Read-only remote folder explorer endpoint."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from cloudsync.api.deps import get_provider_connector, get_repository, require_admin
from cloudsync.connectors.base import ConnectorError
from cloudsync.connectors.oauth import OAuthConnector
from cloudsync.schemas.explorer import ExplorerListing
from cloudsync.services.explorer_service import list_items
from cloudsync.services.settings_repository import SettingsRepository

router = APIRouter(
    prefix="/api/explorer",
    tags=["explorer"],
    dependencies=[Depends(require_admin)],
)


@router.get("/{provider}", response_model=ExplorerListing)
async def explorer_endpoint(
    connector: Annotated[OAuthConnector, Depends(get_provider_connector)],
    repository: Annotated[SettingsRepository, Depends(get_repository)],
    parent: Annotated[str | None, Query(max_length=2048)] = None,
) -> ExplorerListing:
    """List the children of *parent* (or the configured root folder)."""
    general = await repository.get_general()
    items = await list_items(connector, general, parent)
    if isinstance(items, ConnectorError):
        code = (
            status.HTTP_409_CONFLICT
            if items.code == "not-connected"
            else status.HTTP_502_BAD_GATEWAY
        )
        raise HTTPException(status_code=code, detail=items.code)
    return ExplorerListing(service=connector.provider.value, parent=parent, items=items)
