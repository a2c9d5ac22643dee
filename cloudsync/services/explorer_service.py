"""Read-only projection of remote folder contents for the explorer."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cloudsync.connectors.base import ConnectorError
from cloudsync.schemas.explorer import ExplorerItem
from cloudsync.services.datetime_service import format_display

if TYPE_CHECKING:
    from cloudsync.connectors.base import FolderItem, ProviderConnector
    from cloudsync.providers import Provider
    from cloudsync.schemas.settings import GeneralSettings

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_size(size: int | None) -> str:
    """Human-readable size with 1024-based units, e.g. ``1.5 MB``."""
    if size is None:
        return ""
    value = float(size)
    for unit in _SIZE_UNITS:
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            break
        value /= 1024
    if unit == "B":
        return f"{int(value)} B"
    text = f"{value:.1f}".removesuffix(".0")
    return f"{text} {unit}"


def project_item(item: FolderItem, provider: Provider) -> ExplorerItem:
    return ExplorerItem(
        id=item.id,
        name=item.name,
        type=item.type,
        service=provider.value,
        has_children=item.has_children,
        size=item.size,
        size_human=format_size(item.size) if item.type == "file" else "",
        modified=item.modified,
        modified_human=format_display(item.modified),
        web_url=item.web_url,
        icon=item.icon or item.type,
    )


async def list_items(
    connector: ProviderConnector,
    general: GeneralSettings,
    parent_id: str | None = None,
) -> list[ExplorerItem] | ConnectorError:
    """List *parent_id*, or the configured provider root when it is empty."""
    provider = connector.provider
    if not await connector.is_connected():
        return ConnectorError("not-connected", f"{provider.label} is not connected")
    parent = parent_id or general.root_for(provider) or None
    items = await connector.list_folder_items(parent)
    if isinstance(items, ConnectorError):
        return items
    return [project_item(item, provider) for item in items]
