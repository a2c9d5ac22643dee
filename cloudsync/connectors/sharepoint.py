"""SharePoint / OneDrive connector using Microsoft Graph."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from cloudsync.connectors.base import ChangeBatch, ConnectorError, FolderItem, RemoteChange
from cloudsync.connectors.oauth import OAuthConnector
from cloudsync.providers import Provider

if TYPE_CHECKING:
    from cloudsync.services.credential_store import ProviderCredentials

logger = logging.getLogger(__name__)

GRAPH_API = "https://graph.microsoft.com/v1.0"
LOGIN_BASE = "https://login.microsoftonline.com"
DEFAULT_TENANT = "common"


class SharePointConnector(OAuthConnector):
    """Folders are addressed by drive item id. Change cursors are Graph delta links."""

    provider = Provider.SHAREPOINT
    scope = "offline_access https://graph.microsoft.com/.default"
    default_expires_in = 3600

    def _tenant(self, creds: ProviderCredentials) -> str:
        return quote(creds.tenant_id or DEFAULT_TENANT, safe="")

    def _token_endpoint(self, creds: ProviderCredentials) -> str:
        return f"{LOGIN_BASE}/{self._tenant(creds)}/oauth2/v2.0/token"

    def _authorize_url_base(self, creds: ProviderCredentials) -> str:
        return f"{LOGIN_BASE}/{self._tenant(creds)}/oauth2/v2.0/authorize"

    def _authorize_params(self) -> dict[str, str]:
        return {"response_mode": "query"}

    async def _revoke_remote(self, creds: ProviderCredentials) -> bool:
        # Graph has no refresh-token revocation endpoint; tokens lapse on their own.
        logger.info("SharePoint has no revocation endpoint; discarding tokens locally")
        return True

    def _item_url(self, remote_id: str | None) -> str:
        if not remote_id:
            return f"{GRAPH_API}/me/drive/root"
        return f"{GRAPH_API}/me/drive/items/{quote(remote_id, safe='')}"

    async def create_folder(self, name: str, parent_id: str | None = None) -> str | None:
        data = await self._api_json(
            "POST",
            f"{self._item_url(parent_id)}/children",
            action="create folder",
            json={"name": name, "folder": {}, "@microsoft.graph.conflictBehavior": "rename"},
        )
        if isinstance(data, ConnectorError):
            return None
        folder_id = data.get("id")
        if not folder_id:
            logger.warning("SharePoint create folder response missing id")
            return None
        return str(folder_id)

    async def rename_folder(self, remote_id: str, new_name: str) -> bool:
        resp = await self._api_request(
            "PATCH", self._item_url(remote_id), action="rename folder", json={"name": new_name}
        )
        return not isinstance(resp, ConnectorError)

    async def delete_folder(self, remote_id: str) -> bool:
        resp = await self._api_request("DELETE", self._item_url(remote_id), action="delete folder")
        return not isinstance(resp, ConnectorError)

    async def _delta(self, url: str, action: str, **kwargs: Any) -> dict[str, Any] | None:
        data = await self._api_json("GET", url, action=action, **kwargs)
        if isinstance(data, ConnectorError):
            return None
        return data

    async def list_changes(self, cursor: str) -> ChangeBatch | None:
        if cursor and not cursor.startswith(f"{GRAPH_API}/"):
            logger.warning("Ignoring SharePoint cursor that is not a Graph delta link")
            return None
        if not cursor:
            bootstrap = await self._delta(
                f"{GRAPH_API}/me/drive/root/delta",
                "get latest delta link",
                params={"token": "latest"},
            )
            link = (bootstrap or {}).get("@odata.deltaLink")
            if not link:
                return None
            cursor = str(link)

        data = await self._delta(cursor, "list changes")
        if data is None:
            return None

        entries: list[RemoteChange] = []
        for item in data.get("value", []):
            if "root" in item or not item.get("id"):
                continue
            parent = (item.get("parentReference") or {}).get("id")
            entries.append(
                RemoteChange(
                    remote_id=str(item["id"]),
                    name=item.get("name", ""),
                    is_folder="folder" in item,
                    removed="deleted" in item,
                    parent_id=parent,
                )
            )
        next_cursor = data.get("@odata.deltaLink") or data.get("@odata.nextLink") or cursor
        return ChangeBatch(entries=entries, next_cursor=str(next_cursor))

    async def list_folder_items(
        self, parent_id: str | None = None
    ) -> list[FolderItem] | ConnectorError:
        data = await self._api_json(
            "GET",
            f"{self._item_url(parent_id)}/children",
            action="list folder",
            params={"$orderby": "name"},
        )
        if isinstance(data, ConnectorError):
            return data

        items: list[FolderItem] = []
        for entry in data.get("value", []):
            folder = entry.get("folder")
            items.append(
                FolderItem(
                    id=str(entry.get("id", "")),
                    name=entry.get("name", ""),
                    type="folder" if folder is not None else "file",
                    modified=entry.get("lastModifiedDateTime"),
                    size=entry.get("size"),
                    web_url=entry.get("webUrl", ""),
                    has_children=bool(folder and folder.get("childCount")),
                )
            )
        items.sort(key=lambda item: (item.type != "folder", item.name.lower()))
        return items
