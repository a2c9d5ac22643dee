"""Google Drive connector using the Drive v3 REST API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from cloudsync.connectors.base import ChangeBatch, ConnectorError, FolderItem, RemoteChange
from cloudsync.connectors.oauth import OAuthConnector
from cloudsync.providers import Provider

if TYPE_CHECKING:
    from cloudsync.services.credential_store import ProviderCredentials

logger = logging.getLogger(__name__)

DRIVE_API = "https://www.googleapis.com/drive/v3"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
CHANGES_PAGE_SIZE = 50
LIST_PAGE_SIZE = 100

_CHANGE_FIELDS = (
    "nextPageToken,newStartPageToken,"
    "changes(fileId,removed,file(id,name,mimeType,trashed,parents))"
)
_LIST_FIELDS = "files(id,name,mimeType,modifiedTime,size,webViewLink,iconLink)"


def _quote_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveConnector(OAuthConnector):
    """Folders are addressed by Drive file id."""

    provider = Provider.GOOGLE
    token_url = "https://oauth2.googleapis.com/token"
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    revoke_url = "https://oauth2.googleapis.com/revoke"
    scope = "https://www.googleapis.com/auth/drive"
    default_expires_in = 3600

    def _authorize_params(self) -> dict[str, str]:
        return {
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }

    async def _revoke_remote(self, creds: ProviderCredentials) -> bool:
        try:
            async with self._client() as client:
                resp = await client.post(self.revoke_url, data={"token": creds.refresh_token})
        except httpx.HTTPError:
            logger.exception("Google Drive token revocation failed")
            return False
        if resp.status_code != 200:
            logger.warning("Google Drive token revocation returned %s", resp.status_code)
            return False
        return True

    async def create_folder(self, name: str, parent_id: str | None = None) -> str | None:
        body: dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            body["parents"] = [parent_id]
        data = await self._api_json(
            "POST", f"{DRIVE_API}/files", action="create folder", json=body
        )
        if isinstance(data, ConnectorError):
            return None
        folder_id = data.get("id")
        if not folder_id:
            logger.warning("Google Drive create folder response missing id")
            return None
        return str(folder_id)

    async def rename_folder(self, remote_id: str, new_name: str) -> bool:
        resp = await self._api_request(
            "PATCH",
            f"{DRIVE_API}/files/{remote_id}",
            action="rename folder",
            json={"name": new_name},
        )
        return not isinstance(resp, ConnectorError)

    async def delete_folder(self, remote_id: str) -> bool:
        resp = await self._api_request(
            "DELETE", f"{DRIVE_API}/files/{remote_id}", action="delete folder"
        )
        return not isinstance(resp, ConnectorError)

    async def _start_page_token(self) -> str | None:
        data = await self._api_json(
            "GET", f"{DRIVE_API}/changes/startPageToken", action="get start page token"
        )
        if isinstance(data, ConnectorError):
            return None
        token = data.get("startPageToken")
        return str(token) if token else None

    async def list_changes(self, cursor: str) -> ChangeBatch | None:
        if not cursor:
            bootstrap = await self._start_page_token()
            if bootstrap is None:
                return None
            cursor = bootstrap

        data = await self._api_json(
            "GET",
            f"{DRIVE_API}/changes",
            action="list changes",
            params={
                "pageToken": cursor,
                "spaces": "drive",
                "pageSize": CHANGES_PAGE_SIZE,
                "fields": _CHANGE_FIELDS,
            },
        )
        if isinstance(data, ConnectorError):
            return None

        entries: list[RemoteChange] = []
        for change in data.get("changes", []):
            file_info = change.get("file") or {}
            remote_id = change.get("fileId") or file_info.get("id")
            if not remote_id:
                continue
            parents = file_info.get("parents") or []
            entries.append(
                RemoteChange(
                    remote_id=str(remote_id),
                    name=file_info.get("name", ""),
                    is_folder=file_info.get("mimeType") == FOLDER_MIME_TYPE,
                    removed=bool(change.get("removed") or file_info.get("trashed")),
                    parent_id=parents[0] if parents else None,
                )
            )
        next_cursor = data.get("newStartPageToken") or data.get("nextPageToken") or cursor
        return ChangeBatch(entries=entries, next_cursor=str(next_cursor))

    async def list_folder_items(
        self, parent_id: str | None = None
    ) -> list[FolderItem] | ConnectorError:
        parent = _quote_query_value(parent_id or "root")
        data = await self._api_json(
            "GET",
            f"{DRIVE_API}/files",
            action="list folder",
            params={
                "q": f"'{parent}' in parents and trashed=false",
                "fields": _LIST_FIELDS,
                "orderBy": "folder,name",
                "pageSize": LIST_PAGE_SIZE,
            },
        )
        if isinstance(data, ConnectorError):
            return data

        items: list[FolderItem] = []
        for entry in data.get("files", []):
            is_folder = entry.get("mimeType") == FOLDER_MIME_TYPE
            size = entry.get("size")
            items.append(
                FolderItem(
                    id=str(entry.get("id", "")),
                    name=entry.get("name", ""),
                    type="folder" if is_folder else "file",
                    modified=entry.get("modifiedTime"),
                    size=int(size) if size is not None and str(size).isdigit() else None,
                    web_url=entry.get("webViewLink", ""),
                    icon=entry.get("iconLink", ""),
                    has_children=is_folder,
                )
            )
        return items
