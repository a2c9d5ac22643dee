"""Dropbox connector using the Dropbox v2 HTTP API.

Dropbox addresses items by path. New folders are recorded by their stable
``id:...`` identifier, which every Dropbox endpoint accepts in place of a
path; parent paths are resolved through ``get_metadata`` when a child folder
is created or a folder is renamed. Path-form ids (``/Courses/Algebra``) from
older mappings keep working.
"""

from __future__ import annotations

import logging
import posixpath
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from cloudsync.connectors.base import ChangeBatch, ConnectorError, FolderItem, RemoteChange
from cloudsync.connectors.oauth import OAuthConnector
from cloudsync.providers import Provider

if TYPE_CHECKING:
    from cloudsync.services.credential_store import ProviderCredentials

logger = logging.getLogger(__name__)

DROPBOX_API = "https://api.dropboxapi.com/2"
DROPBOX_WEB = "https://www.dropbox.com"


def _web_url(path_display: str, is_folder: bool) -> str:
    if not path_display:
        return ""
    section = "home" if is_folder else "preview"
    return f"{DROPBOX_WEB}/{section}{quote(path_display)}"


def _normalize_root(path: str | None) -> str:
    """Dropbox names the account root "" rather than "/"."""
    if not path or path == "/":
        return ""
    return path.rstrip("/")


class DropboxConnector(OAuthConnector):
    """Folders are addressed by Dropbox id (or path for older mappings)."""

    provider = Provider.DROPBOX
    token_url = "https://api.dropboxapi.com/oauth2/token"
    authorize_endpoint = "https://www.dropbox.com/oauth2/authorize"
    scope = "files.metadata.read files.metadata.write"
    default_expires_in = 14400
    client_auth_basic = True

    def _authorize_params(self) -> dict[str, str]:
        return {"token_access_type": "offline"}

    async def _revoke_remote(self, creds: ProviderCredentials) -> bool:
        resp = await self._api_request(
            "POST", f"{DROPBOX_API}/auth/token/revoke", action="revoke token"
        )
        return not isinstance(resp, ConnectorError)

    async def _rpc(self, endpoint: str, body: dict[str, Any], action: str) -> dict[str, Any] | None:
        data = await self._api_json("POST", f"{DROPBOX_API}/{endpoint}", action=action, json=body)
        if isinstance(data, ConnectorError):
            return None
        return data

    async def _resolve_path(self, remote_id: str) -> str | None:
        """Return the display path of *remote_id*, resolving ids through metadata."""
        if remote_id.startswith("/"):
            return _normalize_root(remote_id)
        data = await self._rpc("files/get_metadata", {"path": remote_id}, "get metadata")
        if data is None:
            return None
        path = data.get("path_display")
        return _normalize_root(path) if isinstance(path, str) else None

    async def create_folder(self, name: str, parent_id: str | None = None) -> str | None:
        parent_path = ""
        if parent_id:
            resolved = await self._resolve_path(parent_id)
            if resolved is None:
                logger.warning("Dropbox parent folder %s could not be resolved", parent_id)
                return None
            parent_path = resolved
        data = await self._rpc(
            "files/create_folder_v2",
            {"path": f"{parent_path}/{name}", "autorename": True},
            "create folder",
        )
        if data is None:
            return None
        metadata = data.get("metadata") or {}
        folder_id = metadata.get("id") or metadata.get("path_display")
        if not folder_id:
            logger.warning("Dropbox create folder response missing metadata")
            return None
        return str(folder_id)

    async def rename_folder(self, remote_id: str, new_name: str) -> bool:
        current_path = await self._resolve_path(remote_id)
        if not current_path:
            return False
        target = posixpath.join(posixpath.dirname(current_path), new_name)
        if target == current_path:
            return True
        data = await self._rpc(
            "files/move_v2",
            {"from_path": remote_id, "to_path": target, "autorename": False},
            "rename folder",
        )
        return data is not None

    async def delete_folder(self, remote_id: str) -> bool:
        data = await self._rpc("files/delete_v2", {"path": remote_id}, "delete folder")
        return data is not None

    async def list_changes(self, cursor: str) -> ChangeBatch | None:
        if not cursor:
            bootstrap = await self._rpc(
                "files/list_folder/get_latest_cursor",
                {"path": "", "recursive": True, "include_deleted": True},
                "get latest cursor",
            )
            if bootstrap is None or not bootstrap.get("cursor"):
                return None
            cursor = str(bootstrap["cursor"])

        data = await self._rpc("files/list_folder/continue", {"cursor": cursor}, "list changes")
        if data is None:
            return None

        entries: list[RemoteChange] = []
        for entry in data.get("entries", []):
            tag = entry.get(".tag")
            remote_id = entry.get("id") or entry.get("path_lower")
            if not remote_id:
                continue
            path_display = entry.get("path_display") or ""
            parent = posixpath.dirname(path_display) if path_display else None
            entries.append(
                RemoteChange(
                    remote_id=str(remote_id),
                    name=entry.get("name", ""),
                    is_folder=tag == "folder",
                    removed=tag == "deleted",
                    parent_id=parent or None,
                )
            )
        return ChangeBatch(entries=entries, next_cursor=str(data.get("cursor") or cursor))

    async def list_folder_items(
        self, parent_id: str | None = None
    ) -> list[FolderItem] | ConnectorError:
        data = await self._api_json(
            "POST",
            f"{DROPBOX_API}/files/list_folder",
            action="list folder",
            json={"path": _normalize_root(parent_id), "include_deleted": False},
        )
        if isinstance(data, ConnectorError):
            return data

        items: list[FolderItem] = []
        for entry in data.get("entries", []):
            is_folder = entry.get(".tag") == "folder"
            path_display = entry.get("path_display", "")
            items.append(
                FolderItem(
                    id=str(entry.get("id") or path_display),
                    name=entry.get("name", ""),
                    type="folder" if is_folder else "file",
                    modified=entry.get("server_modified"),
                    size=entry.get("size"),
                    web_url=_web_url(path_display, is_folder),
                    has_children=is_folder,
                )
            )
        items.sort(key=lambda item: (item.type != "folder", item.name.lower()))
        return items
