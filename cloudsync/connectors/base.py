"""Provider connector protocol and the data classes it exchanges."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cloudsync.providers import Provider


@dataclass(frozen=True)
class RemoteChange:
    """One entry of a provider change feed."""

    remote_id: str
    name: str
    is_folder: bool
    removed: bool = False
    parent_id: str | None = None


@dataclass
class ChangeBatch:
    """Change-feed entries in provider order plus the cursor that follows them."""

    entries: list[RemoteChange] = field(default_factory=list)
    next_cursor: str = ""


@dataclass
class FolderItem:
    """A child of a remote folder as reported by the provider."""

    id: str
    name: str
    type: str  # "folder" or "file"
    modified: str | None = None
    size: int | None = None
    web_url: str = ""
    icon: str = ""
    has_children: bool = False


@dataclass
class ConnectorError:
    """Typed failure returned where callers must tell "nothing" from "failed"."""

    code: str  # "not-connected", "transport", "http-error", "invalid-response"
    message: str
    status_code: int | None = None


@runtime_checkable
class ProviderConnector(Protocol):
    """Contract shared by every cloud storage provider.

    Expected failures (missing credentials, transport errors, non-2xx
    responses) are logged and reported through the return value; they never
    raise. Remote ids are opaque to callers.
    """

    provider: Provider

    async def is_connected(self) -> bool:
        """Return True when a refresh token is stored."""
        ...

    async def create_folder(self, name: str, parent_id: str | None = None) -> str | None:
        """Create a folder and return its remote id, or None on failure."""
        ...

    async def rename_folder(self, remote_id: str, new_name: str) -> bool: ...

    async def delete_folder(self, remote_id: str) -> bool: ...

    async def list_changes(self, cursor: str) -> ChangeBatch | None:
        """Return changes after *cursor*, bootstrapping a start cursor when empty."""
        ...

    async def list_folder_items(
        self, parent_id: str | None = None
    ) -> list[FolderItem] | ConnectorError: ...
