"""Explorer schemas."""

from __future__ import annotations

from pydantic import BaseModel


class ExplorerItem(BaseModel):
    """Presentation-ready projection of a remote folder child."""

    id: str
    name: str
    type: str
    service: str
    has_children: bool
    size: int | None = None
    size_human: str = ""
    modified: str | None = None
    modified_human: str = ""
    web_url: str = ""
    icon: str = ""


class ExplorerListing(BaseModel):
    service: str
    parent: str | None = None
    items: list[ExplorerItem]
