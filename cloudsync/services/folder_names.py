"""Derive remote folder names from entity titles."""

from __future__ import annotations

import re
from html.parser import HTMLParser
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cloudsync.services.content_store import EntitySnapshot

# Text inside these elements is never part of a visible title.
_SKIPPED_TAGS = frozenset({"script", "style"})
_WHITESPACE_RE = re.compile(r"\s+")


class NameFilter(Protocol):
    """Transform applied to a title before it becomes a folder name."""

    def __call__(self, name: str, entity: EntitySnapshot) -> str: ...


class _TagStripper(HTMLParser):
    """Collect text content, dropping markup and script/style bodies."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag.lower() in _SKIPPED_TAGS:
            self._skip_depth += 1

    def handle_endtag(self, tag: str) -> None:
        if tag.lower() in _SKIPPED_TAGS and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self._parts.append(data)

    def text(self) -> str:
        return "".join(self._parts)


def strip_markup(value: str) -> str:
    """Remove tags, decode entities and collapse whitespace."""
    stripper = _TagStripper()
    stripper.feed(value)
    stripper.close()
    return _WHITESPACE_RE.sub(" ", stripper.text()).strip()


def derive_folder_name(entity: EntitySnapshot, filters: Sequence[NameFilter] = ()) -> str:
    """Return the remote folder name for *entity*, or "" when there is none."""
    name = entity.title or ""
    for name_filter in filters:
        name = name_filter(name, entity)
    return strip_markup(name)
