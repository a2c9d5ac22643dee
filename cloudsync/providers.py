"""Supported cloud storage providers."""

from __future__ import annotations

from enum import StrEnum

from cloudsync.exceptions import UnknownProviderError


class Provider(StrEnum):
    """Cloud storage provider a local entity can be mirrored to."""

    GOOGLE = "google"
    DROPBOX = "dropbox"
    SHAREPOINT = "sharepoint"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    Provider.GOOGLE: "Google Drive",
    Provider.DROPBOX: "Dropbox",
    Provider.SHAREPOINT: "SharePoint",
}


def parse_provider(value: str | Provider) -> Provider:
    """Return the provider named by *value*.

    Raises UnknownProviderError for anything outside the supported set.
    """
    if isinstance(value, Provider):
        return value
    try:
        return Provider(value.strip().lower())
    except ValueError:
        msg = f"Unknown provider: {value!r}. Available: {[p.value for p in Provider]}"
        raise UnknownProviderError(msg) from None
