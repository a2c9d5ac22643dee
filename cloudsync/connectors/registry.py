"""Provider registry: maps each supported provider to its connector class."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cloudsync.connectors.dropbox import DropboxConnector
from cloudsync.connectors.google_drive import GoogleDriveConnector
from cloudsync.connectors.sharepoint import SharePointConnector
from cloudsync.providers import Provider, parse_provider

if TYPE_CHECKING:
    import httpx

    from cloudsync.connectors.oauth import OAuthConnector
    from cloudsync.services.credential_store import CredentialStore

CONNECTORS: dict[Provider, type[OAuthConnector]] = {
    Provider.GOOGLE: GoogleDriveConnector,
    Provider.DROPBOX: DropboxConnector,
    Provider.SHAREPOINT: SharePointConnector,
}


def get_connector(
    provider: Provider | str,
    credentials: CredentialStore,
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OAuthConnector:
    """Create the connector for *provider*.

    Raises UnknownProviderError if the provider is not supported.
    """
    connector_cls = CONNECTORS[parse_provider(provider)]
    return connector_cls(credentials, timeout=timeout, transport=transport)


def build_connectors(
    credentials: CredentialStore,
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[Provider, OAuthConnector]:
    """Create one connector per supported provider."""
    return {
        provider: get_connector(provider, credentials, timeout=timeout, transport=transport)
        for provider in CONNECTORS
    }


def list_providers() -> list[Provider]:
    """Return the supported providers."""
    return list(CONNECTORS)
