"""Tests for the provider registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from cloudsync.connectors.base import ProviderConnector
from cloudsync.connectors.dropbox import DropboxConnector
from cloudsync.connectors.google_drive import GoogleDriveConnector
from cloudsync.connectors.registry import build_connectors, get_connector, list_providers
from cloudsync.connectors.sharepoint import SharePointConnector
from cloudsync.exceptions import UnknownProviderError
from cloudsync.providers import Provider, parse_provider

if TYPE_CHECKING:
    from cloudsync.services.credential_store import CredentialStore


class TestRegistry:
    def test_list_providers(self) -> None:
        assert list_providers() == [Provider.GOOGLE, Provider.DROPBOX, Provider.SHAREPOINT]

    def test_get_connector_by_slug(self, credentials: CredentialStore) -> None:
        assert isinstance(get_connector("google", credentials, timeout=5), GoogleDriveConnector)
        assert isinstance(get_connector(" Dropbox ", credentials, timeout=5), DropboxConnector)
        assert isinstance(
            get_connector(Provider.SHAREPOINT, credentials, timeout=5), SharePointConnector
        )

    def test_unknown_provider(self, credentials: CredentialStore) -> None:
        with pytest.raises(UnknownProviderError, match="Unknown provider") as excinfo:
            get_connector("onedrive", credentials, timeout=5)
        assert excinfo.value.notice == "invalid-service"

    def test_build_connectors_satisfy_protocol(self, credentials: CredentialStore) -> None:
        connectors = build_connectors(credentials, timeout=5)
        assert list(connectors) == list(Provider)
        for provider, connector in connectors.items():
            assert isinstance(connector, ProviderConnector)
            assert connector.provider is provider


class TestProviders:
    def test_labels(self) -> None:
        assert Provider.GOOGLE.label == "Google Drive"
        assert Provider.SHAREPOINT.label == "SharePoint"

    def test_parse_provider_passthrough(self) -> None:
        assert parse_provider(Provider.DROPBOX) is Provider.DROPBOX
