"""Tests for provider credential persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from cloudsync.providers import Provider
from cloudsync.services.credential_store import CredentialStore
from cloudsync.services.crypto_service import ENVELOPE_V1, PLAINTEXT_TAG, encrypt_value
from cloudsync.services.settings_repository import SettingsRepository, credentials_namespace

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

KEY = "credential-store-secret-key-0123456789"


@pytest.fixture
def repository(db_session: AsyncSession) -> SettingsRepository:
    return SettingsRepository(db_session)


@pytest.fixture
def store(repository: SettingsRepository) -> CredentialStore:
    return CredentialStore(repository, KEY)


class TestCredentialStore:
    async def test_unset_provider_reads_empty(self, store: CredentialStore) -> None:
        creds = await store.get_credentials(Provider.GOOGLE)
        assert creds.client_id == ""
        assert creds.token_expires_at == 0
        assert not creds.is_connected
        assert not creds.has_client

    async def test_roundtrip_decrypts_sensitive_fields(self, store: CredentialStore) -> None:
        await store.set_credentials(
            Provider.GOOGLE,
            {"client_id": "cid", "client_secret": "csecret", "refresh_token": "rtok"},
        )
        creds = await store.get_credentials(Provider.GOOGLE)
        assert creds.client_id == "cid"
        assert creds.client_secret == "csecret"
        assert creds.refresh_token == "rtok"
        assert creds.is_connected
        assert creds.has_client

    async def test_sensitive_fields_are_encrypted_at_rest(
        self, store: CredentialStore, repository: SettingsRepository
    ) -> None:
        await store.set_credentials(
            Provider.DROPBOX, {"client_id": "key", "client_secret": "dropbox-app-secret"}
        )
        raw = await repository.get_raw_credentials(Provider.DROPBOX)
        assert raw["client_id"] == "key"
        assert raw["client_secret"].startswith(ENVELOPE_V1)
        assert "dropbox-app-secret" not in raw["client_secret"]

    async def test_blank_submission_preserves_stored_secret(self, store: CredentialStore) -> None:
        await store.set_credentials(
            Provider.SHAREPOINT,
            {"client_id": "cid", "client_secret": "secret", "tenant_id": "contoso"},
        )
        await store.set_credentials(
            Provider.SHAREPOINT, {"client_id": "cid2", "client_secret": "  ", "tenant_id": ""}
        )
        creds = await store.get_credentials(Provider.SHAREPOINT)
        assert creds.client_id == "cid2"
        assert creds.client_secret == "secret"
        assert creds.tenant_id == "contoso"

    async def test_blank_access_token_clears_it(self, store: CredentialStore) -> None:
        await store.set_credentials(
            Provider.GOOGLE, {"access_token": "atok", "token_expires_at": 1700000000}
        )
        await store.set_credentials(Provider.GOOGLE, {"access_token": "", "token_expires_at": ""})
        creds = await store.get_credentials(Provider.GOOGLE)
        assert creds.access_token == ""
        assert creds.token_expires_at == 0

    async def test_preserve_empty_off_clears_refresh_token(self, store: CredentialStore) -> None:
        await store.set_credentials(
            Provider.GOOGLE, {"client_id": "cid", "client_secret": "s", "refresh_token": "r"}
        )
        await store.set_credentials(
            Provider.GOOGLE, {"refresh_token": ""}, preserve_empty=False
        )
        creds = await store.get_credentials(Provider.GOOGLE)
        assert not creds.is_connected
        assert creds.has_client

    async def test_unknown_field_rejected(self, store: CredentialStore) -> None:
        with pytest.raises(ValueError, match="Unknown credential fields"):
            await store.set_credentials(Provider.GOOGLE, {"password": "x"})

    async def test_providers_are_isolated(self, store: CredentialStore) -> None:
        await store.set_credentials(Provider.GOOGLE, {"client_id": "google-id"})
        creds = await store.get_credentials(Provider.DROPBOX)
        assert creds.client_id == ""

    async def test_clear_credentials_removes_everything(
        self, store: CredentialStore, repository: SettingsRepository
    ) -> None:
        await store.set_credentials(
            Provider.GOOGLE, {"client_id": "cid", "client_secret": "s", "refresh_token": "r"}
        )
        await store.clear_credentials(Provider.GOOGLE)
        assert await repository.get_group(credentials_namespace(Provider.GOOGLE)) == {}
        assert await repository.get_compat_snapshot() == {}


class TestUndecryptableSecrets:
    async def test_rotated_key_reads_as_disconnected(self, repository: SettingsRepository) -> None:
        await CredentialStore(repository, KEY).set_credentials(
            Provider.GOOGLE, {"client_id": "cid", "client_secret": "s", "refresh_token": "r"}
        )
        creds = await CredentialStore(repository, "rotated-key").get_credentials(Provider.GOOGLE)
        assert creds.client_id == "cid"
        assert creds.client_secret == ""
        assert not creds.is_connected

    async def test_legacy_untagged_value_is_readable(self, repository: SettingsRepository) -> None:
        legacy = encrypt_value("legacy-refresh", KEY)
        await repository.replace_raw_credentials(Provider.DROPBOX, {"refresh_token": legacy})
        creds = await CredentialStore(repository, KEY).get_credentials(Provider.DROPBOX)
        assert creds.refresh_token == "legacy-refresh"

    async def test_degraded_mode_roundtrip(self, repository: SettingsRepository) -> None:
        store = CredentialStore(repository, "")
        await store.set_credentials(Provider.GOOGLE, {"client_secret": "plain-secret"})
        raw = await repository.get_raw_credentials(Provider.GOOGLE)
        assert raw["client_secret"] == PLAINTEXT_TAG + "plain-secret"
        creds = await store.get_credentials(Provider.GOOGLE)
        assert creds.client_secret == "plain-secret"


class TestCompatSnapshot:
    async def test_snapshot_mirrors_at_rest_values(
        self, store: CredentialStore, repository: SettingsRepository
    ) -> None:
        await store.set_credentials(
            Provider.SHAREPOINT,
            {"client_id": "cid", "client_secret": "secret", "tenant_id": "contoso"},
        )
        raw = await repository.get_raw_credentials(Provider.SHAREPOINT)
        snapshot = await repository.get_compat_snapshot()
        assert snapshot["sharepoint_client_id"] == "cid"
        assert snapshot["sharepoint_tenant_id"] == "contoso"
        # Verbatim copy of the ciphertext, never re-encrypted.
        assert snapshot["sharepoint_secret"] == raw["client_secret"]

    async def test_cleared_fields_leave_the_snapshot(
        self, store: CredentialStore, repository: SettingsRepository
    ) -> None:
        await store.set_credentials(
            Provider.DROPBOX, {"client_id": "key", "refresh_token": "r"}
        )
        await store.set_credentials(Provider.DROPBOX, {"refresh_token": ""}, preserve_empty=False)
        snapshot = await repository.get_compat_snapshot()
        assert snapshot["dropbox_app_key"] == "key"
        assert "dropbox_refresh_token" not in snapshot
