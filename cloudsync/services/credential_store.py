"""Per-provider OAuth credential persistence with encryption at rest."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cloudsync.providers import Provider
from cloudsync.services.crypto_service import open_secret, seal_secret

if TYPE_CHECKING:
    from collections.abc import Mapping

    from cloudsync.services.settings_repository import SettingsRepository

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS = (
    "client_id",
    "client_secret",
    "refresh_token",
    "access_token",
    "token_expires_at",
    "tenant_id",
)

SENSITIVE_FIELDS = frozenset({"client_secret", "refresh_token", "access_token"})

# Blank submissions for these fields keep the stored value.
PRESERVE_ON_EMPTY = frozenset({"client_id", "client_secret", "refresh_token", "tenant_id"})

# Flat option names used by earlier installations, kept readable for
# tooling that still inspects them.
LEGACY_OPTION_NAMES: dict[Provider, dict[str, str]] = {
    Provider.GOOGLE: {
        "client_id": "google_client_id",
        "client_secret": "google_client_secret",
        "refresh_token": "google_refresh_token",
        "access_token": "google_access_token",
        "token_expires_at": "google_token_expires",
    },
    Provider.DROPBOX: {
        "client_id": "dropbox_app_key",
        "client_secret": "dropbox_app_secret",
        "refresh_token": "dropbox_refresh_token",
        "access_token": "dropbox_access_token",
        "token_expires_at": "dropbox_token_expires",
    },
    Provider.SHAREPOINT: {
        "client_id": "sharepoint_client_id",
        "client_secret": "sharepoint_secret",
        "tenant_id": "sharepoint_tenant_id",
        "refresh_token": "sharepoint_refresh_token",
        "access_token": "sharepoint_access_token",
        "token_expires_at": "sharepoint_token_expires",
    },
}


@dataclass
class ProviderCredentials:
    """Decrypted credentials for one provider."""

    provider: Provider
    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = ""
    access_token: str = ""
    token_expires_at: int = 0
    tenant_id: str = ""

    @property
    def is_connected(self) -> bool:
        return bool(self.refresh_token)

    @property
    def has_client(self) -> bool:
        return bool(self.client_id and self.client_secret)


def _parse_expiry(value: str) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


class CredentialStore:
    """Read and write provider credentials through the settings repository."""

    def __init__(self, repository: SettingsRepository, secret_key: str) -> None:
        self._repository = repository
        self._secret_key = secret_key

    async def get_credentials(self, provider: Provider) -> ProviderCredentials:
        """Return decrypted credentials. Undecryptable secrets read as empty."""
        stored = await self._repository.get_raw_credentials(provider)
        values: dict[str, str] = {}
        for name in CREDENTIAL_FIELDS:
            raw = stored.get(name, "")
            values[name] = open_secret(raw, self._secret_key) if name in SENSITIVE_FIELDS else raw
        return ProviderCredentials(
            provider=provider,
            client_id=values["client_id"],
            client_secret=values["client_secret"],
            refresh_token=values["refresh_token"],
            access_token=values["access_token"],
            token_expires_at=_parse_expiry(values["token_expires_at"]),
            tenant_id=values["tenant_id"],
        )

    async def set_credentials(
        self,
        provider: Provider,
        fields: Mapping[str, str | int | None],
        *,
        preserve_empty: bool = True,
    ) -> None:
        """Update only the fields present in *fields*.

        A blank value clears the stored field, except for fields in
        ``PRESERVE_ON_EMPTY`` while *preserve_empty* is on.
        """
        unknown = set(fields) - set(CREDENTIAL_FIELDS)
        if unknown:
            msg = f"Unknown credential fields: {sorted(unknown)}"
            raise ValueError(msg)

        stored = await self._repository.get_raw_credentials(provider)
        for name, value in fields.items():
            text = "" if value is None else str(value).strip()
            if not text and preserve_empty and name in PRESERVE_ON_EMPTY and stored.get(name):
                continue
            if name in SENSITIVE_FIELDS:
                stored[name] = seal_secret(text, self._secret_key)
            else:
                stored[name] = text

        stored = {name: value for name, value in stored.items() if value}
        await self._repository.replace_raw_credentials(provider, stored)
        await self._refresh_compat_snapshot(provider, stored)
        logger.debug("Updated %s credentials: %s", provider, sorted(fields))

    async def clear_credentials(self, provider: Provider) -> None:
        """Delete every stored field for *provider*."""
        await self._repository.replace_raw_credentials(provider, {})
        await self._refresh_compat_snapshot(provider, {})
        logger.info("Cleared all stored %s credentials", provider)

    async def _refresh_compat_snapshot(self, provider: Provider, stored: Mapping[str, str]) -> None:
        # Copies at-rest values verbatim so secrets are never encrypted twice.
        names = LEGACY_OPTION_NAMES[provider]
        present = {names[field]: value for field, value in stored.items() if field in names}
        stale = [option for option in names.values() if option not in present]
        await self._repository.update_compat_snapshot(present, stale)
