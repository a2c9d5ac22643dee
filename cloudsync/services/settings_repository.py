"""Typed access to persisted settings groups.

Every logical group (general options, per-provider credentials, change
cursors, the legacy option snapshot) is a namespace of JSON-encoded values in
the ``settings`` table. Callers use the typed methods below and never build
keys themselves.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from sqlalchemy import delete, select

from cloudsync.models.sync import SettingRecord
from cloudsync.schemas.settings import GeneralSettings
from cloudsync.services.datetime_service import format_datetime, now_utc

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from cloudsync.providers import Provider

logger = logging.getLogger(__name__)

GENERAL_NAMESPACE = "general"
CURSOR_NAMESPACE = "cursors"
COMPAT_NAMESPACE = "compat"


def credentials_namespace(provider: Provider) -> str:
    return f"credentials:{provider.value}"


class SettingsRepository:
    """Persisted settings groups for one database session."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        general_defaults: GeneralSettings | None = None,
    ) -> None:
        self._session = session
        self._general_defaults = general_defaults or GeneralSettings()

    async def get_group(self, namespace: str) -> dict[str, Any]:
        """Return all values stored under *namespace*."""
        stmt = select(SettingRecord).where(SettingRecord.namespace == namespace)
        result = await self._session.execute(stmt)
        values: dict[str, Any] = {}
        for record in result.scalars().all():
            try:
                values[record.key] = json.loads(record.value)
            except json.JSONDecodeError:
                logger.warning("Ignoring malformed setting %s.%s", namespace, record.key)
        return values

    async def get_value(self, namespace: str, key: str, default: Any = None) -> Any:
        stmt = select(SettingRecord).where(
            SettingRecord.namespace == namespace, SettingRecord.key == key
        )
        result = await self._session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            return default
        try:
            return json.loads(record.value)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed setting %s.%s", namespace, key)
            return default

    async def set_values(self, namespace: str, values: Mapping[str, Any]) -> None:
        """Upsert *values* into *namespace* and commit (last write wins)."""
        if not values:
            return
        stmt = select(SettingRecord).where(
            SettingRecord.namespace == namespace,
            SettingRecord.key.in_(list(values)),
        )
        result = await self._session.execute(stmt)
        existing = {record.key: record for record in result.scalars().all()}
        now = format_datetime(now_utc())
        for key, value in values.items():
            encoded = json.dumps(value)
            record = existing.get(key)
            if record is None:
                self._session.add(
                    SettingRecord(namespace=namespace, key=key, value=encoded, updated_at=now)
                )
            else:
                record.value = encoded
                record.updated_at = now
        await self._session.commit()

    async def replace_group(self, namespace: str, values: Mapping[str, Any]) -> None:
        """Replace the whole *namespace* with *values* and commit."""
        await self._session.execute(
            delete(SettingRecord).where(SettingRecord.namespace == namespace)
        )
        now = format_datetime(now_utc())
        for key, value in values.items():
            self._session.add(
                SettingRecord(namespace=namespace, key=key, value=json.dumps(value), updated_at=now)
            )
        await self._session.commit()

    async def delete_values(self, namespace: str, keys: list[str] | None = None) -> None:
        """Delete *keys* from *namespace* (all keys when None) and commit."""
        stmt = delete(SettingRecord).where(SettingRecord.namespace == namespace)
        if keys is not None:
            stmt = stmt.where(SettingRecord.key.in_(keys))
        await self._session.execute(stmt)
        await self._session.commit()

    # General settings

    async def get_general(self) -> GeneralSettings:
        """Return general settings, falling back to defaults for unset or invalid values."""
        stored = await self.get_group(GENERAL_NAMESPACE)
        merged = {**self._general_defaults.model_dump(mode="json"), **stored}
        try:
            return GeneralSettings.model_validate(merged)
        except ValidationError:
            logger.warning("Stored general settings are invalid; using defaults")
            return self._general_defaults.model_copy()

    async def save_general(self, general: GeneralSettings) -> None:
        await self.set_values(GENERAL_NAMESPACE, general.model_dump(mode="json"))

    # Change cursors

    async def get_cursor(self, provider: Provider) -> str:
        """Return the stored change cursor for *provider*, or "" before the first run."""
        value = await self.get_value(CURSOR_NAMESPACE, provider.value, "")
        return value if isinstance(value, str) else ""

    async def set_cursor(self, provider: Provider, token: str) -> None:
        await self.set_values(CURSOR_NAMESPACE, {provider.value: token})

    async def clear_cursor(self, provider: Provider) -> None:
        await self.delete_values(CURSOR_NAMESPACE, [provider.value])

    async def clear_all_cursors(self) -> None:
        await self.delete_values(CURSOR_NAMESPACE)

    # Credentials (at-rest form, see CredentialStore)

    async def get_raw_credentials(self, provider: Provider) -> dict[str, str]:
        stored = await self.get_group(credentials_namespace(provider))
        return {key: str(value) for key, value in stored.items() if value is not None}

    async def replace_raw_credentials(self, provider: Provider, values: Mapping[str, str]) -> None:
        await self.replace_group(credentials_namespace(provider), values)

    async def get_compat_snapshot(self) -> dict[str, Any]:
        return await self.get_group(COMPAT_NAMESPACE)

    async def update_compat_snapshot(
        self, values: Mapping[str, str], stale_keys: list[str]
    ) -> None:
        """Write the legacy option view: upsert *values*, drop *stale_keys*."""
        if stale_keys:
            await self.delete_values(COMPAT_NAMESPACE, stale_keys)
        await self.set_values(COMPAT_NAMESPACE, values)
