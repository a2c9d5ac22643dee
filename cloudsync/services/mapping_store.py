"""Entity-to-remote folder mapping persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select

from cloudsync.models.sync import RemoteFolderMapping
from cloudsync.providers import Provider
from cloudsync.services.datetime_service import format_datetime, now_utc

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession


class MappingStore:
    """Reads and writes ``remote_folder_mappings`` rows.

    A row is created once per (entity, provider) pair and afterwards only
    renamed or deleted. Remote ids are opaque strings.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_mapping(self, entity_id: int, provider: Provider) -> RemoteFolderMapping | None:
        stmt = select(RemoteFolderMapping).where(
            RemoteFolderMapping.entity_id == entity_id,
            RemoteFolderMapping.provider == provider.value,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_remote_id(self, entity_id: int, provider: Provider) -> str | None:
        mapping = await self.get_mapping(entity_id, provider)
        return mapping.remote_id if mapping is not None else None

    async def set_entity_remote_mapping(
        self,
        entity_id: int,
        provider: Provider,
        remote_id: str,
        remote_name: str = "",
    ) -> RemoteFolderMapping:
        """Record the remote folder for an entity and commit."""
        now = format_datetime(now_utc())
        mapping = await self.get_mapping(entity_id, provider)
        if mapping is None:
            mapping = RemoteFolderMapping(
                entity_id=entity_id,
                provider=provider.value,
                remote_id=remote_id,
                remote_name=remote_name,
                created_at=now,
                updated_at=now,
            )
            self._session.add(mapping)
        else:
            mapping.remote_id = remote_id
            mapping.remote_name = remote_name
            mapping.updated_at = now
        await self._session.commit()
        return mapping

    async def update_remote_name(self, mapping: RemoteFolderMapping, remote_name: str) -> None:
        mapping.remote_name = remote_name
        mapping.updated_at = format_datetime(now_utc())
        await self._session.commit()

    async def find_entity_by_remote_mapping(self, provider: Provider, remote_id: str) -> int | None:
        """Return the entity id mapped to *remote_id*, or None."""
        stmt = select(RemoteFolderMapping.entity_id).where(
            RemoteFolderMapping.provider == provider.value,
            RemoteFolderMapping.remote_id == remote_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def mappings_for_entity(self, entity_id: int) -> list[RemoteFolderMapping]:
        stmt = (
            select(RemoteFolderMapping)
            .where(RemoteFolderMapping.entity_id == entity_id)
            .order_by(RemoteFolderMapping.provider)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def mapped_entity_ids(self) -> set[int]:
        result = await self._session.execute(select(RemoteFolderMapping.entity_id).distinct())
        return set(result.scalars().all())

    async def count_by_provider(self) -> dict[Provider, int]:
        stmt = select(RemoteFolderMapping.provider, func.count()).group_by(
            RemoteFolderMapping.provider
        )
        result = await self._session.execute(stmt)
        counts = {provider: 0 for provider in Provider}
        known = {provider.value for provider in Provider}
        for provider, count in result.all():
            if provider in known:
                counts[Provider(provider)] = count
        return counts

    async def delete_for_entity(self, entity_id: int) -> int:
        return await self.delete_for_entities([entity_id])

    async def delete_for_entities(self, entity_ids: Iterable[int]) -> int:
        """Delete all mappings of the given entities and commit. Returns rows removed."""
        ids = list(entity_ids)
        if not ids:
            return 0
        result = await self._session.execute(
            delete(RemoteFolderMapping).where(RemoteFolderMapping.entity_id.in_(ids))
        )
        await self._session.commit()
        return result.rowcount or 0

    async def delete_all(self) -> int:
        result = await self._session.execute(delete(RemoteFolderMapping))
        await self._session.commit()
        return result.rowcount or 0
