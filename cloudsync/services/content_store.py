"""Local content store: the courses and lessons the sync engine mirrors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import select

from cloudsync.models.entity import Entity, EntityKind, EntityStatus
from cloudsync.services.datetime_service import format_datetime, now_utc

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class EntitySnapshot:
    """Detached copy of the entity fields the sync engine reads."""

    id: int
    kind: str
    title: str
    parent_id: int | None = None
    status: str = EntityStatus.DRAFT
    is_revision: bool = False

    @classmethod
    def of(cls, entity: Entity | EntitySnapshot) -> EntitySnapshot:
        if isinstance(entity, EntitySnapshot):
            return entity
        return cls(
            id=entity.id,
            kind=entity.kind,
            title=entity.title or "",
            parent_id=entity.parent_id,
            status=entity.status,
            is_revision=bool(entity.is_revision),
        )


@runtime_checkable
class ContentStore(Protocol):
    """Operations the sync engine needs from the content layer."""

    async def get_entity(self, entity_id: int) -> Entity | None: ...

    async def create_entity(
        self,
        *,
        kind: EntityKind,
        title: str,
        status: EntityStatus,
        parent_id: int | None = None,
    ) -> Entity: ...

    async def list_entities(
        self, kind: EntityKind | None = None, parent_id: int | None = None
    ) -> list[Entity]: ...

    async def existing_ids(self, entity_ids: Iterable[int]) -> set[int]: ...


class SqlContentStore:
    """Content store backed by the ``entities`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_entity(self, entity_id: int) -> Entity | None:
        return await self._session.get(Entity, entity_id)

    async def create_entity(
        self,
        *,
        kind: EntityKind,
        title: str,
        status: EntityStatus,
        parent_id: int | None = None,
    ) -> Entity:
        """Add a new entity and flush it so it has an id. The caller commits."""
        now = format_datetime(now_utc())
        entity = Entity(
            kind=kind,
            title=title,
            status=status,
            parent_id=parent_id,
            is_revision=False,
            created_at=now,
            updated_at=now,
        )
        self._session.add(entity)
        await self._session.flush()
        return entity

    async def upsert_entity(
        self,
        *,
        entity_id: int,
        kind: EntityKind,
        title: str,
        status: EntityStatus,
        parent_id: int | None = None,
        is_revision: bool = False,
    ) -> Entity:
        """Record the state reported by a save event and commit."""
        now = format_datetime(now_utc())
        entity = await self._session.get(Entity, entity_id)
        if entity is None:
            entity = Entity(id=entity_id, created_at=now)
            self._session.add(entity)
        entity.kind = kind
        entity.title = title
        entity.status = status
        entity.parent_id = parent_id
        entity.is_revision = is_revision
        entity.updated_at = now
        await self._session.commit()
        return entity

    async def delete_entity(self, entity_id: int) -> bool:
        """Delete an entity. Returns True if it existed."""
        entity = await self._session.get(Entity, entity_id)
        if entity is None:
            return False
        await self._session.delete(entity)
        await self._session.commit()
        return True

    async def list_entities(
        self, kind: EntityKind | None = None, parent_id: int | None = None
    ) -> list[Entity]:
        stmt = select(Entity).where(Entity.is_revision.is_(False)).order_by(Entity.id)
        if kind is not None:
            stmt = stmt.where(Entity.kind == kind)
        if parent_id is not None:
            stmt = stmt.where(Entity.parent_id == parent_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def existing_ids(self, entity_ids: Iterable[int]) -> set[int]:
        ids = list(entity_ids)
        if not ids:
            return set()
        result = await self._session.execute(select(Entity.id).where(Entity.id.in_(ids)))
        return set(result.scalars().all())
