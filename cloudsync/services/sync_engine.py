"""Reconciliation engine: mirrors courses and lessons to remote folders.

Push path: local save/delete events become create/rename/delete calls on
every connected provider. Pull path: each provider's change feed is replayed
into new local courses. Per (entity, provider) the state moves from
Unmapped to Mapped on a successful create and is dropped on delete.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from cloudsync.connectors.registry import build_connectors
from cloudsync.models.entity import EntityKind, EntityStatus
from cloudsync.providers import Provider
from cloudsync.schemas.settings import GeneralSettings, PriorityMode, SyncInterval
from cloudsync.services.content_store import EntitySnapshot, SqlContentStore
from cloudsync.services.credential_store import CredentialStore
from cloudsync.services.folder_names import derive_folder_name, strip_markup
from cloudsync.services.mapping_store import MappingStore
from cloudsync.services.settings_repository import SettingsRepository
from cloudsync.services.sync_log import SyncLog

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession

    from cloudsync.config import Settings
    from cloudsync.connectors.base import ProviderConnector
    from cloudsync.models.entity import Entity
    from cloudsync.services.content_store import ContentStore
    from cloudsync.services.folder_names import NameFilter

logger = logging.getLogger(__name__)


class PushOutcome(StrEnum):
    CREATED = "created"
    RENAMED = "renamed"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


@dataclass
class PushResult:
    """Per-provider outcome of pushing one entity."""

    entity_id: int
    outcomes: dict[Provider, PushOutcome] = field(default_factory=dict)

    @property
    def failed(self) -> list[Provider]:
        return [p for p, outcome in self.outcomes.items() if outcome is PushOutcome.FAILED]


@dataclass
class PullResult:
    """Outcome of one provider's pull."""

    provider: Provider
    success: bool = False
    created: int = 0
    skipped: int = 0
    error: str | None = None


@dataclass
class SyncReport:
    """Summary of a push-all and/or pull-all run."""

    pushed: int = 0
    push_failures: int = 0
    pulls: list[PullResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.push_failures == 0 and all(
            pull.success or pull.error == "not-connected" for pull in self.pulls
        )

    def merge_push(self, results: Sequence[PushResult]) -> None:
        self.pushed += len(results)
        self.push_failures += sum(1 for result in results if result.failed)


@dataclass
class ProviderStatus:
    provider: Provider
    connected: bool
    has_cursor: bool
    mapped_entities: int


class SyncEngine:
    """Orchestrates push and pull between the content store and providers."""

    def __init__(
        self,
        *,
        session: AsyncSession,
        content: ContentStore,
        mappings: MappingStore,
        settings: SettingsRepository,
        connectors: Mapping[Provider, ProviderConnector],
        sync_log: SyncLog,
        general: GeneralSettings,
        name_filters: Sequence[NameFilter] = (),
    ) -> None:
        self._session = session
        self._content = content
        self._mappings = mappings
        self._settings = settings
        self._connectors = dict(connectors)
        self._log = sync_log
        self._general = general
        self._name_filters = tuple(name_filters)

    @property
    def general(self) -> GeneralSettings:
        return self._general

    # Push path

    async def on_entity_saved(self, entity: Entity | EntitySnapshot) -> PushResult:
        """Create or rename the entity's folder on every connected provider."""
        entity = EntitySnapshot.of(entity)
        result = PushResult(entity_id=entity.id)
        if entity.is_revision or entity.kind not in (EntityKind.COURSE, EntityKind.LESSON):
            return result
        name = derive_folder_name(entity, self._name_filters)
        if not name:
            return result

        for provider, connector in self._connectors.items():
            try:
                if not await connector.is_connected():
                    result.outcomes[provider] = PushOutcome.DISCONNECTED
                    continue
                result.outcomes[provider] = await self._push_to_provider(
                    entity, name, provider, connector
                )
            except Exception:
                await self._session.rollback()
                logger.exception("Pushing entity %s to %s failed", entity.id, provider)
                result.outcomes[provider] = PushOutcome.FAILED

        if entity.kind == EntityKind.COURSE and PushOutcome.CREATED in result.outcomes.values():
            await self._push_child_lessons(entity.id)
        return result

    async def _push_child_lessons(self, course_id: int) -> None:
        lessons = await self._content.list_entities(EntityKind.LESSON, parent_id=course_id)
        for lesson in [EntitySnapshot.of(e) for e in lessons]:
            await self.on_entity_saved(lesson)

    async def _push_to_provider(
        self,
        entity: EntitySnapshot,
        name: str,
        provider: Provider,
        connector: ProviderConnector,
    ) -> PushOutcome:
        mapping = await self._mappings.get_mapping(entity.id, provider)
        if mapping is not None:
            if mapping.remote_name == name:
                return PushOutcome.UNCHANGED
            if not await connector.rename_folder(mapping.remote_id, name):
                await self._log.append(
                    "Remote folder rename failed",
                    {"entity_id": entity.id, "service": provider.value},
                    level=logging.WARNING,
                )
                return PushOutcome.FAILED
            await self._mappings.update_remote_name(mapping, name)
            await self._log.append(
                "Renamed remote folder",
                {"entity_id": entity.id, "service": provider.value, "name": name},
            )
            return PushOutcome.RENAMED

        if entity.kind == EntityKind.LESSON:
            parent_remote_id = None
            if entity.parent_id is not None:
                parent_remote_id = await self._mappings.get_remote_id(entity.parent_id, provider)
            if parent_remote_id is None:
                # Pushed again once the parent course gains a mapping.
                logger.debug("Lesson %s has no mapped parent on %s", entity.id, provider)
                return PushOutcome.SKIPPED
        else:
            parent_remote_id = self._general.root_for(provider) or None

        remote_id = await connector.create_folder(name, parent_remote_id)
        if remote_id is None:
            await self._log.append(
                "Remote folder create failed",
                {"entity_id": entity.id, "service": provider.value},
                level=logging.WARNING,
            )
            return PushOutcome.FAILED
        await self._mappings.set_entity_remote_mapping(entity.id, provider, remote_id, name)
        await self._log.append(
            "Created remote folder",
            {"entity_id": entity.id, "service": provider.value, "remote_id": remote_id},
        )
        return PushOutcome.CREATED

    async def on_entity_deleted(self, entity_id: int) -> dict[Provider, bool]:
        """Delete the entity's remote folders and drop its mappings.

        Mappings are removed whatever the remote calls return; a failed
        remote delete is logged and not retried.
        """
        results: dict[Provider, bool] = {}
        for mapping in await self._mappings.mappings_for_entity(entity_id):
            try:
                provider = Provider(mapping.provider)
            except ValueError:
                logger.warning("Dropping mapping for unknown provider %r", mapping.provider)
                continue
            connector = self._connectors.get(provider)
            deleted = False
            if connector is not None:
                try:
                    deleted = await connector.delete_folder(mapping.remote_id)
                except Exception:
                    logger.exception(
                        "Deleting folder for entity %s on %s failed", entity_id, provider
                    )
            results[provider] = deleted
            if not deleted:
                await self._log.append(
                    "Remote folder delete failed; mapping dropped",
                    {"entity_id": entity_id, "service": provider.value},
                    level=logging.WARNING,
                )
        await self._mappings.delete_for_entity(entity_id)
        return results

    async def push_all(self) -> list[PushResult]:
        """Push every course, then every lesson, so parents are mapped first."""
        results: list[PushResult] = []
        for kind in (EntityKind.COURSE, EntityKind.LESSON):
            snapshots = [EntitySnapshot.of(e) for e in await self._content.list_entities(kind)]
            for snapshot in snapshots:
                results.append(await self.on_entity_saved(snapshot))
        return results

    # Pull path

    async def pull_provider(self, provider: Provider) -> PullResult:
        """Replay one provider's change feed into local courses.

        The cursor is stored only after the whole batch was applied, so a
        failure part-way replays the same batch next run. Entries already
        mapped are skipped, which keeps replays idempotent.
        """
        result = PullResult(provider=provider)
        connector = self._connectors.get(provider)
        if connector is None:
            result.error = "not-configured"
            return result
        try:
            if not await connector.is_connected():
                result.error = "not-connected"
                return result

            cursor = await self._settings.get_cursor(provider)
            batch = await connector.list_changes(cursor)
            if batch is None:
                result.error = "list-changes-failed"
                await self._log.append(
                    "Could not list remote changes",
                    {"service": provider.value},
                    level=logging.WARNING,
                )
                return result

            seen: set[str] = set()
            for change in batch.entries:
                if change.removed or not change.is_folder or change.remote_id in seen:
                    result.skipped += 1
                    continue
                seen.add(change.remote_id)
                title = strip_markup(change.name)
                if not title:
                    result.skipped += 1
                    continue
                existing = await self._mappings.find_entity_by_remote_mapping(
                    provider, change.remote_id
                )
                if existing is not None:
                    result.skipped += 1
                    continue
                entity = await self._content.create_entity(
                    kind=EntityKind.COURSE, title=title, status=EntityStatus.PUBLISHED
                )
                await self._mappings.set_entity_remote_mapping(
                    entity.id, provider, change.remote_id, change.name
                )
                result.created += 1

            if batch.next_cursor:
                await self._settings.set_cursor(provider, batch.next_cursor)
            result.success = True
        except Exception:
            await self._session.rollback()
            logger.exception("Pull from %s failed; cursor left unchanged", provider)
            result.error = "unexpected-error"

        await self._log.append(
            "Pulled remote changes" if result.success else "Pull failed",
            {
                "service": provider.value,
                "created": result.created,
                "skipped": result.skipped,
                "error": result.error,
            },
            level=logging.INFO if result.success else logging.WARNING,
        )
        return result

    async def pull_all(self) -> list[PullResult]:
        """Pull every provider independently."""
        return [await self.pull_provider(provider) for provider in self._connectors]

    # Administrative operations

    async def manual_sync(self) -> SyncReport:
        """Run push-all and/or pull-all as the priority mode allows."""
        report = SyncReport()
        mode = self._general.priority_mode
        if mode in (PriorityMode.LOCAL, PriorityMode.BIDIRECTIONAL):
            report.merge_push(await self.push_all())
        if mode in (PriorityMode.REMOTE, PriorityMode.BIDIRECTIONAL):
            report.pulls = await self.pull_all()
        return report

    async def force_sync(self) -> SyncReport:
        """Run push-all and pull-all regardless of the priority mode."""
        report = SyncReport()
        report.merge_push(await self.push_all())
        report.pulls = await self.pull_all()
        return report

    async def rebuild_structure(self) -> SyncReport:
        """Drop every mapping and recreate the remote structure from scratch.

        Cursors are reset too: the next pull starts from "now" instead of
        replaying folders whose mappings were just dropped.
        """
        removed = await self._mappings.delete_all()
        await self._settings.clear_all_cursors()
        await self._log.append("Rebuilding remote structure", {"mappings_removed": removed})
        report = SyncReport()
        report.merge_push(await self.push_all())
        return report

    async def cleanup_orphaned_mappings(self) -> int:
        """Remove mappings whose entity no longer exists. Returns rows removed."""
        mapped = await self._mappings.mapped_entity_ids()
        orphaned = mapped - await self._content.existing_ids(mapped)
        removed = await self._mappings.delete_for_entities(orphaned)
        if removed:
            await self._log.append("Removed orphaned mappings", {"count": removed})
        return removed

    async def sync_status(self) -> list[ProviderStatus]:
        counts = await self._mappings.count_by_provider()
        statuses: list[ProviderStatus] = []
        for provider, connector in self._connectors.items():
            statuses.append(
                ProviderStatus(
                    provider=provider,
                    connected=await connector.is_connected(),
                    has_cursor=bool(await self._settings.get_cursor(provider)),
                    mapped_entities=counts.get(provider, 0),
                )
            )
        return statuses


def general_defaults(settings: Settings) -> GeneralSettings:
    """General settings used until an administrator saves their own."""
    try:
        interval = SyncInterval(settings.default_sync_interval)
    except ValueError:
        logger.warning("Invalid DEFAULT_SYNC_INTERVAL %r", settings.default_sync_interval)
        interval = SyncInterval.TEN
    return GeneralSettings(auto_sync=settings.default_auto_sync, sync_interval=interval)


async def create_sync_engine(
    session: AsyncSession,
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    connectors: Mapping[Provider, ProviderConnector] | None = None,
    name_filters: Sequence[NameFilter] = (),
) -> SyncEngine:
    """Wire a SyncEngine and its stores onto *session*."""
    repository = SettingsRepository(session, general_defaults=general_defaults(settings))
    if connectors is None:
        credentials = CredentialStore(repository, settings.secret_key)
        connectors = build_connectors(
            credentials, timeout=settings.http_timeout_seconds, transport=transport
        )
    return SyncEngine(
        session=session,
        content=SqlContentStore(session),
        mappings=MappingStore(session),
        settings=repository,
        connectors=connectors,
        sync_log=SyncLog(session, capacity=settings.sync_log_capacity),
        general=await repository.get_general(),
        name_filters=name_filters,
    )
