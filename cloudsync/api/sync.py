"""Sync API endpoints: entity events, sync actions, settings and the activity log."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cloudsync.api.deps import (
    get_repository,
    get_scheduler,
    get_session,
    get_settings,
    get_sync_engine,
    require_admin,
)
from cloudsync.config import Settings
from cloudsync.schemas.settings import GeneralSettings
from cloudsync.schemas.sync import (
    CleanupResponse,
    DeleteResultResponse,
    EntityDeletedEvent,
    EntitySavedEvent,
    ProviderStatusResponse,
    PullResultResponse,
    PushResultResponse,
    SyncLogEntryResponse,
    SyncReportResponse,
    SyncStatusResponse,
)
from cloudsync.services.content_store import SqlContentStore
from cloudsync.services.scheduler import SyncScheduler
from cloudsync.services.settings_repository import SettingsRepository
from cloudsync.services.sync_engine import SyncEngine, SyncReport
from cloudsync.services.sync_log import SyncLog

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/sync",
    tags=["sync"],
    dependencies=[Depends(require_admin)],
)


def _report_response(report: SyncReport) -> SyncReportResponse:
    return SyncReportResponse(
        notice="sync-complete" if report.ok else "sync-partial",
        pushed=report.pushed,
        push_failures=report.push_failures,
        pulls=[
            PullResultResponse(
                service=pull.provider.value,
                success=pull.success,
                created=pull.created,
                skipped=pull.skipped,
                error=pull.error,
            )
            for pull in report.pulls
        ],
    )


@router.post("/events/saved", response_model=PushResultResponse)
async def entity_saved_endpoint(
    body: EntitySavedEvent,
    session: Annotated[AsyncSession, Depends(get_session)],
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
) -> PushResultResponse:
    """Record a saved course or lesson and push it to connected providers."""
    entity = await SqlContentStore(session).upsert_entity(
        entity_id=body.id,
        kind=body.kind,
        title=body.title,
        status=body.status,
        parent_id=body.parent_id,
        is_revision=body.is_revision,
    )
    result = await engine.on_entity_saved(entity)
    return PushResultResponse(
        entity_id=result.entity_id,
        outcomes={provider.value: outcome.value for provider, outcome in result.outcomes.items()},
    )


@router.post("/events/deleted", response_model=DeleteResultResponse)
async def entity_deleted_endpoint(
    body: EntityDeletedEvent,
    session: Annotated[AsyncSession, Depends(get_session)],
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
) -> DeleteResultResponse:
    """Delete the entity's remote folders, its mappings and the local record."""
    results = await engine.on_entity_deleted(body.id)
    await SqlContentStore(session).delete_entity(body.id)
    return DeleteResultResponse(
        entity_id=body.id,
        remote_deleted={provider.value: ok for provider, ok in results.items()},
    )


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status_endpoint(
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> SyncStatusResponse:
    statuses = await engine.sync_status()
    return SyncStatusResponse(
        providers=[
            ProviderStatusResponse(
                service=status.provider.value,
                label=status.provider.label,
                connected=status.connected,
                has_cursor=status.has_cursor,
                mapped_entities=status.mapped_entities,
            )
            for status in statuses
        ],
        general=engine.general,
        schedule_minutes=scheduler.interval_minutes(),
    )


@router.post("/manual", response_model=SyncReportResponse)
async def manual_sync_endpoint(
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
) -> SyncReportResponse:
    """Push and/or pull now, as the priority mode allows."""
    return _report_response(await engine.manual_sync())


@router.post("/force", response_model=SyncReportResponse)
async def force_sync_endpoint(
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
) -> SyncReportResponse:
    """Push and pull now in both directions."""
    return _report_response(await engine.force_sync())


@router.post("/rebuild", response_model=SyncReportResponse)
async def rebuild_endpoint(
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
) -> SyncReportResponse:
    """Drop all mappings and recreate the remote folder structure."""
    return _report_response(await engine.rebuild_structure())


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_endpoint(
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
) -> CleanupResponse:
    removed = await engine.cleanup_orphaned_mappings()
    return CleanupResponse(notice="cleanup-complete", removed=removed)


@router.get("/settings", response_model=GeneralSettings)
async def get_general_settings_endpoint(
    repository: Annotated[SettingsRepository, Depends(get_repository)],
) -> GeneralSettings:
    return await repository.get_general()


@router.put("/settings", response_model=GeneralSettings)
async def update_general_settings_endpoint(
    body: GeneralSettings,
    repository: Annotated[SettingsRepository, Depends(get_repository)],
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> GeneralSettings:
    """Save general settings and re-arm the pull schedule."""
    await repository.save_general(body)
    scheduler.apply(body)
    logger.info(
        "General settings updated (auto_sync=%s, interval=%s, priority=%s)",
        body.auto_sync,
        body.sync_interval,
        body.priority_mode,
    )
    return body


@router.get("/logs", response_model=list[SyncLogEntryResponse])
async def list_logs_endpoint(
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    limit: Annotated[int | None, Query(ge=1, le=1000)] = None,
) -> list[SyncLogEntryResponse]:
    """Return recent sync activity, newest first."""
    entries = await SyncLog(session, capacity=settings.sync_log_capacity).entries(limit)
    return [
        SyncLogEntryResponse(
            timestamp=entry.timestamp,
            level=entry.level,
            message=entry.message,
            context=entry.context,
        )
        for entry in entries
    ]


@router.delete("/logs", status_code=204)
async def clear_logs_endpoint(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> None:
    await SyncLog(session).clear()
