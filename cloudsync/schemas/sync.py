"""Sync API schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from cloudsync.models.entity import EntityKind, EntityStatus
from cloudsync.schemas.settings import GeneralSettings


class EntitySavedEvent(BaseModel):
    """Entity state reported by the content layer after a save."""

    id: int = Field(ge=1)
    kind: EntityKind
    title: str = Field(default="", max_length=1000)
    parent_id: int | None = Field(default=None, ge=1)
    status: EntityStatus = EntityStatus.DRAFT
    is_revision: bool = False


class EntityDeletedEvent(BaseModel):
    id: int = Field(ge=1)


class PushResultResponse(BaseModel):
    entity_id: int
    outcomes: dict[str, str]


class DeleteResultResponse(BaseModel):
    entity_id: int
    remote_deleted: dict[str, bool]


class PullResultResponse(BaseModel):
    service: str
    success: bool
    created: int
    skipped: int
    error: str | None = None


class SyncReportResponse(BaseModel):
    notice: str
    pushed: int = 0
    push_failures: int = 0
    pulls: list[PullResultResponse] = Field(default_factory=list)


class CleanupResponse(BaseModel):
    notice: str
    removed: int


class ProviderStatusResponse(BaseModel):
    service: str
    label: str
    connected: bool
    has_cursor: bool
    mapped_entities: int


class SyncStatusResponse(BaseModel):
    providers: list[ProviderStatusResponse]
    general: GeneralSettings
    schedule_minutes: int | None = None


class SyncLogEntryResponse(BaseModel):
    timestamp: str
    level: str
    message: str
    context: dict[str, object]
