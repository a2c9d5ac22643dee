"""SQLAlchemy ORM models for CloudSync."""

from cloudsync.models.base import Base
from cloudsync.models.entity import Entity, EntityKind, EntityStatus
from cloudsync.models.sync import RemoteFolderMapping, SettingRecord, SyncLogRecord

__all__ = [
    "Base",
    "Entity",
    "EntityKind",
    "EntityStatus",
    "RemoteFolderMapping",
    "SettingRecord",
    "SyncLogRecord",
]
