"""Bounded, database-backed sync activity log."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select

from cloudsync.models.sync import SyncLogRecord
from cloudsync.services.datetime_service import format_datetime, now_utc

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 200


@dataclass
class SyncLogEntry:
    timestamp: str
    message: str
    level: str = "info"
    context: dict[str, Any] = field(default_factory=dict)


class SyncLog:
    """Ring buffer of recent sync activity. Oldest entries are evicted first.

    Entries are also forwarded to the standard logger; the ring only exists
    so administrators can see recent activity without server log access.
    """

    def __init__(self, session: AsyncSession, capacity: int = DEFAULT_CAPACITY) -> None:
        self._session = session
        self._capacity = capacity

    async def append(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        *,
        level: int = logging.INFO,
    ) -> None:
        """Record *message* with *context* and trim the ring to capacity."""
        context = context or {}
        logger.log(level, "%s %s", message, context)
        self._session.add(
            SyncLogRecord(
                created_at=format_datetime(now_utc()),
                level=logging.getLevelName(level).lower(),
                message=message,
                context=json.dumps(context, default=str),
            )
        )
        await self._session.flush()
        await self._trim()
        await self._session.commit()

    async def entries(self, limit: int | None = None) -> list[SyncLogEntry]:
        """Return entries newest first."""
        stmt = select(SyncLogRecord).order_by(SyncLogRecord.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return [
            SyncLogEntry(
                timestamp=record.created_at,
                message=record.message,
                level=record.level,
                context=json.loads(record.context or "{}"),
            )
            for record in result.scalars().all()
        ]

    async def count(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(SyncLogRecord))
        return int(result.scalar_one())

    async def clear(self) -> None:
        await self._session.execute(delete(SyncLogRecord))
        await self._session.commit()

    async def _trim(self) -> None:
        keep = (
            select(SyncLogRecord.id)
            .order_by(SyncLogRecord.id.desc())
            .limit(self._capacity)
            .scalar_subquery()
        )
        await self._session.execute(delete(SyncLogRecord).where(SyncLogRecord.id.not_in(keep)))
