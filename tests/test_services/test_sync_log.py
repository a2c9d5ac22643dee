"""Tests for the bounded sync activity log."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cloudsync.services.sync_log import SyncLog

if TYPE_CHECKING:
    import pytest
    from sqlalchemy.ext.asyncio import AsyncSession


class TestSyncLog:
    async def test_entries_are_newest_first(self, db_session: AsyncSession) -> None:
        log = SyncLog(db_session)
        await log.append("first", {"n": 1})
        await log.append("second", {"n": 2})
        entries = await log.entries()
        assert [e.message for e in entries] == ["second", "first"]
        assert entries[0].context == {"n": 2}
        assert entries[0].level == "info"

    async def test_capacity_evicts_oldest(self, db_session: AsyncSession) -> None:
        log = SyncLog(db_session, capacity=3)
        for i in range(5):
            await log.append(f"entry {i}")
        assert await log.count() == 3
        assert [e.message for e in await log.entries()] == ["entry 4", "entry 3", "entry 2"]

    async def test_limit(self, db_session: AsyncSession) -> None:
        log = SyncLog(db_session)
        for i in range(4):
            await log.append(f"entry {i}")
        assert len(await log.entries(limit=2)) == 2

    async def test_level_is_recorded_and_forwarded(
        self, db_session: AsyncSession, caplog: pytest.LogCaptureFixture
    ) -> None:
        log = SyncLog(db_session)
        with caplog.at_level(logging.WARNING, logger="cloudsync.services.sync_log"):
            await log.append("Remote folder create failed", level=logging.WARNING)
        entries = await log.entries()
        assert entries[0].level == "warning"
        assert "Remote folder create failed" in caplog.text

    async def test_clear(self, db_session: AsyncSession) -> None:
        log = SyncLog(db_session)
        await log.append("something")
        await log.clear()
        assert await log.count() == 0
