"""Recurring pull job driven by the general sync settings."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cloudsync.services.sync_engine import create_sync_engine

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from cloudsync.config import Settings
    from cloudsync.schemas.settings import GeneralSettings
    from cloudsync.services.sync_engine import PullResult

logger = logging.getLogger(__name__)

PULL_JOB_ID = "cloudsync-pull"


class SyncScheduler:
    """Arms at most one recurring pull job at the configured cadence.

    The scheduler holds no sync state: each tick opens a fresh session and
    runs the engine's pull path. A failed tick is logged and simply waits
    for the next one.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings
        self._transport = transport
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def start(self, *, paused: bool = False) -> None:
        if self._scheduler.running:
            logger.warning("Sync scheduler already running")
            return
        self._scheduler.start(paused=paused)
        logger.info("Sync scheduler started")

    async def shutdown(self) -> None:
        if not self._scheduler.running:
            return
        self._scheduler.shutdown(wait=False)
        # APScheduler 3.11 queues the actual shutdown on the event loop.
        await asyncio.sleep(0)
        logger.info("Sync scheduler stopped")

    def interval_minutes(self) -> int | None:
        """Cadence of the armed job in minutes, or None when nothing is armed."""
        job = self._scheduler.get_job(PULL_JOB_ID)
        if job is None:
            return None
        return int(job.trigger.interval.total_seconds() // 60)

    def apply(self, general: GeneralSettings) -> bool:
        """Arm the pull job for *general*, replacing any previous cadence.

        Returns True when a job is armed afterwards.
        """
        minutes = general.schedule_minutes
        if minutes is None:
            try:
                self._scheduler.remove_job(PULL_JOB_ID)
                logger.info("Automatic sync disabled")
            except JobLookupError:
                pass
            return False

        self._scheduler.add_job(
            self.run_pull,
            trigger=IntervalTrigger(minutes=minutes, timezone="UTC"),
            id=PULL_JOB_ID,
            name="Pull remote changes",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Automatic sync every %d minutes", minutes)
        return True

    async def run_pull(self) -> list[PullResult] | None:
        """Run the pull path once. Never raises."""
        try:
            async with self._session_factory() as session:
                engine = await create_sync_engine(
                    session, self._settings, transport=self._transport
                )
                return await engine.pull_all()
        except Exception:
            logger.exception("Scheduled sync run failed")
            return None
