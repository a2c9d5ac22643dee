"""Shared test fixtures for CloudSync."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cloudsync.config import Settings
from cloudsync.connectors.base import ChangeBatch, ConnectorError, FolderItem, RemoteChange
from cloudsync.main import create_app
from cloudsync.models.base import Base
from cloudsync.services.crypto_service import reset_warning_state

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Iterator
    from pathlib import Path

    import httpx

    from cloudsync.providers import Provider

logger = logging.getLogger(__name__)

TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"
TEST_ADMIN_TOKEN = "test-admin-token-with-enough-entropy"


class FakeConnector:
    """In-memory provider that records every call made to it."""

    def __init__(self, provider: Provider, *, connected: bool = True) -> None:
        self.provider = provider
        self.connected = connected
        self.folders: dict[str, str] = {}
        self.parents: dict[str, str | None] = {}
        self.calls: list[tuple[str, ...]] = []
        self.changes: list[RemoteChange] = []
        self.next_cursor = "cursor-1"
        self.cursors_seen: list[str] = []
        self.fail_create = False
        self.fail_rename = False
        self.fail_delete = False
        self.fail_list_changes = False
        self.raise_on_create = False
        self._counter = 0

    async def is_connected(self) -> bool:
        return self.connected

    async def create_folder(self, name: str, parent_id: str | None = None) -> str | None:
        self.calls.append(("create", name, parent_id or ""))
        if self.raise_on_create:
            raise RuntimeError("provider exploded")
        if self.fail_create:
            return None
        self._counter += 1
        remote_id = f"{self.provider.value}-{self._counter}"
        self.folders[remote_id] = name
        self.parents[remote_id] = parent_id
        return remote_id

    async def rename_folder(self, remote_id: str, new_name: str) -> bool:
        self.calls.append(("rename", remote_id, new_name))
        if self.fail_rename:
            return False
        self.folders[remote_id] = new_name
        return True

    async def delete_folder(self, remote_id: str) -> bool:
        self.calls.append(("delete", remote_id))
        if self.fail_delete:
            return False
        self.folders.pop(remote_id, None)
        return True

    async def list_changes(self, cursor: str) -> ChangeBatch | None:
        self.cursors_seen.append(cursor)
        if self.fail_list_changes:
            return None
        return ChangeBatch(entries=list(self.changes), next_cursor=self.next_cursor)

    async def list_folder_items(
        self, parent_id: str | None = None
    ) -> list[FolderItem] | ConnectorError:
        self.calls.append(("list", parent_id or ""))
        return [
            FolderItem(id=remote_id, name=name, type="folder", has_children=True)
            for remote_id, name in self.folders.items()
            if self.parents.get(remote_id) == parent_id
        ]

    def created_names(self) -> list[str]:
        return [call[1] for call in self.calls if call[0] == "create"]


@asynccontextmanager
async def create_test_client(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan (DB, OAuth state,
    scheduler) because ASGITransport does not trigger it. The scheduler is
    started paused so no job fires during a test.
    """
    from cloudsync.database import create_engine as create_db_engine
    from cloudsync.services.oauth_state import OAuthStateStore
    from cloudsync.services.scheduler import SyncScheduler

    app = create_app(settings)
    app.state.http_transport = transport
    settings.validate_runtime_security()

    engine, session_factory = create_db_engine(settings)
    app.state.engine = engine
    app.state.session_factory = session_factory

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.oauth_state = OAuthStateStore(ttl_seconds=settings.oauth_state_ttl_seconds)

    scheduler = SyncScheduler(session_factory, settings, transport=transport)
    scheduler.start(paused=True)
    app.state.scheduler = scheduler

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await scheduler.shutdown()
    await engine.dispose()


@pytest.fixture(autouse=True)
def _reset_crypto_warnings() -> Iterator[None]:
    reset_warning_state()
    yield
    reset_warning_state()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with a temporary database."""
    db_path = tmp_path / "test.db"
    return Settings(
        secret_key=TEST_SECRET_KEY,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        admin_api_token=TEST_ADMIN_TOKEN,
        public_base_url="http://test",
        admin_redirect_url="/admin/cloudsync",
    )


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_ADMIN_TOKEN}"}


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the schema in place."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(
    db_engine: AsyncEngine,
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session
