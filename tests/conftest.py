"""Shared fixtures: file-backed SQLite store, a seeded user and a fake catalog.

Hey future me - the database is a real SQLite FILE under tmp_path, not :memory:.
In-memory SQLite gives every connection its own empty database, which breaks the
moment the importer opens a second session.
"""

from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from songsync.config.settings import (
    DatabaseSettings,
    IngestionSettings,
    Settings,
    SpotifySettings,
)
from songsync.infrastructure.persistence import Database, UserModel, UserRepository
from tests.helpers import FakeCatalogClient


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a fresh SQLite file, with a fast rate limiter."""
    return Settings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'songsync.db'}"),
        spotify=SpotifySettings(
            api_base_url="https://api.test/v1/",
            max_retries=2,
            requests_per_second=1000.0,
            burst=1000,
        ),
        ingestion=IngestionSettings(
            max_concurrent_writes=5,
            max_concurrent_playlists=3,
            run_timeout_seconds=30.0,
            status_poll_interval=0.01,
        ),
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncIterator[Database]:
    """Database with all tables created."""
    db = Database(settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def create_user(database: Database) -> Callable[..., Any]:
    """Factory for users stored in the test database."""

    async def _create(
        spotify_id: str = "listener-1", access_token: str | None = "token-abc"
    ) -> UserModel:
        async with database.session_scope() as session:
            return await UserRepository(session).add(
                spotify_id, access_token=access_token, display_name=spotify_id
            )

    return _create


@pytest.fixture
async def user(create_user: Callable[..., Any]) -> UserModel:
    """One stored user with an access token."""
    return await create_user()


@pytest.fixture
def catalog() -> FakeCatalogClient:
    """Fake catalog client with no pages registered."""
    return FakeCatalogClient()
