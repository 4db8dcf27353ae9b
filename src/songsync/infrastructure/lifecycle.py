"""Application lifecycle: build, hand out and tear down the runtime components."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from songsync.application.services.ingestion_service import IngestionService
from songsync.config import Settings, get_settings
from songsync.domain.exceptions import ConfigurationError
from songsync.infrastructure.integrations import SpotifyClient
from songsync.infrastructure.observability import configure_logging
from songsync.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


def _validate_sqlite_path(settings: Settings) -> None:
    """Validate SQLite database path accessibility before engine creation.

    This function ensures:
    1. Parent directory exists and is writable
    2. Directory allows creating database and temporary files (journal, WAL, etc.)

    Note: We don't pre-create the database file. SQLite creates and initializes
    it on first connection.
    """
    db_path = settings._get_sqlite_db_path()
    if db_path is None:
        return

    try:
        if db_path.parent and str(db_path.parent) != ".":
            db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug("Ensured SQLite parent directory exists: %s", db_path.parent)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{db_path.parent}': {exc}. "
            "Update DATABASE_URL or adjust directory permissions."
        ) from exc

    try:
        test_file = db_path.parent / f".{db_path.stem}_write_test"
        test_file.write_bytes(b"test")
        test_file.unlink()
        logger.debug(
            "Verified directory write permissions for SQLite files: %s",
            db_path.parent,
        )
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to write files in database directory '{db_path.parent}': {exc}. "
            "SQLite requires write permissions to create database and journal files."
        ) from exc


# Hey future me - this replaces the web lifespan: there's no server here, so whoever
# drives ingestion (the CLI script, a worker, a test) enters this context and gets a
# ready IngestionService. Shutdown order is the reverse of startup: HTTP client first,
# then the engine, so no in-flight write loses its connection.
@asynccontextmanager
async def app_context(
    settings: Settings | None = None,
    create_tables: bool = False,
) -> AsyncGenerator[IngestionService, None]:
    """Start the runtime and yield an IngestionService.

    Args:
        settings: Settings to use (defaults to get_settings())
        create_tables: Create missing tables directly instead of relying on
            Alembic migrations (tests, throwaway databases)
    """
    settings = settings or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting %s", settings.app_name)

    _validate_sqlite_path(settings)

    db = Database(settings)
    client = SpotifyClient(settings.spotify)
    try:
        if create_tables:
            await db.create_tables()
        logger.info("Database initialized: %s", settings.database.url)

        yield IngestionService(db, client, settings.ingestion)
    finally:
        logger.info("Shutting down %s", settings.app_name)
        await client.close()
        await db.close()


__all__ = ["app_context"]
