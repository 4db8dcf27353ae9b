"""Repository implementations for the ingestion store."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from songsync.domain.exceptions import EntityNotFoundException
from songsync.domain.ports import (
    IArtistRepository,
    ITrackRepository,
    IUserRepository,
    IUserTrackRepository,
)

from .models import ArtistModel, Base, TrackModel, UserModel, UserTrackModel

logger = logging.getLogger(__name__)


# Hey future me, this is THE find-or-create primitive! Two sources can surface the same
# track at the same moment, so "SELECT, then INSERT if missing" would race and produce a
# duplicate-key error. Instead we INSERT ... ON CONFLICT DO NOTHING against the unique
# key and let the database pick the winner; callers re-read the winning row afterwards.
# SQLite and PostgreSQL both speak ON CONFLICT. Anything else gets a SAVEPOINT + insert
# and the IntegrityError of a lost race is swallowed (the row exists, that's all we need).
async def insert_if_absent(
    session: AsyncSession,
    model: type[Base],
    conflict_columns: list[str],
    values: dict[str, Any],
) -> bool:
    """Insert a row unless its unique key already exists.

    Args:
        session: Active session (the caller owns the transaction)
        model: ORM model class to insert into
        conflict_columns: Columns of the unique constraint / primary key
        values: Column values for the new row

    Returns:
        True if this call inserted the row, False if it already existed
    """
    dialect = session.get_bind().dialect.name

    if dialect in ("sqlite", "postgresql"):
        insert_fn = sqlite_insert if dialect == "sqlite" else pg_insert
        stmt = (
            insert_fn(model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=conflict_columns)
        )
        result = await session.execute(stmt)
        return bool(result.rowcount)

    try:
        async with session.begin_nested():
            session.add(model(**values))
        return True
    except IntegrityError:
        logger.debug(
            "Lost insert race on %s %s, re-reading winner",
            model.__tablename__,
            {column: values.get(column) for column in conflict_columns},
        )
        return False


class ArtistRepository(IArtistRepository):
    """SQLAlchemy implementation of the artist store."""

    # The session is NOT committed here - the caller's session_scope() does that.
    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def ensure_artist(self, spotify_id: str, name: str) -> str:
        """Find or create the artist for spotify_id.

        New artists start with popularity 0; existing rows are never modified.

        Returns:
            Internal artist id
        """
        await insert_if_absent(
            self.session,
            ArtistModel,
            ["spotify_id"],
            {"spotify_id": spotify_id, "name": name, "popularity": 0},
        )
        result = await self.session.execute(
            select(ArtistModel.id).where(ArtistModel.spotify_id == spotify_id)
        )
        return result.scalar_one()

    async def get_by_spotify_id(self, spotify_id: str) -> ArtistModel | None:
        """Get an artist by Spotify ID."""
        result = await self.session.execute(
            select(ArtistModel).where(ArtistModel.spotify_id == spotify_id)
        )
        return result.scalar_one_or_none()

    async def count(self) -> int:
        """Count stored artists."""
        result = await self.session.execute(select(func.count(ArtistModel.id)))
        return result.scalar() or 0


class TrackRepository(ITrackRepository):
    """SQLAlchemy implementation of the track store."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def ensure_track(
        self,
        spotify_id: str,
        artist_id: str,
        name: str,
        popularity: int,
        preview_url: str | None,
    ) -> str:
        """Find or create the track for spotify_id.

        Everything except spotify_id is write-once: if the row exists, the passed
        artist/name/popularity/preview are ignored.

        Returns:
            Internal track id
        """
        await insert_if_absent(
            self.session,
            TrackModel,
            ["spotify_id"],
            {
                "spotify_id": spotify_id,
                "artist_id": artist_id,
                "name": name,
                "popularity": popularity,
                "preview_url": preview_url,
            },
        )
        result = await self.session.execute(
            select(TrackModel.id).where(TrackModel.spotify_id == spotify_id)
        )
        return result.scalar_one()

    async def get_by_spotify_id(self, spotify_id: str) -> TrackModel | None:
        """Get a track by Spotify ID."""
        result = await self.session.execute(
            select(TrackModel).where(TrackModel.spotify_id == spotify_id)
        )
        return result.scalar_one_or_none()

    async def count(self) -> int:
        """Count stored tracks."""
        result = await self.session.execute(select(func.count(TrackModel.id)))
        return result.scalar() or 0


class UserTrackRepository(IUserTrackRepository):
    """SQLAlchemy implementation of user ↔ track membership."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def ensure_membership(self, user_id: str, track_id: str) -> bool:
        """Record the (user, track) pair; a no-op when it already exists."""
        return await insert_if_absent(
            self.session,
            UserTrackModel,
            ["user_id", "track_id"],
            {"user_id": user_id, "track_id": track_id},
        )

    async def count_for_user(self, user_id: str) -> int:
        """Count memberships of one user."""
        result = await self.session.execute(
            select(func.count()).select_from(UserTrackModel).where(
                UserTrackModel.user_id == user_id
            )
        )
        return result.scalar() or 0

    async def list_track_spotify_ids(self, user_id: str) -> list[str]:
        """Spotify IDs of every track recorded for a user, sorted."""
        result = await self.session.execute(
            select(TrackModel.spotify_id)
            .join(UserTrackModel, UserTrackModel.track_id == TrackModel.id)
            .where(UserTrackModel.user_id == user_id)
            .order_by(TrackModel.spotify_id)
        )
        return list(result.scalars().all())


class UserRepository(IUserRepository):
    """SQLAlchemy implementation of user access and the completion flag."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(
        self,
        spotify_id: str,
        access_token: str | None = None,
        display_name: str | None = None,
    ) -> UserModel:
        """Stage a new user and flush so its id is available."""
        model = UserModel(
            spotify_id=spotify_id,
            access_token=access_token,
            display_name=display_name,
        )
        self.session.add(model)
        await self.session.flush()
        return model

    async def get_by_id(self, user_id: str) -> UserModel | None:
        """Get a user by id."""
        return await self.session.get(UserModel, user_id)

    async def get_by_spotify_id(self, spotify_id: str) -> UserModel | None:
        """Get a user by Spotify ID."""
        result = await self.session.execute(
            select(UserModel).where(UserModel.spotify_id == spotify_id)
        )
        return result.scalar_one_or_none()

    async def mark_song_data_downloaded(self, user_id: str) -> None:
        """Set the completion flag by primary key.

        Raises:
            EntityNotFoundException: If the user does not exist
        """
        result = await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(song_data_downloaded=True)
        )
        if result.rowcount == 0:
            raise EntityNotFoundException("User", user_id)

    async def is_song_data_downloaded(self, user_id: str) -> bool:
        """Read the completion flag.

        Raises:
            EntityNotFoundException: If the user does not exist
        """
        result = await self.session.execute(
            select(UserModel.song_data_downloaded).where(UserModel.id == user_id)
        )
        flag = result.scalar_one_or_none()
        if flag is None:
            raise EntityNotFoundException("User", user_id)
        return bool(flag)
