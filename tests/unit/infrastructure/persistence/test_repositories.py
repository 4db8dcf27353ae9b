"""Tests for the find-or-create repositories and the completion flag."""

import asyncio

import pytest

from songsync.domain.exceptions import EntityNotFoundException
from songsync.infrastructure.persistence import (
    ArtistModel,
    ArtistRepository,
    Database,
    TrackRepository,
    UserModel,
    UserRepository,
    UserTrackRepository,
    insert_if_absent,
)


class TestInsertIfAbsent:
    """The conditional insert primitive."""

    async def test_first_insert_wins(self, database: Database) -> None:
        async with database.session_scope() as session:
            first = await insert_if_absent(
                session, ArtistModel, ["spotify_id"], {"spotify_id": "a1", "name": "One"}
            )
            second = await insert_if_absent(
                session, ArtistModel, ["spotify_id"], {"spotify_id": "a1", "name": "Two"}
            )

        assert first is True
        assert second is False
        async with database.session_scope() as session:
            artist = await ArtistRepository(session).get_by_spotify_id("a1")
        assert artist is not None
        assert artist.name == "One"

    async def test_sqlite_dialect(self, database: Database) -> None:
        assert database.dialect_name == "sqlite"


class TestArtistAndTrackRepositories:
    """ensure_* semantics."""

    async def test_ensure_artist_returns_same_id(self, database: Database) -> None:
        async with database.session_scope() as session:
            repo = ArtistRepository(session)
            first = await repo.ensure_artist("a1", "Artist")
            second = await repo.ensure_artist("a1", "Other Name")
            assert first == second
            assert await repo.count() == 1

    async def test_new_artist_has_zero_popularity(self, database: Database) -> None:
        async with database.session_scope() as session:
            await ArtistRepository(session).ensure_artist("a1", "Artist")
            artist = await ArtistRepository(session).get_by_spotify_id("a1")
        assert artist is not None
        assert artist.popularity == 0

    async def test_ensure_track_write_once(self, database: Database) -> None:
        async with database.session_scope() as session:
            artist_id = await ArtistRepository(session).ensure_artist("a1", "Artist")
            repo = TrackRepository(session)
            first = await repo.ensure_track("t1", artist_id, "Song", 40, None)
            second = await repo.ensure_track("t1", artist_id, "Song (Remix)", 90, "https://p")
            track = await repo.get_by_spotify_id("t1")

        assert first == second
        assert track is not None
        assert track.name == "Song"
        assert track.popularity == 40
        assert track.preview_url is None
        assert track.artist_id == artist_id

    async def test_concurrent_ensure_artist_converges(self, database: Database) -> None:
        async def ensure() -> str:
            async with database.session_scope() as session:
                return await ArtistRepository(session).ensure_artist("a1", "Artist")

        ids = await asyncio.gather(*[ensure() for _ in range(5)])

        assert len(set(ids)) == 1
        async with database.session_scope() as session:
            assert await ArtistRepository(session).count() == 1


class TestUserTrackRepository:
    """Set semantics for memberships."""

    async def test_membership_is_a_set(
        self, database: Database, user: UserModel
    ) -> None:
        async with database.session_scope() as session:
            artist_id = await ArtistRepository(session).ensure_artist("a1", "Artist")
            track_id = await TrackRepository(session).ensure_track(
                "t1", artist_id, "Song", 1, None
            )
            repo = UserTrackRepository(session)
            assert await repo.ensure_membership(user.id, track_id) is True
            assert await repo.ensure_membership(user.id, track_id) is False
            assert await repo.count_for_user(user.id) == 1
            assert await repo.list_track_spotify_ids(user.id) == ["t1"]


class TestUserRepository:
    """User lookups and the completion flag."""

    async def test_new_user_flag_false(self, database: Database, user: UserModel) -> None:
        async with database.session_scope() as session:
            assert await UserRepository(session).is_song_data_downloaded(user.id) is False

    async def test_mark_downloaded(self, database: Database, user: UserModel) -> None:
        async with database.session_scope() as session:
            await UserRepository(session).mark_song_data_downloaded(user.id)
        async with database.session_scope() as session:
            repo = UserRepository(session)
            assert await repo.is_song_data_downloaded(user.id) is True
            stored = await repo.get_by_spotify_id("listener-1")
        assert stored is not None
        assert stored.id == user.id

    async def test_mark_unknown_user(self, database: Database) -> None:
        async with database.session_scope() as session:
            with pytest.raises(EntityNotFoundException):
                await UserRepository(session).mark_song_data_downloaded("missing")

    async def test_read_unknown_user(self, database: Database) -> None:
        async with database.session_scope() as session:
            with pytest.raises(EntityNotFoundException):
                await UserRepository(session).is_song_data_downloaded("missing")

    async def test_get_by_id(self, database: Database, user: UserModel) -> None:
        async with database.session_scope() as session:
            found = await UserRepository(session).get_by_id(user.id)
            missing = await UserRepository(session).get_by_id("missing")
        assert found is not None
        assert found.access_token == "token-abc"
        assert missing is None
