"""Tests for the paginated and nested source drainers."""

import asyncio

import pytest

from songsync.application.services.batch_importer import BatchImporter
from songsync.application.services.source_drainer import (
    NestedSourceDrainer,
    PaginatedSourceDrainer,
    next_cursor,
    page_items,
    playlist_tracks_locator,
)
from songsync.domain.dtos import PageRequest
from songsync.domain.entities import BatchResult
from songsync.domain.exceptions import ExternalServiceError, MalformedPageError
from songsync.infrastructure.persistence import Database, UserModel, UserTrackRepository
from tests.helpers import API, FakeCatalogClient, page_of, saved_record, track_record


@pytest.fixture
def importer(database: Database) -> BatchImporter:
    return BatchImporter(database)


def playlist(playlist_id: str, href: str | None) -> dict:
    item: dict = {"id": playlist_id, "name": f"Playlist {playlist_id}"}
    if href is not None:
        item["tracks"] = {"href": href, "total": 1}
    return item


class TestExtractors:
    """Item, cursor and locator extraction."""

    def test_page_items(self) -> None:
        assert page_items({"items": [1, 2]}) == [1, 2]

    def test_page_items_rejects_missing_items(self) -> None:
        with pytest.raises(MalformedPageError):
            page_items({"next": None}, url="https://x")

    def test_page_items_rejects_non_list(self) -> None:
        with pytest.raises(MalformedPageError):
            page_items({"items": {"a": 1}})

    def test_page_items_rejects_non_object(self) -> None:
        with pytest.raises(MalformedPageError):
            page_items([1, 2])

    @pytest.mark.parametrize("page", [{}, {"next": None}, {"next": ""}])
    def test_next_cursor_end(self, page: dict) -> None:
        assert next_cursor(page) is None

    def test_next_cursor(self) -> None:
        assert next_cursor({"next": "https://x?offset=50"}) == "https://x?offset=50"

    def test_playlist_locator(self) -> None:
        assert playlist_tracks_locator(playlist("p1", "https://x/p1")) == "https://x/p1"
        assert playlist_tracks_locator(playlist("p2", None)) is None
        assert playlist_tracks_locator({"tracks": None}) is None


class TestPaginatedSourceDrainer:
    """Sequential cursor-following drain."""

    async def test_three_pages_three_requests(
        self,
        catalog: FakeCatalogClient,
        importer: BatchImporter,
        user: UserModel,
        database: Database,
    ) -> None:
        first = f"{API}/me/tracks"
        catalog.pages[first] = page_of([saved_record("t1")], next_url=f"{first}?page=2")
        catalog.pages[f"{first}?page=2"] = page_of(
            [saved_record("t2")], next_url=f"{first}?page=3"
        )
        catalog.pages[f"{first}?page=3"] = page_of([saved_record("t3")], next_url=None)

        drainer = PaginatedSourceDrainer(catalog, importer, "token-abc")
        result = await drainer.drain("saved_tracks", PageRequest(url=first), user.id)

        assert catalog.requests == [first, f"{first}?page=2", f"{first}?page=3"]
        assert set(catalog.tokens) == {"token-abc"}
        assert result.source == "saved_tracks"
        assert result.pages == 3
        assert result.records.imported == 3
        async with database.session_scope() as session:
            assert await UserTrackRepository(session).count_for_user(user.id) == 3

    async def test_empty_single_page(
        self, catalog: FakeCatalogClient, importer: BatchImporter, user: UserModel
    ) -> None:
        catalog.pages[f"{API}/me/tracks"] = page_of([])

        drainer = PaginatedSourceDrainer(catalog, importer, "token-abc")
        result = await drainer.drain(
            "saved_tracks", PageRequest(url=f"{API}/me/tracks"), user.id
        )

        assert result.pages == 1
        assert result.records.total == 0
        assert len(catalog.requests) == 1

    async def test_next_page_fetched_only_after_import(
        self,
        catalog: FakeCatalogClient,
        database: Database,
        user: UserModel,
        mocker,
    ) -> None:
        first = f"{API}/me/tracks"
        catalog.pages[first] = page_of([saved_record("t1")], next_url=f"{first}?page=2")
        catalog.pages[f"{first}?page=2"] = page_of([saved_record("t2")])
        events: list[str] = []

        importer = BatchImporter(database)
        original_import = importer.import_batch
        original_get = catalog.get_page

        async def tracking_import(records, user_id):
            events.append("import.start")
            await asyncio.sleep(0.01)
            result = await original_import(records, user_id)
            events.append("import.end")
            return result

        async def tracking_get(request, token):
            events.append("fetch")
            return await original_get(request, token)

        mocker.patch.object(importer, "import_batch", side_effect=tracking_import)
        mocker.patch.object(catalog, "get_page", side_effect=tracking_get)

        await PaginatedSourceDrainer(catalog, importer, "tok").drain(
            "saved_tracks", PageRequest(url=first), user.id
        )

        assert events == ["fetch", "import.start", "import.end", "fetch", "import.start", "import.end"]

    async def test_malformed_page_aborts(
        self, catalog: FakeCatalogClient, importer: BatchImporter, user: UserModel
    ) -> None:
        first = f"{API}/me/tracks"
        catalog.pages[first] = page_of([saved_record("t1")], next_url=f"{first}?page=2")
        catalog.pages[f"{first}?page=2"] = {"items": "oops", "next": f"{first}?page=3"}

        drainer = PaginatedSourceDrainer(catalog, importer, "tok")
        with pytest.raises(MalformedPageError):
            await drainer.drain("saved_tracks", PageRequest(url=first), user.id)

        assert len(catalog.requests) == 2

    async def test_self_referencing_cursor_aborts(
        self, catalog: FakeCatalogClient, importer: BatchImporter, user: UserModel
    ) -> None:
        first = f"{API}/me/tracks"
        catalog.pages[first] = page_of([], next_url=first)

        with pytest.raises(MalformedPageError):
            await PaginatedSourceDrainer(catalog, importer, "tok").drain(
                "saved_tracks", PageRequest(url=first), user.id
            )

    async def test_fetch_error_propagates(
        self, catalog: FakeCatalogClient, importer: BatchImporter, user: UserModel
    ) -> None:
        first = f"{API}/me/tracks"
        catalog.pages[first] = page_of([saved_record("t1")], next_url=f"{first}?page=2")
        catalog.pages[f"{first}?page=2"] = ExternalServiceError("Spotify returned 500")

        with pytest.raises(ExternalServiceError):
            await PaginatedSourceDrainer(catalog, importer, "tok").drain(
                "saved_tracks", PageRequest(url=first), user.id
            )


class TestNestedSourceDrainer:
    """Two-stage playlists → tracks drain."""

    async def test_collects_locators_then_drains_each_playlist(
        self,
        catalog: FakeCatalogClient,
        importer: BatchImporter,
        user: UserModel,
        database: Database,
    ) -> None:
        playlists = f"{API}/me/playlists"
        p1, p2 = f"{API}/playlists/p1/tracks", f"{API}/playlists/p2/tracks"
        catalog.pages[playlists] = page_of(
            [playlist("p1", p1)], next_url=f"{playlists}?page=2"
        )
        catalog.pages[f"{playlists}?page=2"] = page_of([playlist("p2", p2)])
        catalog.pages[p1] = page_of([saved_record("t1")], next_url=f"{p1}?page=2")
        catalog.pages[f"{p1}?page=2"] = page_of([saved_record("t2")])
        catalog.pages[p2] = page_of([saved_record("t2"), saved_record("t3")])

        drainer = NestedSourceDrainer(
            PaginatedSourceDrainer(catalog, importer, "tok"), max_concurrent_playlists=2
        )
        result = await drainer.drain("playlists", PageRequest(url=playlists), user.id)

        # Stage 1 finishes before any playlist track listing is fetched
        assert catalog.requests[:2] == [playlists, f"{playlists}?page=2"]
        # per playlist, pages are fetched in cursor order
        p1_requests = [url for url in catalog.requests if url.startswith(p1)]
        assert p1_requests == [p1, f"{p1}?page=2"]
        assert result.pages == 2 + 3
        assert result.records.imported == 4
        async with database.session_scope() as session:
            assert await UserTrackRepository(session).count_for_user(user.id) == 3

    async def test_playlists_drain_concurrently(
        self,
        catalog: FakeCatalogClient,
        importer: BatchImporter,
        user: UserModel,
        mocker,
    ) -> None:
        playlists = f"{API}/me/playlists"
        p1, p2 = f"{API}/playlists/p1/tracks", f"{API}/playlists/p2/tracks"
        catalog.pages[playlists] = page_of([playlist("p1", p1), playlist("p2", p2)])
        catalog.pages[p1] = page_of([saved_record("t1")], next_url=f"{p1}?page=2")
        catalog.pages[f"{p1}?page=2"] = page_of([saved_record("t2")])
        catalog.pages[p2] = page_of([saved_record("t3")])
        p2_fetched = asyncio.Event()
        original_get = catalog.get_page

        async def gated_get(request, token):
            if request.url == f"{p1}?page=2":
                # p1 stays parked between its pages until p2 has been fetched
                await asyncio.wait_for(p2_fetched.wait(), timeout=5)
            page = await original_get(request, token)
            if request.url == p2:
                p2_fetched.set()
            return page

        mocker.patch.object(catalog, "get_page", side_effect=gated_get)

        drainer = NestedSourceDrainer(
            PaginatedSourceDrainer(catalog, importer, "tok"), max_concurrent_playlists=2
        )
        result = await drainer.drain("playlists", PageRequest(url=playlists), user.id)

        assert catalog.requests.index(p2) < catalog.requests.index(f"{p1}?page=2")
        assert result.records.imported == 3

    async def test_playlist_without_locator_is_skipped(
        self, catalog: FakeCatalogClient, importer: BatchImporter, user: UserModel
    ) -> None:
        playlists = f"{API}/me/playlists"
        p1 = f"{API}/playlists/p1/tracks"
        catalog.pages[playlists] = page_of([playlist("p0", None), playlist("p1", p1)])
        catalog.pages[p1] = page_of([saved_record("t1")])

        drainer = NestedSourceDrainer(PaginatedSourceDrainer(catalog, importer, "tok"))
        result = await drainer.drain("playlists", PageRequest(url=playlists), user.id)

        assert catalog.requests == [playlists, p1]
        assert result.records.imported == 1

    async def test_no_playlists(
        self, catalog: FakeCatalogClient, importer: BatchImporter, user: UserModel
    ) -> None:
        catalog.pages[f"{API}/me/playlists"] = page_of([])

        drainer = NestedSourceDrainer(PaginatedSourceDrainer(catalog, importer, "tok"))
        result = await drainer.drain(
            "playlists", PageRequest(url=f"{API}/me/playlists"), user.id
        )

        assert result.pages == 1
        assert result.records == BatchResult()

    async def test_failing_playlist_fails_the_job(
        self, catalog: FakeCatalogClient, importer: BatchImporter, user: UserModel
    ) -> None:
        playlists = f"{API}/me/playlists"
        p1, p2 = f"{API}/playlists/p1/tracks", f"{API}/playlists/p2/tracks"
        catalog.pages[playlists] = page_of([playlist("p1", p1), playlist("p2", p2)])
        catalog.pages[p1] = page_of([track_record("t1")])
        catalog.pages[p2] = ExternalServiceError("Spotify returned 502")

        drainer = NestedSourceDrainer(PaginatedSourceDrainer(catalog, importer, "tok"))
        with pytest.raises(ExceptionGroup) as exc_info:
            await drainer.drain("playlists", PageRequest(url=playlists), user.id)

        assert exc_info.group_contains(ExternalServiceError)
