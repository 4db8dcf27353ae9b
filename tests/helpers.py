"""Test helpers: a fake catalog client and builders for Spotify-shaped records."""

import asyncio
from typing import Any

from songsync.domain.dtos import PageRequest
from songsync.domain.ports import ICatalogClient

API = "https://api.test/v1"


class FakeCatalogClient(ICatalogClient):
    """Serves canned pages keyed by URL and records every request.

    A page value that is an exception instance is raised instead of returned.
    """

    def __init__(self) -> None:
        self.pages: dict[str, Any] = {}
        self.requests: list[str] = []
        self.tokens: list[str] = []

    async def get_page(self, request: PageRequest, access_token: str) -> dict[str, Any]:
        self.requests.append(request.url)
        self.tokens.append(access_token)
        await asyncio.sleep(0)
        page = self.pages[request.url]
        if isinstance(page, BaseException):
            raise page
        return page

    def top_tracks_request(self, time_range: str) -> PageRequest:
        return PageRequest(url=f"{API}/me/top/tracks/{time_range}")

    def saved_tracks_request(self) -> PageRequest:
        return PageRequest(url=f"{API}/me/tracks")

    def playlists_request(self) -> PageRequest:
        return PageRequest(url=f"{API}/me/playlists")

    def serve_empty_sources(self) -> None:
        """Register an empty single page for every top-level source."""
        for time_range in ("long_term", "medium_term", "short_term"):
            self.pages.setdefault(
                self.top_tracks_request(time_range).url, page_of([])
            )
        self.pages.setdefault(self.saved_tracks_request().url, page_of([]))
        self.pages.setdefault(self.playlists_request().url, page_of([]))


def track_record(
    track_id: str | None,
    artist_id: str | None = "artist-1",
    name: str | None = None,
    artist_name: str = "Artist One",
    popularity: int | None = 50,
    preview_url: str | None = None,
) -> dict[str, Any]:
    """Bare track object as /me/top/tracks returns it."""
    record: dict[str, Any] = {
        "id": track_id,
        "name": name or f"Song {track_id}",
        "artists": [{"id": artist_id, "name": artist_name}] if artist_id else [],
        "preview_url": preview_url,
    }
    if popularity is not None:
        record["popularity"] = popularity
    return record


def saved_record(track_id: str | None, **kwargs: Any) -> dict[str, Any]:
    """Envelope item as /me/tracks and playlist tracks return it."""
    return {"added_at": "2020-01-01T00:00:00Z", "track": track_record(track_id, **kwargs)}


def page_of(items: list[Any], next_url: str | None = None) -> dict[str, Any]:
    return {"items": items, "next": next_url, "total": len(items)}

