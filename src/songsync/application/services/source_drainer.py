"""Drain paginated catalog sources page by page into the store."""

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import aclosing
from typing import Any

from songsync.application.services.batch_importer import BatchImporter
from songsync.domain.dtos import PageRequest
from songsync.domain.entities import DrainResult
from songsync.domain.exceptions import MalformedPageError
from songsync.domain.ports import ICatalogClient
from songsync.infrastructure.observability import log_operation

logger = logging.getLogger(__name__)


def page_items(page: Any, url: str | None = None) -> list[Any]:
    """Return the ``items`` list of a page.

    Raises:
        MalformedPageError: Page is not an object or items is not a list
    """
    if not isinstance(page, Mapping):
        raise MalformedPageError(
            f"Page is a {type(page).__name__}, expected an object", url=url
        )
    items = page.get("items")
    if not isinstance(items, list):
        raise MalformedPageError(
            f"Page 'items' is a {type(items).__name__}, expected a list", url=url
        )
    return items


def next_cursor(page: Mapping[str, Any]) -> str | None:
    """Return the URL of the next page, or None on the last page."""
    cursor = page.get("next")
    return cursor if isinstance(cursor, str) and cursor else None


def playlist_tracks_locator(playlist: Any) -> str | None:
    """Return the tracks listing URL of a playlist item (``tracks.href``)."""
    if not isinstance(playlist, Mapping):
        return None
    tracks = playlist.get("tracks")
    if not isinstance(tracks, Mapping):
        return None
    href = tracks.get("href")
    return href if isinstance(href, str) and href else None


class PaginatedSourceDrainer:
    """Follow one source's ``next`` cursors until exhausted, importing every page.

    Hey future me - the page loop is STRICTLY sequential! Page K+1's URL comes out of
    page K, and we also don't fetch K+1 until page K's records are written (the async
    generator only resumes when the drain loop asks for the next item). Parallelism
    happens BETWEEN sources, never inside one.
    """

    def __init__(
        self,
        client: ICatalogClient,
        importer: BatchImporter,
        access_token: str,
    ) -> None:
        self._client = client
        self._importer = importer
        self._access_token = access_token

    async def iter_pages(self, request: PageRequest) -> AsyncIterator[list[Any]]:
        """Yield the items of each page, fetching the next page on demand."""
        current = request
        while True:
            page = await self._client.get_page(current, self._access_token)
            items = page_items(page, current.url)
            yield items

            cursor = next_cursor(page)
            if cursor is None:
                return
            if cursor == current.url:
                raise MalformedPageError(
                    "Page cursor points at the page itself", url=current.url
                )
            current = current.follow(cursor)

    async def drain(
        self, source: str, request: PageRequest, user_id: str
    ) -> DrainResult:
        """Drain one source completely.

        Args:
            source: Label for logs and the result
            request: First page request
            user_id: Owner of the imported memberships

        Returns:
            DrainResult with page count and summed record counters
        """
        result = DrainResult(source=source)
        async with aclosing(self.iter_pages(request)) as pages:
            async for items in pages:
                batch = await self._importer.import_batch(items, user_id)
                result.add_page(batch)
                logger.debug(
                    "%s: page %d imported (%d records, %d skipped, %d failed)",
                    source,
                    result.pages,
                    batch.total,
                    batch.skipped,
                    batch.failed,
                )
        return result


class NestedSourceDrainer:
    """Two-stage drain: list the playlists, then drain every playlist's tracks.

    Stage 1 pages through the playlists and only collects their tracks URLs.
    Stage 2 starts after Stage 1 finished and drains each playlist concurrently
    (bounded by max_concurrent_playlists), each one sequential inside.
    """

    def __init__(
        self,
        pages: PaginatedSourceDrainer,
        max_concurrent_playlists: int = 5,
    ) -> None:
        self._pages = pages
        self._max_concurrent = max_concurrent_playlists

    async def collect_locators(
        self, request: PageRequest, result: DrainResult | None = None
    ) -> list[str]:
        """Stage 1: page through the playlists and collect their tracks URLs."""
        locators: list[str] = []
        async with aclosing(self._pages.iter_pages(request)) as pages:
            async for items in pages:
                if result is not None:
                    result.pages += 1
                for playlist in items:
                    locator = playlist_tracks_locator(playlist)
                    if locator is None:
                        logger.warning(
                            "Skipping playlist without tracks URL: %s",
                            playlist.get("id") if isinstance(playlist, Mapping) else playlist,
                        )
                        continue
                    locators.append(locator)
        return locators

    # Hey future me - TaskGroup, not gather! If one playlist drain blows up, the group
    # cancels the remaining playlists and re-raises (as an ExceptionGroup). That's what we
    # want: the job failed anyway, no point in hammering Spotify for the rest.
    async def drain(
        self, source: str, request: PageRequest, user_id: str
    ) -> DrainResult:
        """Drain every track of every playlist."""
        result = DrainResult(source=source)
        locators = await self.collect_locators(request, result)
        logger.info("%s: found %d playlist(s) to drain", source, len(locators))

        semaphore = asyncio.Semaphore(self._max_concurrent)

        async def drain_playlist(index: int, locator: str) -> DrainResult:
            async with semaphore:
                async with log_operation(
                    logger, f"{source}.playlist", playlist=index, url=locator
                ) as fields:
                    playlist_result = await self._pages.drain(
                        f"{source}[{index}]", PageRequest(url=locator), user_id
                    )
                    fields["pages"] = playlist_result.pages
                    fields["records"] = playlist_result.records.total
                    return playlist_result

        async with asyncio.TaskGroup() as tg:
            tasks = [
                tg.create_task(drain_playlist(index, locator))
                for index, locator in enumerate(locators)
            ]

        for task in tasks:
            result.merge(task.result())
        return result


__all__ = [
    "NestedSourceDrainer",
    "PaginatedSourceDrainer",
    "next_cursor",
    "page_items",
    "playlist_tracks_locator",
]
