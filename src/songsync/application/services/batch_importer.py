"""Import one page of raw track records into the store."""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from songsync.application.services.track_normalizer import normalize_track
from songsync.domain.dtos import NormalizedTrack
from songsync.domain.entities import BatchResult
from songsync.infrastructure.persistence import (
    ArtistRepository,
    Database,
    TrackRepository,
    UserTrackRepository,
    with_db_retry,
)

logger = logging.getLogger(__name__)

_IMPORTED = "imported"
_SKIPPED = "skipped"
_FAILED = "failed"


class BatchImporter:
    """Normalize and write batches of track records for one user.

    Hey future me - ONE importer per ingestion run! The write semaphore lives on the
    importer, and every drain of the run (5 jobs + all playlists) shares it, so the number
    of open store sessions never exceeds max_concurrent_writes no matter how many pages
    are in flight. That keeps us inside the connection pool and keeps SQLite lock queues
    short.
    """

    def __init__(
        self,
        database: Database,
        max_concurrent_writes: int = 5,
        semaphore: asyncio.Semaphore | None = None,
    ) -> None:
        self._database = database
        self._semaphore = semaphore or asyncio.Semaphore(max_concurrent_writes)

    # Hey future me - REFACTORED for PARALLEL PROCESSING, same trick as the import loop:
    # every record runs as its own task behind the semaphore, and asyncio.gather with
    # return_exceptions=True means one broken record can't cancel the others. We only
    # return once EVERY record finished - the drainer relies on that before asking for
    # the next page.
    async def import_batch(
        self, records: Sequence[Any], user_id: str
    ) -> BatchResult:
        """Import every record of one page.

        Args:
            records: Raw items of one catalog page
            user_id: Owner of the memberships to record

        Returns:
            BatchResult with imported/skipped/failed counters
        """
        result = BatchResult(total=len(records))
        if not records:
            return result

        outcomes = await asyncio.gather(
            *[self._import_one(record, user_id) for record in records],
            return_exceptions=True,
        )

        for outcome in outcomes:
            if isinstance(outcome, Exception):
                result.failed += 1
                continue
            status, is_new = outcome
            if status == _IMPORTED:
                result.imported += 1
                if is_new:
                    result.new_memberships += 1
            elif status == _SKIPPED:
                result.skipped += 1
            else:
                result.failed += 1

        if result.failed:
            logger.warning(
                "Batch for user %s finished with %d failed record(s) of %d",
                user_id,
                result.failed,
                result.total,
            )
        return result

    async def _import_one(self, record: Any, user_id: str) -> tuple[str, bool]:
        track = normalize_track(record)
        if track is None:
            return (_SKIPPED, False)

        async with self._semaphore:
            try:
                is_new = await self._write_record(track, user_id)
            except Exception as e:
                logger.exception(
                    "Failed to import track %s for user %s: %s",
                    track.external_id,
                    user_id,
                    e,
                )
                return (_FAILED, False)
        return (_IMPORTED, is_new)

    # artist → track → membership in ONE transaction, so a record is either fully
    # written or not at all. Lock errors retry the whole transaction.
    @with_db_retry(max_attempts=5)
    async def _write_record(self, track: NormalizedTrack, user_id: str) -> bool:
        async with self._database.session_scope() as session:
            artist_id = await ArtistRepository(session).ensure_artist(
                track.primary_artist_external_id, track.primary_artist_name
            )
            track_id = await TrackRepository(session).ensure_track(
                spotify_id=track.external_id,
                artist_id=artist_id,
                name=track.name,
                popularity=track.popularity,
                preview_url=track.preview_url,
            )
            return await UserTrackRepository(session).ensure_membership(
                user_id, track_id
            )


__all__ = ["BatchImporter"]
