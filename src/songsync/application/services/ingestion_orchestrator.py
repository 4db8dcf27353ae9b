"""Run the five drain jobs of one ingestion run and set the completion flag."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

from songsync.application.services.batch_importer import BatchImporter
from songsync.application.services.source_drainer import (
    NestedSourceDrainer,
    PaginatedSourceDrainer,
)
from songsync.config.settings import IngestionSettings
from songsync.domain.entities import DrainResult, IngestionRun, IngestionSource
from songsync.domain.exceptions import IngestionFailedError, IngestionTimeoutError
from songsync.domain.ports import ICatalogClient
from songsync.infrastructure.observability import log_operation, set_correlation_id
from songsync.infrastructure.persistence import (
    Database,
    DatabaseLockMetrics,
    UserRepository,
    with_db_retry,
)

logger = logging.getLogger(__name__)

_TOP_TRACK_SOURCES = {
    IngestionSource.TOP_TRACKS_LONG_TERM: "long_term",
    IngestionSource.TOP_TRACKS_MEDIUM_TERM: "medium_term",
    IngestionSource.TOP_TRACKS_SHORT_TERM: "short_term",
}


def _leaf_errors(error: BaseException) -> list[BaseException]:
    """Flatten (nested) exception groups into their leaf exceptions."""
    if isinstance(error, BaseExceptionGroup):
        leaves: list[BaseException] = []
        for inner in error.exceptions:
            leaves.extend(_leaf_errors(inner))
        return leaves
    return [error]


def _describe(error: BaseException) -> str:
    return "; ".join(f"{type(e).__name__}: {e}" for e in _leaf_errors(error))


# Hey future me - this is the all-of-N join of the ingestion pipeline!
#   - five jobs start together inside ONE TaskGroup
#   - first failing job → TaskGroup cancels the others → run FAILED
#   - every job finished AND no record failed → flag set exactly once → COMPLETED
# The completion flag is the ONLY thing the outside world polls, so it must never flip
# on a partial import. Every write before it is idempotent, so a failed run is simply
# started again.
class IngestionOrchestrator:
    """Execute one ingestion run for one user."""

    def __init__(
        self,
        database: Database,
        client: ICatalogClient,
        settings: IngestionSettings,
    ) -> None:
        self._database = database
        self._client = client
        self._settings = settings

    def _build_jobs(
        self, user_id: str, access_token: str
    ) -> dict[IngestionSource, Callable[[], Awaitable[DrainResult]]]:
        importer = BatchImporter(
            self._database,
            max_concurrent_writes=self._settings.max_concurrent_writes,
        )
        pages = PaginatedSourceDrainer(self._client, importer, access_token)
        nested = NestedSourceDrainer(
            pages, max_concurrent_playlists=self._settings.max_concurrent_playlists
        )

        jobs: dict[IngestionSource, Callable[[], Awaitable[DrainResult]]] = {}
        for source, time_range in _TOP_TRACK_SOURCES.items():
            jobs[source] = partial(
                pages.drain,
                source.value,
                self._client.top_tracks_request(time_range),
                user_id,
            )
        jobs[IngestionSource.SAVED_TRACKS] = partial(
            pages.drain,
            IngestionSource.SAVED_TRACKS.value,
            self._client.saved_tracks_request(),
            user_id,
        )
        jobs[IngestionSource.PLAYLISTS] = partial(
            nested.drain,
            IngestionSource.PLAYLISTS.value,
            self._client.playlists_request(),
            user_id,
        )
        return jobs

    async def run(self, user: Any, run: IngestionRun | None = None) -> IngestionRun:
        """Drain all sources for a user and set the completion flag on success.

        Args:
            user: User row (needs ``id`` and ``access_token``)
            run: Pre-created run to drive (created here when omitted)

        Returns:
            The COMPLETED run

        Raises:
            IngestionTimeoutError: Run exceeded run_timeout_seconds
            IngestionFailedError: Any job failed or any record failed to write
        """
        run = run or IngestionRun(user_id=user.id)
        jobs = self._build_jobs(user.id, user.access_token)
        set_correlation_id(run.run_id)
        run.start()

        failed_sources: list[str] = []
        lock_metrics = DatabaseLockMetrics.get_instance()
        lock_retries_before = lock_metrics.get_stats()["lock_retries"]

        async def run_job(
            source: IngestionSource, job: Callable[[], Awaitable[DrainResult]]
        ) -> None:
            try:
                async with log_operation(
                    logger, f"ingestion.{source.value}", user_id=user.id
                ) as fields:
                    result = await job()
                    fields["pages"] = result.pages
                    fields["records"] = result.records.total
                    fields["skipped"] = result.records.skipped
                    fields["failed"] = result.records.failed
            except Exception:
                failed_sources.append(source.value)
                raise
            run.results[source.value] = result

        timeout = self._settings.run_timeout_seconds
        async with log_operation(
            logger, "ingestion.run", user_id=user.id, run_id=run.run_id
        ) as run_fields:
            try:
                async with asyncio.timeout(timeout):
                    async with asyncio.TaskGroup() as tg:
                        for source, job in jobs.items():
                            tg.create_task(run_job(source, job))
            except TimeoutError as e:
                error = IngestionTimeoutError(user.id, timeout or 0)
                unfinished = sorted(
                    source.value for source in jobs if source.value not in run.results
                )
                run.fail(error.message, unfinished)
                error.failed_sources = unfinished
                raise error from e
            except ExceptionGroup as eg:
                error = IngestionFailedError(
                    user.id,
                    sorted(failed_sources),
                    message=f"Ingestion for user {user.id} failed: {_describe(eg)}",
                )
                run.fail(error.message, error.failed_sources)
                raise error from eg
            except asyncio.CancelledError:
                run.fail("Ingestion run was cancelled")
                raise

            totals = run.totals
            run_fields["records"] = totals.total
            run_fields["new_memberships"] = totals.new_memberships
            # process-wide counter, so this includes retries of concurrent runs
            run_fields["db_lock_retries"] = (
                lock_metrics.get_stats()["lock_retries"] - lock_retries_before
            )
            if totals.failed:
                sources = sorted(
                    name for name, r in run.results.items() if r.records.failed
                )
                error = IngestionFailedError(
                    user.id,
                    sources,
                    message=(
                        f"Ingestion for user {user.id} failed: "
                        f"{totals.failed} record(s) could not be written"
                    ),
                )
                run.fail(error.message, sources)
                raise error

            try:
                await self._mark_complete(user.id)
            except Exception as e:
                run.fail(f"Could not set completion flag: {e}")
                raise IngestionFailedError(
                    user.id, [], message=run.error
                ) from e

            run.complete()
        return run

    @with_db_retry(max_attempts=5)
    async def _mark_complete(self, user_id: str) -> None:
        async with self._database.session_scope() as session:
            await UserRepository(session).mark_song_data_downloaded(user_id)


__all__ = ["IngestionOrchestrator"]
