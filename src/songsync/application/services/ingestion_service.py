"""Entry point for starting ingestion runs and reading their completion."""

import asyncio
import logging
import time

from songsync.application.services.ingestion_orchestrator import IngestionOrchestrator
from songsync.config.settings import IngestionSettings
from songsync.domain.entities import IngestionRun
from songsync.domain.exceptions import (
    EntityNotFoundException,
    InvalidStateException,
)
from songsync.domain.ports import ICatalogClient
from songsync.infrastructure.persistence import Database, UserRepository

logger = logging.getLogger(__name__)


class IngestionService:
    """Start ingestion runs per user and expose their completion state.

    Hey future me - the flag in the users table is the source of truth for "done"; the
    run registry here is only in-process bookkeeping (last run per user, and a guard
    against two concurrent runs for the same user in this process).
    """

    def __init__(
        self,
        database: Database,
        client: ICatalogClient,
        settings: IngestionSettings,
    ) -> None:
        self._database = database
        self._settings = settings
        self._orchestrator = IngestionOrchestrator(database, client, settings)
        self._runs: dict[str, IngestionRun] = {}

    async def run_for_user(self, user_id: str) -> IngestionRun:
        """Ingest everything for one user.

        Returns:
            The COMPLETED run

        Raises:
            EntityNotFoundException: Unknown user
            InvalidStateException: A run for this user is still in progress,
                or the user has no access token
            IngestionFailedError: The run failed (flag left untouched)
        """
        current = self._runs.get(user_id)
        if current is not None and not current.is_finished:
            raise InvalidStateException(
                f"Ingestion for user {user_id} already in progress (run {current.run_id})"
            )

        # registered before the first await so a concurrent caller sees it
        run = IngestionRun(user_id=user_id)
        self._runs[user_id] = run
        try:
            async with self._database.session_scope() as session:
                user = await UserRepository(session).get_by_id(user_id)
            if user is None:
                raise EntityNotFoundException("User", user_id)
            if not user.access_token:
                raise InvalidStateException(
                    f"User {user_id} has no Spotify access token"
                )
        except BaseException:
            # the lookup failed before the run started: keep the previous run visible
            if current is None:
                del self._runs[user_id]
            else:
                self._runs[user_id] = current
            raise

        return await self._orchestrator.run(user, run)

    def get_run(self, user_id: str) -> IngestionRun | None:
        """Last run started in this process for the user, if any."""
        return self._runs.get(user_id)

    async def is_complete(self, user_id: str) -> bool:
        """Read the user's completion flag.

        Raises:
            EntityNotFoundException: Unknown user
        """
        async with self._database.session_scope() as session:
            return await UserRepository(session).is_song_data_downloaded(user_id)

    # Yo, this is the status-poll loop: read the flag until it flips or we give up.
    # Returns False on timeout instead of raising - the caller decides what "not yet" means.
    async def wait_until_complete(
        self,
        user_id: str,
        poll_interval: float | None = None,
        timeout: float | None = None,
    ) -> bool:
        """Poll the completion flag until it is set.

        Args:
            user_id: User to watch
            poll_interval: Seconds between reads (defaults to settings)
            timeout: Give up after this many seconds (None = wait forever)

        Returns:
            True once the flag is set, False if the timeout elapsed first
        """
        interval = poll_interval or self._settings.status_poll_interval
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            if await self.is_complete(user_id):
                return True
            if deadline is not None and time.monotonic() >= deadline:
                logger.info(
                    "Gave up waiting for ingestion of user %s after %.1fs",
                    user_id,
                    timeout,
                )
                return False
            await asyncio.sleep(interval)


__all__ = ["IngestionService"]
