"""Domain entities for ingestion runs and their results."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from songsync.domain.exceptions import InvalidStateException


class IngestionState(str, Enum):
    """Lifecycle of one ingestion run."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class IngestionSource(str, Enum):
    """The five independent drain jobs of a run."""

    TOP_TRACKS_LONG_TERM = "top_tracks_long_term"
    TOP_TRACKS_MEDIUM_TERM = "top_tracks_medium_term"
    TOP_TRACKS_SHORT_TERM = "top_tracks_short_term"
    SAVED_TRACKS = "saved_tracks"
    PLAYLISTS = "playlists"


@dataclass
class BatchResult:
    """Outcome counters for one batch (one page) of raw records."""

    total: int = 0
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    new_memberships: int = 0

    def merge(self, other: "BatchResult") -> None:
        """Add another batch's counters to this one."""
        self.total += other.total
        self.imported += other.imported
        self.skipped += other.skipped
        self.failed += other.failed
        self.new_memberships += other.new_memberships


@dataclass
class DrainResult:
    """Outcome of fully draining one paginated source."""

    source: str
    pages: int = 0
    records: BatchResult = field(default_factory=BatchResult)

    def add_page(self, batch: BatchResult) -> None:
        """Account one imported page."""
        self.pages += 1
        self.records.merge(batch)

    def merge(self, other: "DrainResult") -> None:
        """Fold a sub-drain (e.g. one playlist) into this result."""
        self.pages += other.pages
        self.records.merge(other.records)


def _utc_now() -> datetime:
    return datetime.now(UTC)


# Hey future me - IngestionRun is the state machine of ONE run:
# NOT_STARTED → IN_PROGRESS → {COMPLETED, FAILED}. The transitions are one-way; calling
# complete() on a failed run is a bug, so it raises instead of silently flipping.
@dataclass
class IngestionRun:
    """One ingestion run for one user."""

    user_id: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: IngestionState = IngestionState.NOT_STARTED
    started_at: datetime | None = None
    finished_at: datetime | None = None
    results: dict[str, DrainResult] = field(default_factory=dict)
    failed_sources: list[str] = field(default_factory=list)
    error: str | None = None

    def start(self) -> None:
        """Enter IN_PROGRESS."""
        if self.state is not IngestionState.NOT_STARTED:
            raise InvalidStateException(
                f"Run {self.run_id} cannot start from state {self.state.value}"
            )
        self.state = IngestionState.IN_PROGRESS
        self.started_at = _utc_now()

    def complete(self) -> None:
        """Enter COMPLETED (only from IN_PROGRESS)."""
        self._require_in_progress("complete")
        self.state = IngestionState.COMPLETED
        self.finished_at = _utc_now()

    def fail(self, error: str, failed_sources: list[str] | None = None) -> None:
        """Enter FAILED (only from IN_PROGRESS)."""
        self._require_in_progress("fail")
        self.state = IngestionState.FAILED
        self.error = error
        self.failed_sources = list(failed_sources or [])
        self.finished_at = _utc_now()

    def _require_in_progress(self, action: str) -> None:
        if self.state is not IngestionState.IN_PROGRESS:
            raise InvalidStateException(
                f"Run {self.run_id} cannot {action} from state {self.state.value}"
            )

    @property
    def is_finished(self) -> bool:
        """True once the run reached COMPLETED or FAILED."""
        return self.state in (IngestionState.COMPLETED, IngestionState.FAILED)

    @property
    def totals(self) -> BatchResult:
        """Record counters summed over every source."""
        total = BatchResult()
        for result in self.results.values():
            total.merge(result.records)
        return total


__all__ = [
    "BatchResult",
    "DrainResult",
    "IngestionRun",
    "IngestionSource",
    "IngestionState",
]
