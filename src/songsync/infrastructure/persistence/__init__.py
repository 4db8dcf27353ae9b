"""Infrastructure persistence layer."""

from .database import Database
from .models import ArtistModel, Base, TrackModel, UserModel, UserTrackModel
from .repositories import (
    ArtistRepository,
    TrackRepository,
    UserRepository,
    UserTrackRepository,
    insert_if_absent,
)
from .retry import DatabaseLockMetrics, is_lock_error, with_db_retry

__all__ = [
    # Database
    "Database",
    "Base",
    # Models
    "UserModel",
    "ArtistModel",
    "TrackModel",
    "UserTrackModel",
    # Repositories
    "ArtistRepository",
    "TrackRepository",
    "UserRepository",
    "UserTrackRepository",
    "insert_if_absent",
    # Retry utilities
    "with_db_retry",
    "is_lock_error",
    "DatabaseLockMetrics",
]
