"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from typing import Any

from songsync.domain.dtos import PageRequest


# Hey future me, ICatalogClient is the PORT the drainers talk to! The real thing is
# SpotifyClient (infrastructure), tests plug in a fake that serves canned pages. The
# contract: return the parsed JSON object of ONE page, or raise a DomainException.
class ICatalogClient(ABC):
    """Client for the paginated catalog API."""

    @abstractmethod
    async def get_page(
        self, request: PageRequest, access_token: str
    ) -> dict[str, Any]:
        """Fetch and decode one page.

        Raises:
            ExternalServiceError: Network or HTTP failure
            TokenRefreshException: Token rejected (401/403)
            MalformedPageError: Body is not a JSON object
        """
        pass

    @abstractmethod
    def top_tracks_request(self, time_range: str) -> PageRequest:
        """First page of the user's top tracks for one time range."""
        pass

    @abstractmethod
    def saved_tracks_request(self) -> PageRequest:
        """First page of the user's saved tracks."""
        pass

    @abstractmethod
    def playlists_request(self) -> PageRequest:
        """First page of the user's playlists."""
        pass


class IArtistRepository(ABC):
    """Find-or-create access to artists keyed by Spotify ID."""

    @abstractmethod
    async def ensure_artist(self, spotify_id: str, name: str) -> str:
        """Return the id of the artist row for spotify_id, creating it if absent."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Count stored artists."""
        pass


class ITrackRepository(ABC):
    """Find-or-create access to tracks keyed by Spotify ID."""

    @abstractmethod
    async def ensure_track(
        self,
        spotify_id: str,
        artist_id: str,
        name: str,
        popularity: int,
        preview_url: str | None,
    ) -> str:
        """Return the id of the track row for spotify_id, creating it if absent."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Count stored tracks."""
        pass


class IUserTrackRepository(ABC):
    """Set-semantics user ↔ track membership."""

    @abstractmethod
    async def ensure_membership(self, user_id: str, track_id: str) -> bool:
        """Record that user_id has track_id. Returns True if the row is new."""
        pass

    @abstractmethod
    async def count_for_user(self, user_id: str) -> int:
        """Count memberships of one user."""
        pass


class IUserRepository(ABC):
    """User lookups and the ingestion completion flag."""

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Any | None:
        """Get a user row by id."""
        pass

    @abstractmethod
    async def mark_song_data_downloaded(self, user_id: str) -> None:
        """Set the completion flag to true."""
        pass

    @abstractmethod
    async def is_song_data_downloaded(self, user_id: str) -> bool:
        """Read the completion flag."""
        pass


__all__ = [
    "IArtistRepository",
    "ICatalogClient",
    "ITrackRepository",
    "IUserRepository",
    "IUserTrackRepository",
]
