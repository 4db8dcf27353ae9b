"""
Data Transfer Objects for the ingestion pipeline.

Hey future me - these are "dumb data carriers" between the Spotify client, the
normalizer and the repositories. No business logic, no DB ids (except where a
repository hands one back).

Flow: Spotify JSON page → PageRequest/items → NormalizedTrack → Repository
"""

from dataclasses import dataclass, field
from typing import Any

from songsync.domain.exceptions import ValidationError


# Hey future me - PageRequest is the "request descriptor" of a drain! The first page
# is endpoint + query params (limit, time_range). Every page after that comes from the
# response's "next" URL, which ALREADY contains the query string - so params go away.
@dataclass(frozen=True)
class PageRequest:
    """One GET against a paginated Spotify endpoint."""

    url: str
    params: dict[str, Any] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.url:
            raise ValidationError("Invalid page request: empty URL")

    def follow(self, next_url: str) -> "PageRequest":
        """Build the request for the page the cursor points at."""
        return PageRequest(url=next_url)


@dataclass(frozen=True)
class NormalizedTrack:
    """Canonical track fields extracted from any track-like catalog record.

    Only the primary (first) artist is kept.
    """

    external_id: str
    name: str
    popularity: int
    preview_url: str | None
    primary_artist_external_id: str
    primary_artist_name: str


__all__ = ["NormalizedTrack", "PageRequest"]
