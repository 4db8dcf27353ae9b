"""Normalize raw Spotify track records into NormalizedTrack DTOs."""

import logging
from collections.abc import Mapping
from typing import Any

from songsync.domain.dtos import NormalizedTrack

logger = logging.getLogger(__name__)


# Hey future me - Spotify hands us THREE shapes of "a track":
#   /me/top/tracks         → {"id": ..., "artists": [...], ...}                (bare track)
#   /me/tracks             → {"added_at": ..., "track": {"id": ..., ...}}      (envelope)
#   /playlists/{id}/tracks → {"added_at": ..., "track": {...} | null, ...}     (envelope)
# Rule: no "artists" key but a "track" mapping = envelope, unwrap it. Playlist items can
# carry track=null (removed/local episodes) - that's a skip, not an error.
def _unwrap(raw: Mapping[str, Any]) -> Mapping[str, Any] | None:
    if "artists" not in raw and "track" in raw:
        inner = raw.get("track")
        return inner if isinstance(inner, Mapping) else None
    return raw


def normalize_track(raw: Any) -> NormalizedTrack | None:
    """Extract the canonical track fields from one catalog record.

    Args:
        raw: Item from a page's ``items`` list (bare track or envelope)

    Returns:
        NormalizedTrack, or None when the record must be skipped (no track id,
        or no primary artist with an id)
    """
    if not isinstance(raw, Mapping):
        return None

    track = _unwrap(raw)
    if track is None:
        return None

    track_id = track.get("id")
    if not track_id:
        return None

    artists = track.get("artists")
    if not isinstance(artists, list) or not artists:
        logger.debug("Skipping track %s: no artists", track_id)
        return None
    primary = artists[0]
    if not isinstance(primary, Mapping) or not primary.get("id"):
        logger.debug("Skipping track %s: primary artist has no id", track_id)
        return None

    popularity = track.get("popularity")
    return NormalizedTrack(
        external_id=str(track_id),
        name=str(track.get("name") or ""),
        popularity=int(popularity) if isinstance(popularity, int | float) else 0,
        preview_url=track.get("preview_url") or None,
        primary_artist_external_id=str(primary["id"]),
        primary_artist_name=str(primary.get("name") or ""),
    )


__all__ = ["normalize_track"]
