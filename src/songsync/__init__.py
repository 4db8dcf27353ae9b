"""SongSync - listening history ingestion for Spotify users."""

__version__ = "0.1.0"
