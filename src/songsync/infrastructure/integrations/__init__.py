"""Infrastructure integrations with external services."""

from .spotify_client import SpotifyClient

__all__ = ["SpotifyClient"]
