"""Configuration module for SongSync."""

from .settings import (
    DatabaseSettings,
    IngestionSettings,
    ObservabilitySettings,
    Settings,
    SpotifySettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "IngestionSettings",
    "ObservabilitySettings",
    "Settings",
    "SpotifySettings",
    "get_settings",
]
