"""Application settings loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings (DATABASE_*)."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", extra="ignore")

    url: str = Field(
        default="sqlite+aiosqlite:///./songsync.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Log every SQL statement")
    pool_pre_ping: bool = Field(default=True)
    # Pool settings only apply to PostgreSQL (see Database.__init__)
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=3600, ge=-1)


class SpotifySettings(BaseSettings):
    """Spotify Web API settings (SPOTIFY_*).

    Hey future me - there is NO client_id/secret here! OAuth lives outside this
    project; we only get handed a ready access token per user.
    """

    model_config = SettingsConfigDict(env_prefix="SPOTIFY_", extra="ignore")

    api_base_url: str = Field(default="https://api.spotify.com/v1")
    request_timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=0, description="Retries on HTTP 429")
    page_limit: int = Field(default=50, ge=1, le=50)
    requests_per_second: float = Field(default=2.0, gt=0)
    burst: int = Field(default=10, ge=1)

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Normalize base URL so endpoint joins never produce '//'."""
        return value.rstrip("/")


class IngestionSettings(BaseSettings):
    """Ingestion pipeline tuning (INGESTION_*)."""

    model_config = SettingsConfigDict(env_prefix="INGESTION_", extra="ignore")

    max_concurrent_writes: int = Field(
        default=5,
        ge=1,
        description="Records written to the store at the same time (whole run)",
    )
    max_concurrent_playlists: int = Field(
        default=5,
        ge=1,
        description="Playlist track listings drained at the same time",
    )
    run_timeout_seconds: float | None = Field(
        default=1800.0,
        description="Abort a run after this many seconds (None = no limit)",
    )
    status_poll_interval: float = Field(default=2.0, gt=0)


class ObservabilitySettings(BaseSettings):
    """Logging output settings (OBSERVABILITY_*)."""

    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_", extra="ignore")

    log_json_format: bool = Field(default=False)


class Settings(BaseSettings):
    """Top-level settings aggregating every concern."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="songsync")
    log_level: str = Field(default="INFO")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Only accept the standard logging level names."""
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level

    def _get_sqlite_db_path(self) -> Path | None:
        """Return the SQLite database file path, or None for other backends.

        In-memory SQLite URLs also return None (nothing to validate on disk).
        """
        url = self.database.url
        if not url.startswith("sqlite"):
            return None
        _, _, raw_path = url.partition(":///")
        if not raw_path or raw_path.startswith(":memory:"):
            return None
        return Path(raw_path.split("?", 1)[0])


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
