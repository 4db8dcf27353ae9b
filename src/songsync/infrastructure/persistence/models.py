"""SQLAlchemy ORM models for SongSync."""

import uuid
from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Hey future me - song_data_downloaded IS the completion flag! False until an ingestion
# run drains every source successfully, then true. Nothing in this repo ever sets it
# back to false - a failed re-run leaves whatever value was there before.
class UserModel(Base):
    """A listener whose history we ingest."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    spotify_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    access_token: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    song_data_downloaded: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default=sa.false()
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    memberships: Mapped[list["UserTrackModel"]] = relationship(
        "UserTrackModel", back_populates="user", cascade="all, delete-orphan"
    )


# Listen up - artists and tracks are a SHARED catalog. Many users point at the same rows,
# which is why spotify_id is UNIQUE and the repositories only ever find-or-create. Fields
# other than spotify_id are written once on first sight and never touched again.
class ArtistModel(Base):
    """Catalog artist, unique per Spotify ID."""

    __tablename__ = "artists"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    spotify_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    popularity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    tracks: Mapped[list["TrackModel"]] = relationship(
        "TrackModel", back_populates="artist"
    )

    __table_args__ = (Index("ix_artists_name_lower", sa.func.lower(name)),)


class TrackModel(Base):
    """Catalog track, unique per Spotify ID, owned by its primary artist."""

    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    spotify_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    artist_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("artists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    popularity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    preview_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    artist: Mapped["ArtistModel"] = relationship("ArtistModel", back_populates="tracks")


class UserTrackModel(Base):
    """Association table for User-Track membership (no payload)."""

    __tablename__ = "user_tracks"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    track_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    user: Mapped["UserModel"] = relationship("UserModel", back_populates="memberships")
    track: Mapped["TrackModel"] = relationship("TrackModel")

    __table_args__ = (Index("ix_user_tracks_track", "track_id"),)
