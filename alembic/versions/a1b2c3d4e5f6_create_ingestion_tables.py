"""create ingestion tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 10:00:00.000000

Hey future me - INITIAL SCHEMA of the ingestion store!

TABELLEN-STRUKTUR:
- users: the listeners; song_data_downloaded is the completion flag
- artists: shared catalog, spotify_id UNIQUE (find-or-create target)
- tracks: shared catalog, spotify_id UNIQUE, artist_id = primary artist only
- user_tracks: membership, composite PK (user_id, track_id) = set semantics

The UNIQUE constraints are what makes concurrent ingestion safe - the repositories
use INSERT ... ON CONFLICT DO NOTHING against them. Don't drop them "for speed".
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("spotify_id", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column(
            "song_data_downloaded",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_spotify_id", "users", ["spotify_id"], unique=True)

    op.create_table(
        "artists",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("spotify_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("popularity", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_artists_spotify_id", "artists", ["spotify_id"], unique=True)
    op.create_index("ix_artists_name_lower", "artists", [sa.text("lower(name)")])

    op.create_table(
        "tracks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("spotify_id", sa.String(255), nullable=False),
        sa.Column(
            "artist_id",
            sa.String(36),
            sa.ForeignKey("artists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("popularity", sa.Integer(), nullable=False),
        sa.Column("preview_url", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_tracks_spotify_id", "tracks", ["spotify_id"], unique=True)
    op.create_index("ix_tracks_artist_id", "tracks", ["artist_id"])

    op.create_table(
        "user_tracks",
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "track_id",
            sa.String(36),
            sa.ForeignKey("tracks.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_user_tracks_track", "user_tracks", ["track_id"])


def downgrade() -> None:
    op.drop_index("ix_user_tracks_track", table_name="user_tracks")
    op.drop_table("user_tracks")
    op.drop_index("ix_tracks_artist_id", table_name="tracks")
    op.drop_index("ix_tracks_spotify_id", table_name="tracks")
    op.drop_table("tracks")
    op.drop_index("ix_artists_name_lower", table_name="artists")
    op.drop_index("ix_artists_spotify_id", table_name="artists")
    op.drop_table("artists")
    op.drop_index("ix_users_spotify_id", table_name="users")
    op.drop_table("users")
