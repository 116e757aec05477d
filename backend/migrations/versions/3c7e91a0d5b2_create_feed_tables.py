"""create_feed_tables

Revision ID: 3c7e91a0d5b2
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '3c7e91a0d5b2'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    existing = set(sa.inspect(bind).get_table_names())

    if 'albums' not in existing:
        op.create_table(
            'albums',
            sa.Column('id', sa.String(), nullable=False),
            sa.Column('original_id', sa.String(), nullable=True),
            sa.Column('asin', sa.String(), nullable=True),
            sa.Column('title', sa.String(), nullable=False),
            sa.Column('label', sa.String(), nullable=True),
            sa.Column('year', sa.String(), nullable=True),
            sa.Column('cdcover', sa.String(), nullable=True),
            sa.Column('local_image', sa.String(), nullable=True),
            sa.Column('buyalbum', sa.String(), nullable=True),
            sa.Column('itunes', sa.String(), nullable=True),
            sa.Column('itunes_id', sa.Integer(), nullable=True),
            sa.Column('created_by', sa.String(), nullable=True),
            sa.Column('approved_by', sa.String(), nullable=True),
            sa.Column('pending_id', sa.String(), nullable=True),
            sa.Column('job', sa.String(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_albums_original_id', 'albums', ['original_id'], unique=True)
        op.create_index('ix_albums_asin', 'albums', ['asin'])

    if 'artists' not in existing:
        op.create_table(
            'artists',
            sa.Column('id', sa.String(), nullable=False),
            sa.Column('original_id', sa.String(), nullable=True),
            sa.Column('artistdisplay', sa.String(), nullable=False),
            sa.Column('artistcat', sa.String(), nullable=True),
            sa.Column('created_by', sa.String(), nullable=True),
            sa.Column('approved_by', sa.String(), nullable=True),
            sa.Column('job', sa.String(), nullable=True),
            sa.Column('oldid', sa.Integer(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_artists_original_id', 'artists', ['original_id'], unique=True)

    if 'composers' not in existing:
        op.create_table(
            'composers',
            sa.Column('id', sa.String(), nullable=False),
            sa.Column('original_id', sa.String(), nullable=True),
            sa.Column('display', sa.String(), nullable=True),
            sa.Column('value', sa.String(), nullable=True),
            sa.Column('cat', sa.String(), nullable=True),
            sa.Column('created_by', sa.String(), nullable=True),
            sa.Column('approved_by', sa.String(), nullable=True),
            sa.Column('job', sa.String(), nullable=True),
            sa.Column('oldid', sa.Integer(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_composers_original_id', 'composers', ['original_id'], unique=True)

    if 'tracks' not in existing:
        op.create_table(
            'tracks',
            sa.Column('id', sa.String(), nullable=False),
            sa.Column('original_id', sa.String(), nullable=True),
            sa.Column('track_artist', sa.String(), nullable=False),
            sa.Column('title', sa.String(), nullable=False),
            sa.Column('fn', sa.String(), nullable=True),
            sa.Column('primary', sa.String(), nullable=True),
            sa.Column('secondary', sa.String(), nullable=True),
            sa.Column('holiday', sa.Boolean(), nullable=True),
            sa.Column('duration', sa.Float(), nullable=True),
            sa.Column('unedited_duration', sa.Float(), nullable=True),
            sa.Column('calculated_weight', sa.Float(), nullable=True),
            sa.Column('listfrom', sa.String(), nullable=True),
            sa.Column('created_by', sa.String(), nullable=True),
            sa.Column('approved_by', sa.String(), nullable=True),
            sa.Column('job', sa.String(), nullable=True),
            sa.Column('oldid', sa.Integer(), nullable=True),
            sa.Column('album_id', sa.String(), sa.ForeignKey('albums.id', ondelete='SET NULL'), nullable=True),
            sa.Column('artist_id', sa.String(), sa.ForeignKey('artists.id', ondelete='SET NULL'), nullable=True),
            sa.Column('composer_id', sa.String(), sa.ForeignKey('composers.id', ondelete='SET NULL'), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_tracks_original_id', 'tracks', ['original_id'], unique=True)
        op.create_index('ix_tracks_album_id', 'tracks', ['album_id'])
        op.create_index('ix_tracks_artist_id', 'tracks', ['artist_id'])
        op.create_index('ix_tracks_composer_id', 'tracks', ['composer_id'])
        op.create_index('ix_tracks_fingerprint', 'tracks', ['track_artist', 'title', 'fn'])

    if 'ads' not in existing:
        op.create_table(
            'ads',
            sa.Column('id', sa.String(), nullable=False),
            sa.Column('track_artist', sa.String(), nullable=False, server_default='runspot'),
            sa.Column('title', sa.String(), nullable=False, server_default='sweeper'),
            sa.Column('ad_type', sa.String(), nullable=True),
            sa.Column('ad_source', sa.String(), nullable=True),
            sa.Column('fn', sa.String(), nullable=True),
            sa.Column('fn_as', sa.String(), nullable=True),
            sa.Column('fn_ar', sa.String(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
        )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('ads')
    op.drop_table('tracks')
    op.drop_table('composers')
    op.drop_table('artists')
    op.drop_table('albums')
