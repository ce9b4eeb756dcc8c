"""initial smartlink schema

Revision ID: 7f3a9c21d4e0
Revises:
Create Date: 2026-10-19 09:12:44.318206

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '7f3a9c21d4e0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _counter(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), server_default='0', nullable=False)


def upgrade() -> None:
    # --- Users ---
    op.create_table('users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('plan', sa.String(length=20), server_default='free', nullable=False),
        _counter('smartlinks_count'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    # --- SmartLinks ---
    op.create_table('smartlinks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('slug', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('artist', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cover_url', sa.Text(), nullable=True),
        sa.Column('preview_audio_url', sa.Text(), nullable=True),
        sa.Column('platforms', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('template', sa.String(length=50), server_default='default', nullable=False),
        sa.Column('customization', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('tracking_pixels', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        _counter('click_count'),
        sa.Column('source_url', sa.Text(), nullable=True),
        sa.Column('odesli_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('odesli_fetched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_smartlinks_user_id'), 'smartlinks', ['user_id'], unique=False)
    op.create_index(op.f('ix_smartlinks_slug'), 'smartlinks', ['slug'], unique=True)
    op.create_index('ix_smartlinks_user_created', 'smartlinks', ['user_id', 'created_at'], unique=False)

    # --- Analytics (lifetime counters, one row per smartlink) ---
    op.create_table('analytics',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('smartlink_id', sa.Integer(), nullable=False),
        _counter('page_views'),
        _counter('clicks_spotify'),
        _counter('clicks_apple_music'),
        _counter('clicks_youtube_music'),
        _counter('clicks_youtube'),
        _counter('clicks_deezer'),
        _counter('clicks_soundcloud'),
        _counter('clicks_tidal'),
        _counter('clicks_amazon_music'),
        _counter('clicks_bandcamp'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['smartlink_id'], ['smartlinks.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('smartlink_id'),
    )

    # --- Odesli resolution cache ---
    op.create_table('odesli_cache',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('source_url', sa.Text(), nullable=False),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('entity_id', sa.String(length=255), nullable=True),
        sa.Column('title', sa.String(length=500), nullable=True),
        sa.Column('artist', sa.String(length=500), nullable=True),
        sa.Column('thumbnail_url', sa.Text(), nullable=True),
        _counter('platforms_count'),
        sa.Column('hit_count', sa.Integer(), server_default='1', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_url'),
    )
    op.create_index('ix_odesli_cache_expires_at', 'odesli_cache', ['expires_at'], unique=False)
    op.create_index('ix_odesli_cache_hits', 'odesli_cache', ['hit_count', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_odesli_cache_hits', table_name='odesli_cache')
    op.drop_index('ix_odesli_cache_expires_at', table_name='odesli_cache')
    op.drop_table('odesli_cache')
    op.drop_table('analytics')
    op.drop_index('ix_smartlinks_user_created', table_name='smartlinks')
    op.drop_index(op.f('ix_smartlinks_slug'), table_name='smartlinks')
    op.drop_index(op.f('ix_smartlinks_user_id'), table_name='smartlinks')
    op.drop_table('smartlinks')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
