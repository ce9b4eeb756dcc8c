"""
Database models.

Design principles:
  - odesli_cache is keyed by source URL (one row per URL, upserted)
  - smartlinks are mutable; slug is immutable once written
  - analytics holds lifetime counters, one row per smartlink, increment-only
  - users.smartlinks_count moves in the same transaction as smartlink insert/delete
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Entity tables
# ---------------------------------------------------------------------------

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=True)
    plan = Column(String(20), nullable=False, default="free", server_default="free")
    smartlinks_count = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    smartlinks = relationship("SmartLink", back_populates="owner")


class SmartLink(Base):
    __tablename__ = "smartlinks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    slug = Column(String(32), nullable=False, unique=True, index=True)

    # What the page shows
    title = Column(String(255), nullable=False)
    artist = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    cover_url = Column(Text, nullable=True)
    preview_audio_url = Column(Text, nullable=True)
    platforms = Column(JSONDocument, nullable=False, default=list)    # list[Platform]
    template = Column(String(50), nullable=False, default="default", server_default="default")
    customization = Column(JSONDocument, nullable=True)                # Customization
    tracking_pixels = Column(JSONDocument, nullable=True)              # TrackingPixels

    # Gates public visibility only
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())

    # Legacy coarse counter; real numbers live in analytics
    click_count = Column(Integer, nullable=False, default=0, server_default="0")

    # Resolution provenance
    source_url = Column(Text, nullable=True)
    odesli_data = Column(JSONDocument, nullable=True)                  # raw upstream payload
    odesli_fetched_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="smartlinks")

    __table_args__ = (
        Index("ix_smartlinks_user_created", "user_id", "created_at"),
    )


class Analytics(Base):
    """
    One row per smartlink, created lazily on the first recorded event.
    Counters only ever go up.
    """
    __tablename__ = "analytics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    smartlink_id = Column(Integer, ForeignKey("smartlinks.id"), nullable=False, unique=True)

    page_views = Column(Integer, nullable=False, default=0, server_default="0")

    clicks_spotify = Column(Integer, nullable=False, default=0, server_default="0")
    clicks_apple_music = Column(Integer, nullable=False, default=0, server_default="0")
    clicks_youtube_music = Column(Integer, nullable=False, default=0, server_default="0")
    clicks_youtube = Column(Integer, nullable=False, default=0, server_default="0")
    clicks_deezer = Column(Integer, nullable=False, default=0, server_default="0")
    clicks_soundcloud = Column(Integer, nullable=False, default=0, server_default="0")
    clicks_tidal = Column(Integer, nullable=False, default=0, server_default="0")
    clicks_amazon_music = Column(Integer, nullable=False, default=0, server_default="0")
    clicks_bandcamp = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())


# ---------------------------------------------------------------------------
# Cache tables
# ---------------------------------------------------------------------------

class OdesliCacheEntry(Base):
    """Resolved Odesli payload for one source URL."""
    __tablename__ = "odesli_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_url = Column(Text, nullable=False, unique=True)
    data = Column(JSONDocument, nullable=False)                        # raw upstream payload

    # Extracted from the priority entity
    entity_id = Column(String(255), nullable=True)
    title = Column(String(500), nullable=True)
    artist = Column(String(500), nullable=True)
    thumbnail_url = Column(Text, nullable=True)
    platforms_count = Column(Integer, nullable=False, default=0, server_default="0")

    hit_count = Column(Integer, nullable=False, default=1, server_default="1")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_odesli_cache_expires_at", "expires_at"),
        Index("ix_odesli_cache_hits", "hit_count", "created_at"),
    )
