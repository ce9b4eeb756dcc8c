"""
Odesli resolution cache, one row per source URL in `odesli_cache`.

Read path:
  get()        → fresh entry only (expires_at > now), bumps hit_count
  get_stale()  → newest entry regardless of expiry, no hit bump (fallback only)
Write path:
  put()        → upsert; on conflict overwrite payload + metadata,
                 hit_count + 1, expires_at = now + ttl
Maintenance (cron / CLI, never automatic):
  cleanup_expired(), stats(), popular()

The cache is an optimization. Any storage failure on the read/write path is
logged and reported as a miss so resolution carries on uncached.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.database import upsert_insert
from app.models.tables import OdesliCacheEntry

import structlog

logger = structlog.get_logger()

_STORAGE_ERRORS = (SQLAlchemyError, OSError)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CachedResolution:
    source_url: str
    payload: dict[str, Any]
    entity_id: str | None
    title: str | None
    artist: str | None
    thumbnail_url: str | None
    platforms_count: int
    hit_count: int
    created_at: datetime | None
    expires_at: datetime | None


@dataclass(frozen=True)
class ExtractedMeta:
    entity_id: str | None = None
    title: str | None = None
    artist: str | None = None
    thumbnail_url: str | None = None
    platforms_count: int = 0


def _to_cached(row: OdesliCacheEntry) -> CachedResolution:
    return CachedResolution(
        source_url=row.source_url,
        payload=row.data,
        entity_id=row.entity_id,
        title=row.title,
        artist=row.artist,
        thumbnail_url=row.thumbnail_url,
        platforms_count=row.platforms_count or 0,
        hit_count=row.hit_count or 0,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )


class ResolutionCache:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        default_ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.default_ttl = default_ttl
        self._clock = clock

    # ------------------------------------------------------------------
    # Resolution path (never raises on storage failure)
    # ------------------------------------------------------------------

    async def get(self, source_url: str) -> CachedResolution | None:
        """Return the entry if it has not expired, counting the hit."""
        now = self._clock()
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    update(OdesliCacheEntry)
                    .where(
                        OdesliCacheEntry.source_url == source_url,
                        OdesliCacheEntry.expires_at > now,
                    )
                    .values(hit_count=OdesliCacheEntry.hit_count + 1)
                    .returning(OdesliCacheEntry)
                    .execution_options(synchronize_session=False)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    return None
                cached = _to_cached(row)
        except _STORAGE_ERRORS as exc:
            logger.warning("odesli_cache_unavailable", op="get", error=str(exc))
            return None

        logger.info("odesli_cache_hit", source_url=source_url, hit_count=cached.hit_count)
        return cached

    async def get_stale(self, source_url: str) -> CachedResolution | None:
        """Most recent entry regardless of expiry. Fallback use only, no hit counted."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(OdesliCacheEntry)
                    .where(OdesliCacheEntry.source_url == source_url)
                    .order_by(OdesliCacheEntry.created_at.desc())
                    .limit(1)
                )
                row = result.scalar_one_or_none()
                return _to_cached(row) if row is not None else None
        except _STORAGE_ERRORS as exc:
            logger.warning("odesli_cache_unavailable", op="get_stale", error=str(exc))
            return None

    async def put(
        self,
        source_url: str,
        payload: dict[str, Any],
        meta: ExtractedMeta,
        ttl: timedelta | None = None,
    ) -> bool:
        """Upsert a resolution. Returns False if the store could not be written."""
        now = self._clock()
        expires_at = now + (ttl if ttl is not None else self.default_ttl)
        values = {
            "data": payload,
            "entity_id": meta.entity_id,
            "title": meta.title,
            "artist": meta.artist,
            "thumbnail_url": meta.thumbnail_url,
            "platforms_count": meta.platforms_count,
            "expires_at": expires_at,
        }
        try:
            async with self._session_factory() as session, session.begin():
                insert = upsert_insert(session)
                stmt = insert(OdesliCacheEntry).values(
                    source_url=source_url,
                    hit_count=1,
                    created_at=now,
                    **values,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[OdesliCacheEntry.source_url],
                    set_={**values, "hit_count": OdesliCacheEntry.hit_count + 1},
                )
                await session.execute(stmt)
        except _STORAGE_ERRORS as exc:
            logger.warning("odesli_cache_unavailable", op="put", error=str(exc))
            return False

        logger.info(
            "odesli_cached",
            source_url=source_url,
            title=meta.title,
            artist=meta.artist,
            platforms=meta.platforms_count,
        )
        return True

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup_expired(self) -> int:
        """Delete every entry whose expiry has passed. Storage errors propagate."""
        now = self._clock()
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(OdesliCacheEntry)
                .where(OdesliCacheEntry.expires_at <= now)
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount or 0
        logger.info("odesli_cache_cleaned", deleted=deleted)
        return deleted

    async def stats(self) -> dict[str, Any]:
        now = self._clock()
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(
                        func.count(OdesliCacheEntry.id).label("total_entries"),
                        func.count(OdesliCacheEntry.id).filter(OdesliCacheEntry.expires_at > now).label("valid_entries"),
                        func.count(OdesliCacheEntry.id).filter(OdesliCacheEntry.expires_at <= now).label("expired_entries"),
                        func.coalesce(func.sum(OdesliCacheEntry.hit_count), 0).label("total_hits"),
                        func.avg(OdesliCacheEntry.platforms_count).label("avg_platforms"),
                        func.max(OdesliCacheEntry.created_at).label("last_cached_at"),
                    )
                )
                row = result.one()
        except _STORAGE_ERRORS as exc:
            logger.warning("odesli_cache_stats_failed", error=str(exc))
            return {
                "total_entries": 0,
                "valid_entries": 0,
                "expired_entries": 0,
                "total_hits": 0,
                "avg_platform_count": 0.0,
                "last_cached_at": None,
                "cache_enabled": False,
            }

        return {
            "total_entries": row.total_entries,
            "valid_entries": row.valid_entries,
            "expired_entries": row.expired_entries,
            "total_hits": int(row.total_hits or 0),
            "avg_platform_count": round(float(row.avg_platforms), 1) if row.avg_platforms is not None else 0.0,
            "last_cached_at": row.last_cached_at,
            "cache_enabled": True,
        }

    async def popular(self, limit: int = 10) -> list[dict[str, Any]]:
        """Most-hit entries that carry a title and artist, newest first on ties."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(
                        OdesliCacheEntry.source_url,
                        OdesliCacheEntry.title,
                        OdesliCacheEntry.artist,
                        OdesliCacheEntry.hit_count,
                        OdesliCacheEntry.platforms_count,
                        OdesliCacheEntry.created_at,
                    )
                    .where(
                        OdesliCacheEntry.title.is_not(None),
                        OdesliCacheEntry.artist.is_not(None),
                    )
                    .order_by(OdesliCacheEntry.hit_count.desc(), OdesliCacheEntry.created_at.desc())
                    .limit(limit)
                )
                rows = result.all()
        except _STORAGE_ERRORS as exc:
            logger.warning("odesli_cache_popular_failed", error=str(exc))
            return []

        return [
            {
                "source_url": r.source_url,
                "title": r.title,
                "artist": r.artist,
                "hit_count": r.hit_count,
                "platforms_count": r.platforms_count,
                "created_at": r.created_at,
            }
            for r in rows
        ]
