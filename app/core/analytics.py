"""
SmartLink analytics: lifetime counters in `analytics`, one row per smartlink.

Writes are best-effort telemetry:
  - the row is created on first event (INSERT .. ON CONFLICT DO NOTHING)
  - counters move with `col = col + 1` in SQL, never read-modify-write
  - any failure is logged and swallowed; the caller's page / redirect wins

Reads return lifetime totals. There is no per-event history, so the daily
series spreads the lifetime click total evenly over the requested window.
Trading that for real time series means an append-only click table
aggregated on read (more storage, exact days).
"""

import datetime
from collections.abc import Callable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import SmartLinkNotFound
from app.core.platforms import PLATFORM_CATALOG, normalize_platform_key
from app.models.database import upsert_insert
from app.models.tables import Analytics, SmartLink
from app.schemas import AnalyticsSummary, DailyClicks, PlatformClicks

import structlog

logger = structlog.get_logger()


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def spread_daily(total: int, days: int, today: datetime.date) -> list[DailyClicks]:
    """Even split of ``total`` over ``days`` days ending today; remainder goes to the latest days."""
    base, remainder = divmod(total, days)
    series = []
    for offset in range(days - 1, -1, -1):
        extra = 1 if offset < remainder else 0
        series.append(DailyClicks(date=today - datetime.timedelta(days=offset), clicks=base + extra))
    return series


class AnalyticsCounter:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def _increment(self, smartlink_id: int, column: str) -> None:
        now = self._clock()
        counter = getattr(Analytics, column)
        async with self._session_factory() as session, session.begin():
            insert = upsert_insert(session)
            await session.execute(
                insert(Analytics)
                .values(smartlink_id=smartlink_id, created_at=now, updated_at=now)
                .on_conflict_do_nothing(index_elements=[Analytics.smartlink_id])
            )
            await session.execute(
                update(Analytics)
                .where(Analytics.smartlink_id == smartlink_id)
                .values({counter: counter + 1, Analytics.updated_at: now})
                .execution_options(synchronize_session=False)
            )
            # Legacy coarse counter; leave updated_at alone
            await session.execute(
                update(SmartLink)
                .where(SmartLink.id == smartlink_id)
                .values(click_count=SmartLink.click_count + 1, updated_at=SmartLink.updated_at)
                .execution_options(synchronize_session=False)
            )

    async def record_page_view(self, smartlink_id: int) -> bool:
        """Count one page view. Never raises; False when nothing was recorded."""
        try:
            await self._increment(smartlink_id, "page_views")
        except Exception as exc:
            logger.warning("analytics_record_failed", smartlink_id=smartlink_id, kind="page_view", error=str(exc))
            return False
        return True

    async def record_platform_click(self, smartlink_id: int, platform_key: str | None) -> bool:
        """Count one outbound click. Unknown platforms are logged and dropped. Never raises."""
        key = normalize_platform_key(platform_key)
        if key is None:
            logger.warning("analytics_unknown_platform", smartlink_id=smartlink_id, platform=platform_key)
            return False

        try:
            await self._increment(smartlink_id, PLATFORM_CATALOG[key].counter_column)
        except Exception as exc:
            logger.warning("analytics_record_failed", smartlink_id=smartlink_id, kind="click", platform=key, error=str(exc))
            return False
        return True

    async def read(
        self,
        smartlink_id: int,
        owner_id: int | None,
        window_days: int = 30,
    ) -> AnalyticsSummary:
        if window_days < 1:
            raise ValueError("window_days must be at least 1")

        async with self._session_factory() as session:
            stmt = select(SmartLink.id).where(SmartLink.id == smartlink_id)
            if owner_id is not None:
                stmt = stmt.where(SmartLink.user_id == owner_id)
            if (await session.execute(stmt)).first() is None:
                raise SmartLinkNotFound(smartlink_id)

            result = await session.execute(
                select(Analytics).where(Analytics.smartlink_id == smartlink_id)
            )
            row = result.scalar_one_or_none()

        today = self._clock().date()
        if row is None:
            return AnalyticsSummary(
                window_days=window_days,
                daily_series=spread_daily(0, window_days, today),
            )

        per_platform = [
            PlatformClicks(platform=key, clicks=getattr(row, info.counter_column) or 0)
            for key, info in PLATFORM_CATALOG.items()
        ]
        total_clicks = sum(p.clicks for p in per_platform)
        per_platform = sorted((p for p in per_platform if p.clicks > 0), key=lambda p: p.clicks, reverse=True)

        return AnalyticsSummary(
            total_page_views=row.page_views or 0,
            total_clicks=total_clicks,
            per_platform=per_platform,
            top_platform=per_platform[0].platform if per_platform else None,
            daily_series=spread_daily(total_clicks, window_days, today),
            window_days=window_days,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
