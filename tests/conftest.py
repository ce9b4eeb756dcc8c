"""Pytest configuration."""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

# Ensure test environment
os.environ.setdefault("SL_DATABASE_URL", "sqlite+aiosqlite:///test.db")
os.environ.setdefault("SL_DEBUG", "true")
os.environ.setdefault("SL_PUBLIC_BASE_URL", "https://links.test")

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import Settings
from app.core.analytics import AnalyticsCounter
from app.core.resolution_cache import ResolutionCache
from app.models.tables import Base, User


class FakeClock:
    """Settable UTC clock for TTL and window tests."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine]:
    # File-backed so concurrent sessions really get separate connections
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'smartlink.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> Settings:
    return Settings(free_plan_quota=5, pro_plan_quota=1000)


@pytest.fixture
def cache(session_factory, clock) -> ResolutionCache:
    return ResolutionCache(session_factory, clock=clock)


@pytest.fixture
def analytics(session_factory, clock) -> AnalyticsCounter:
    return AnalyticsCounter(session_factory, clock=clock)


@pytest.fixture
def make_user(session_factory):
    async def _make(email: str = "artist@example.com", plan: str = "free", display_name: str = "Artist") -> int:
        async with session_factory() as session, session.begin():
            user = User(email=email, plan=plan, display_name=display_name)
            session.add(user)
            await session.flush()
            return user.id

    return _make


@pytest.fixture
def odesli_payload() -> dict:
    """Trimmed /links response: Apple entity listed first, Spotify must still win."""
    return {
        "entityUniqueId": "SPOTIFY_SONG::abc123",
        "pageUrl": "https://song.link/s/abc123",
        "entitiesByUniqueId": {
            "ITUNES_SONG::999": {
                "title": "Blinding Lights (Apple)",
                "artistName": "The Weeknd (Apple)",
                "thumbnailUrl": "https://is1.mzstatic.com/cover.jpg",
            },
            "SPOTIFY_SONG::abc123": {
                "title": "Blinding Lights",
                "artistName": "The Weeknd",
                "thumbnailUrl": "https://i.scdn.co/image/cover.jpg",
            },
        },
        "linksByPlatform": {
            "bandcamp": {"url": "https://theweeknd.bandcamp.com/track/blinding-lights"},
            "spotify": {
                "url": "https://open.spotify.com/track/abc123",
                "nativeAppUriDesktop": "spotify:track:abc123",
            },
            "deezer": {"url": "https://www.deezer.com/track/42"},
            "napster": {"url": "https://play.napster.com/track/1"},
        },
    }
