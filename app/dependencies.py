"""
Process-wide service instances, built lazily on first use.

The rate limiter lives here as one instance per process; every resolver
shares it. Tests build their own instances instead of going through these.
"""

from datetime import timedelta
from functools import lru_cache

from app.config import get_settings
from app.core.analytics import AnalyticsCounter
from app.core.odesli_client import OdesliClient
from app.core.rate_limiter import FixedWindowRateLimiter
from app.core.resolution_cache import ResolutionCache
from app.core.resolver import LinkResolver
from app.core.slug import SlugGenerator
from app.core.smartlinks import SmartLinkStore
from app.models.database import get_session_maker


@lru_cache
def get_rate_limiter() -> FixedWindowRateLimiter:
    settings = get_settings()
    return FixedWindowRateLimiter(
        limit=settings.odesli_rate_limit,
        window_seconds=settings.odesli_rate_window_seconds,
    )


@lru_cache
def get_resolution_cache() -> ResolutionCache:
    settings = get_settings()
    return ResolutionCache(
        get_session_maker(),
        default_ttl=timedelta(seconds=settings.odesli_cache_ttl_seconds),
    )


@lru_cache
def get_resolver() -> LinkResolver:
    settings = get_settings()
    client = OdesliClient(
        settings.odesli_api_url,
        user_country=settings.odesli_user_country,
        timeout_seconds=settings.odesli_timeout_seconds,
    )
    return LinkResolver(client, get_resolution_cache(), get_rate_limiter())


@lru_cache
def get_smartlink_store() -> SmartLinkStore:
    settings = get_settings()
    slugs = SlugGenerator(
        base_length=settings.slug_base_length,
        max_attempts=settings.slug_max_attempts,
    )
    return SmartLinkStore(get_session_maker(), get_resolver(), slugs, settings)


@lru_cache
def get_analytics() -> AnalyticsCounter:
    return AnalyticsCounter(get_session_maker())
