"""
Link resolver: one source URL in, cross-platform links out.

Flow:
  1. Validate + normalize the source URL (known music services only)
  2. Fresh cache hit → return it (no limiter, no network)
  3. Local fixed-window limiter → RateLimited if exhausted (no stale fallback)
  4. One Odesli call, bounded by the client timeout
  5. Parse: priority entity, catalog platforms, priority order
  6. Upsert the raw payload + extracted metadata into the cache
  7. Upstream failure (404, 429, 5xx, timeout, transport, bad body)
     → newest cached entry even if expired, flagged is_stale
     → nothing cached → the original error propagates
"""

from urllib.parse import urlsplit, urlunsplit

from app.core.exceptions import (
    InvalidSourceUrl,
    RateLimited,
    ResolutionError,
    UpstreamError,
)
from app.core.odesli_client import OdesliClient
from app.core.platforms import ParsedAggregate, parse_aggregate
from app.core.rate_limiter import FixedWindowRateLimiter
from app.core.resolution_cache import ExtractedMeta, ResolutionCache

import structlog

logger = structlog.get_logger()

# Suffix match on the host; entries ending in "." match any TLD (music.amazon.fr, ...)
ALLOWED_SOURCE_DOMAINS = (
    "spotify.com",
    "music.apple.com",
    "youtube.com",
    "youtu.be",
    "deezer.com",
    "soundcloud.com",
    "tidal.com",
    "music.amazon.",
    "bandcamp.com",
    "qobuz.com",
)


def _host_allowed(host: str) -> bool:
    for domain in ALLOWED_SOURCE_DOMAINS:
        if domain.endswith("."):
            if host.startswith(domain) or f".{domain}" in host:
                return True
        elif host == domain or host.endswith(f".{domain}"):
            return True
    return False


def normalize_source_url(url: str) -> str:
    """Validate a source URL and return the form used as the cache key.

    Scheme and host are lower-cased and the fragment dropped; path and query
    are kept as-is (track ids are case-sensitive).
    """
    candidate = (url or "").strip()
    try:
        parts = urlsplit(candidate)
        host = (parts.hostname or "").lower()
    except ValueError:
        raise InvalidSourceUrl(candidate, ALLOWED_SOURCE_DOMAINS) from None

    if parts.scheme.lower() not in ("http", "https") or not host:
        raise InvalidSourceUrl(candidate, ALLOWED_SOURCE_DOMAINS)
    if not _host_allowed(host):
        raise InvalidSourceUrl(candidate, ALLOWED_SOURCE_DOMAINS)

    netloc = parts.netloc.lower()
    return urlunsplit((parts.scheme.lower(), netloc, parts.path, parts.query, ""))


class LinkResolver:
    def __init__(
        self,
        client: OdesliClient,
        cache: ResolutionCache,
        limiter: FixedWindowRateLimiter,
    ) -> None:
        self._client = client
        self._cache = cache
        self._limiter = limiter

    async def resolve(self, source_url: str) -> ParsedAggregate:
        url = normalize_source_url(source_url)

        cached = await self._cache.get(url)
        if cached is not None:
            try:
                return parse_aggregate(cached.payload)
            except ValueError as exc:
                logger.warning("odesli_cache_unreadable", source_url=url, error=str(exc))

        decision = self._limiter.check()
        if not decision.allowed:
            raise RateLimited(decision.retry_after_seconds)

        try:
            payload = await self._client.fetch_links(url)
            try:
                parsed = parse_aggregate(payload)
            except ValueError as exc:
                raise UpstreamError(200, f"unparseable payload: {exc}") from exc
        except ResolutionError as exc:
            return await self._stale_or_raise(url, exc)

        await self._cache.put(
            url,
            payload,
            ExtractedMeta(
                entity_id=parsed.entity_id,
                title=parsed.title or None,
                artist=parsed.artist or None,
                thumbnail_url=parsed.cover_url or None,
                platforms_count=len(payload.get("linksByPlatform") or {}),
            ),
        )
        logger.info(
            "odesli_resolved",
            source_url=url,
            title=parsed.title,
            artist=parsed.artist,
            platforms=len(parsed.platforms),
        )
        return parsed

    async def _stale_or_raise(self, url: str, error: ResolutionError) -> ParsedAggregate:
        stale = await self._cache.get_stale(url)
        if stale is None:
            logger.warning("odesli_resolution_failed", source_url=url, error=str(error))
            raise error

        try:
            parsed = parse_aggregate(stale.payload)
        except ValueError:
            logger.warning("odesli_resolution_failed", source_url=url, error=str(error))
            raise error from None

        logger.warning(
            "odesli_stale_fallback",
            source_url=url,
            error=str(error),
            expired_at=str(stale.expires_at),
        )
        return parsed.model_copy(update={"is_stale": True})
