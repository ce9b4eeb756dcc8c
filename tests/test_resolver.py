"""Tests for the Odesli client and the link resolver (network mocked with respx)."""

import httpx
import pytest
import respx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.exceptions import (
    InvalidSourceUrl,
    RateLimited,
    ResolutionTimeout,
    UpstreamError,
    UpstreamNotFound,
    UpstreamRateLimited,
)
from app.core.odesli_client import USER_AGENT, OdesliClient
from app.core.rate_limiter import FixedWindowRateLimiter
from app.core.resolution_cache import ExtractedMeta, ResolutionCache
from app.core.resolver import LinkResolver, normalize_source_url

API = "https://api.song.link/v1-alpha.1"
SOURCE = "https://open.spotify.com/track/abc123"
META = ExtractedMeta(entity_id="SPOTIFY_SONG::abc123", title="Blinding Lights", artist="The Weeknd", platforms_count=4)


def _links_route():
    return respx.get(host="api.song.link", path="/v1-alpha.1/links")


@pytest.fixture
def client() -> OdesliClient:
    return OdesliClient(API, user_country="FR", timeout_seconds=2.0)


@pytest.fixture
def limiter() -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(limit=10, window_seconds=60)


@pytest.fixture
def resolver(client, cache, limiter) -> LinkResolver:
    return LinkResolver(client, cache, limiter)


# ---------------------------------------------------------------------------
# URL validation
# ---------------------------------------------------------------------------

class TestNormalizeSourceUrl:
    def test_lowercases_host_and_drops_fragment(self):
        assert normalize_source_url(" HTTPS://Open.Spotify.com/track/AbC#top ") == "https://open.spotify.com/track/AbC"

    def test_keeps_query(self):
        url = "https://open.spotify.com/track/abc?si=xyz"
        assert normalize_source_url(url) == url

    @pytest.mark.parametrize("url", [
        "https://music.apple.com/fr/album/x/1?i=2",
        "https://youtu.be/dQw4w9WgXcQ",
        "https://www.deezer.com/track/42",
        "https://music.amazon.fr/albums/B0",
        "https://artist.bandcamp.com/track/x",
        "http://soundcloud.com/a/b",
    ])
    def test_supported_services(self, url):
        assert normalize_source_url(url)

    @pytest.mark.parametrize("url", [
        "",
        "not a url",
        "ftp://open.spotify.com/track/1",
        "https://example.com/track/1",
        "https://evilspotify.com/track/1",
        "javascript:alert(1)",
    ])
    def test_rejected(self, url):
        with pytest.raises(InvalidSourceUrl) as exc_info:
            normalize_source_url(url)
        assert "spotify.com" in str(exc_info.value)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class TestOdesliClient:
    @respx.mock
    async def test_request_shape(self, client, odesli_payload):
        route = _links_route().mock(return_value=httpx.Response(200, json=odesli_payload))

        data = await client.fetch_links(SOURCE)

        assert data == odesli_payload
        request = route.calls.last.request
        assert request.url.params["url"] == SOURCE
        assert request.url.params["userCountry"] == "FR"
        assert request.url.params["songIfSingle"] == "true"
        assert request.headers["User-Agent"] == USER_AGENT
        assert request.headers["Accept"] == "application/json"

    @pytest.mark.parametrize("status,error", [
        (404, UpstreamNotFound),
        (429, UpstreamRateLimited),
        (500, UpstreamError),
        (503, UpstreamError),
    ])
    @respx.mock
    async def test_status_mapping(self, client, status, error):
        _links_route().mock(return_value=httpx.Response(status, text="nope"))
        with pytest.raises(error):
            await client.fetch_links(SOURCE)

    @respx.mock
    async def test_retry_after_captured(self, client):
        _links_route().mock(return_value=httpx.Response(429, headers={"Retry-After": "12"}))
        with pytest.raises(UpstreamRateLimited) as exc_info:
            await client.fetch_links(SOURCE)
        assert exc_info.value.retry_after == 12.0

    @respx.mock
    async def test_server_error_keeps_status(self, client):
        _links_route().mock(return_value=httpx.Response(502))
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch_links(SOURCE)
        assert exc_info.value.status_code == 502

    @respx.mock
    async def test_timeout(self, client):
        _links_route().mock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(ResolutionTimeout):
            await client.fetch_links(SOURCE)

    @respx.mock
    async def test_transport_error(self, client):
        _links_route().mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch_links(SOURCE)
        assert exc_info.value.status_code is None

    @respx.mock
    async def test_non_json_body(self, client):
        _links_route().mock(return_value=httpx.Response(200, text="<html>"))
        with pytest.raises(UpstreamError):
            await client.fetch_links(SOURCE)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class TestResolve:
    @respx.mock
    async def test_fresh_resolution_is_cached(self, resolver, cache, odesli_payload):
        _links_route().mock(return_value=httpx.Response(200, json=odesli_payload))

        parsed = await resolver.resolve(SOURCE)

        assert parsed.title == "Blinding Lights"
        assert [p.key for p in parsed.platforms] == ["spotify", "deezer", "bandcamp"]
        assert parsed.is_stale is False
        cached = await cache.get_stale(SOURCE)
        assert cached.entity_id == "SPOTIFY_SONG::abc123"
        assert cached.platforms_count == 4

    @respx.mock
    async def test_cache_hit_skips_network_and_limiter(self, client, cache, odesli_payload):
        route = _links_route().mock(return_value=httpx.Response(200, json=odesli_payload))
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=60)
        resolver = LinkResolver(client, cache, limiter)

        await resolver.resolve(SOURCE)
        for _ in range(5):
            parsed = await resolver.resolve(SOURCE)

        assert route.call_count == 1
        assert parsed.artist == "The Weeknd"

    @respx.mock
    async def test_cache_key_is_normalized(self, resolver, odesli_payload):
        route = _links_route().mock(return_value=httpx.Response(200, json=odesli_payload))
        await resolver.resolve(SOURCE)
        await resolver.resolve("HTTPS://OPEN.SPOTIFY.COM/track/abc123#share")
        assert route.call_count == 1

    async def test_invalid_url_never_hits_network(self, resolver):
        with respx.mock(assert_all_called=False) as mock:
            route = mock.get(host="api.song.link", path="/v1-alpha.1/links")
            with pytest.raises(InvalidSourceUrl):
                await resolver.resolve("https://example.com/song")
            assert not route.called

    @respx.mock(assert_all_called=False)
    async def test_local_rate_limit(self, client, cache):
        resolver = LinkResolver(client, cache, FixedWindowRateLimiter(limit=0, window_seconds=60))
        route = _links_route().mock(return_value=httpx.Response(200, json={}))

        with pytest.raises(RateLimited) as exc_info:
            await resolver.resolve(SOURCE)
        assert exc_info.value.retry_after_seconds > 0
        assert not route.called

    @respx.mock
    async def test_local_rate_limit_does_not_serve_stale(self, client, cache, clock, odesli_payload):
        await cache.put(SOURCE, odesli_payload, META)
        clock.advance(days=2)
        resolver = LinkResolver(client, cache, FixedWindowRateLimiter(limit=0, window_seconds=60))

        with pytest.raises(RateLimited):
            await resolver.resolve(SOURCE)

    @respx.mock
    async def test_unparseable_payload_is_upstream_error(self, resolver):
        _links_route().mock(return_value=httpx.Response(200, json={"entitiesByUniqueId": [], "linksByPlatform": {}}))
        with pytest.raises(UpstreamError):
            await resolver.resolve(SOURCE)


class TestStaleFallback:
    @pytest.mark.parametrize("failure", [
        httpx.Response(404),
        httpx.Response(429),
        httpx.Response(500),
        httpx.ReadTimeout("slow"),
        httpx.ConnectError("refused"),
    ])
    @respx.mock
    async def test_expired_entry_served_on_upstream_failure(self, resolver, cache, clock, odesli_payload, failure):
        await cache.put(SOURCE, odesli_payload, META)
        clock.advance(hours=48)
        if isinstance(failure, httpx.Response):
            _links_route().mock(return_value=failure)
        else:
            _links_route().mock(side_effect=failure)

        parsed = await resolver.resolve(SOURCE)

        assert parsed.is_stale is True
        assert parsed.title == "Blinding Lights"
        assert [p.key for p in parsed.platforms] == ["spotify", "deezer", "bandcamp"]

    @pytest.mark.parametrize("failure,error", [
        (httpx.Response(404), UpstreamNotFound),
        (httpx.Response(429), UpstreamRateLimited),
        (httpx.Response(500), UpstreamError),
        (httpx.ReadTimeout("slow"), ResolutionTimeout),
    ])
    @respx.mock
    async def test_no_cache_propagates(self, resolver, failure, error):
        if isinstance(failure, httpx.Response):
            _links_route().mock(return_value=failure)
        else:
            _links_route().mock(side_effect=failure)

        with pytest.raises(error):
            await resolver.resolve(SOURCE)


class TestHitCountScenario:
    @respx.mock
    async def test_first_resolve_then_hit_then_stale(self, resolver, cache, clock, odesli_payload):
        route = _links_route().mock(return_value=httpx.Response(200, json=odesli_payload))

        # First resolution: stored for 24h with one hit
        first = await resolver.resolve(SOURCE)
        entry = await cache.get_stale(SOURCE)
        assert entry.hit_count == 1
        assert entry.expires_at - entry.created_at == cache.default_ttl

        # One hour later: same row, served from cache
        clock.advance(hours=1)
        second = await resolver.resolve(SOURCE)
        assert route.call_count == 1
        assert (await cache.get_stale(SOURCE)).hit_count == 2
        assert second.model_dump() == first.model_dump()

        # Past the TTL with Odesli unreachable: same fields, flagged stale, no hit counted
        clock.advance(hours=24)
        route.mock(side_effect=httpx.ConnectError("unreachable"))
        third = await resolver.resolve(SOURCE)
        assert third.is_stale is True
        assert third.title == first.title
        assert third.platforms == first.platforms
        assert (await cache.get_stale(SOURCE)).hit_count == 2


class TestCacheStorageDown:
    @pytest.fixture
    async def broken_cache(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        yield ResolutionCache(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
        await engine.dispose()

    @respx.mock
    async def test_resolves_uncached(self, client, limiter, broken_cache, odesli_payload):
        route = _links_route().mock(return_value=httpx.Response(200, json=odesli_payload))
        resolver = LinkResolver(client, broken_cache, limiter)

        first = await resolver.resolve(SOURCE)
        second = await resolver.resolve(SOURCE)

        assert first.title == second.title == "Blinding Lights"
        assert first.is_stale is False
        assert route.call_count == 2

    @respx.mock
    async def test_upstream_failure_has_no_stale_to_fall_back_on(self, client, limiter, broken_cache):
        _links_route().mock(return_value=httpx.Response(500))
        resolver = LinkResolver(client, broken_cache, limiter)

        with pytest.raises(UpstreamError):
            await resolver.resolve(SOURCE)
