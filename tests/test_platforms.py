"""Tests for the platform catalog and Odesli payload parsing."""

import pytest
from pydantic import ValidationError

from app.core.platforms import (
    GENERIC_COLOR,
    Platform,
    extract_platforms,
    normalize_platform_key,
    parse_aggregate,
    select_entity,
)


class TestEntitySelection:
    def test_spotify_wins_over_apple(self, odesli_payload):
        parsed = parse_aggregate(odesli_payload)
        assert parsed.entity_id == "SPOTIFY_SONG::abc123"
        assert parsed.title == "Blinding Lights"
        assert parsed.artist == "The Weeknd"
        assert parsed.cover_url == "https://i.scdn.co/image/cover.jpg"

    def test_apple_before_youtube(self):
        entity_id, entity = select_entity({
            "YOUTUBE_VIDEO::y": {"title": "yt"},
            "ITUNES_SONG::i": {"title": "itunes"},
        })
        assert entity_id == "ITUNES_SONG::i"
        assert entity["title"] == "itunes"

    def test_falls_back_to_first_entity(self):
        entity_id, entity = select_entity({"DEEZER_SONG::d": {"title": "dz"}, "TIDAL_SONG::t": {}})
        assert entity_id == "DEEZER_SONG::d"

    def test_no_entities(self):
        parsed = parse_aggregate({"linksByPlatform": {}})
        assert parsed.entity_id is None
        assert parsed.title == ""
        assert parsed.platforms == []


class TestPlatformExtraction:
    def test_sorted_by_priority(self, odesli_payload):
        parsed = parse_aggregate(odesli_payload)
        assert [p.key for p in parsed.platforms] == ["spotify", "deezer", "bandcamp"]

    def test_unknown_platform_dropped(self, odesli_payload):
        parsed = parse_aggregate(odesli_payload)
        assert "napster" not in {p.key for p in parsed.platforms}

    def test_catalog_metadata_filled(self, odesli_payload):
        spotify = parse_aggregate(odesli_payload).platforms[0]
        assert spotify.name == "Spotify"
        assert spotify.color == "#1DB954"
        assert spotify.native_app_uri_desktop == "spotify:track:abc123"

    def test_non_http_links_skipped(self):
        platforms = extract_platforms({
            "spotify": {"url": "spotify:track:1"},
            "deezer": "not-a-dict",
            "tidal": {"url": "https://tidal.com/track/1"},
        })
        assert [p.key for p in platforms] == ["tidal"]

    def test_raw_payload_kept_but_not_serialized(self, odesli_payload):
        parsed = parse_aggregate(odesli_payload)
        assert parsed.payload == odesli_payload
        assert "payload" not in parsed.model_dump()


class TestMalformedPayload:
    @pytest.mark.parametrize("payload", [
        [],
        {"entitiesByUniqueId": [], "linksByPlatform": {}},
        {"entitiesByUniqueId": {}, "linksByPlatform": "x"},
        {"entitiesByUniqueId": {}, "linksByPlatform": []},
        {"entitiesByUniqueId": "", "linksByPlatform": {}},
    ])
    def test_rejected(self, payload):
        with pytest.raises(ValueError):
            parse_aggregate(payload)

    def test_absent_maps_are_empty(self):
        parsed = parse_aggregate({"entitiesByUniqueId": None})
        assert parsed.platforms == []
        assert parsed.entity_id is None


class TestPlatformModel:
    def test_unknown_key_rendered_generically(self):
        p = Platform(key="napster", url="https://play.napster.com/1")
        assert p.name == "napster"
        assert p.color == GENERIC_COLOR

    def test_explicit_name_kept(self):
        p = Platform(key="spotify", name="Listen on Spotify", url="https://open.spotify.com/t/1")
        assert p.name == "Listen on Spotify"
        assert p.icon.endswith("picto_spotify.png")

    def test_requires_http_url(self):
        with pytest.raises(ValidationError):
            Platform(key="spotify", url="javascript:alert(1)")

    def test_requires_some_name(self):
        with pytest.raises(ValidationError):
            Platform(url="https://example.com/x")


class TestNormalizeKey:
    @pytest.mark.parametrize("raw,expected", [
        ("spotify", "spotify"),
        ("Apple Music", "appleMusic"),
        ("apple", "appleMusic"),
        ("AMAZON", "amazonMusic"),
        ("amazonMusic", "amazonMusic"),
        ("youtubeMusic", "youtubeMusic"),
        ("YouTube", "youtube"),
        ("napster", None),
        ("", None),
        (None, None),
    ])
    def test_aliases(self, raw, expected):
        assert normalize_platform_key(raw) == expected
