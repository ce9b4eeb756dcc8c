"""
Streaming platform catalog + Odesli payload parsing.

Catalog keys are Odesli's `linksByPlatform` keys. A key we don't list is
dropped from resolved output; a user-submitted platform with an unknown key
is kept and rendered generically.

Entity selection (title / artist / cover):
  1. first entity whose id starts with SPOTIFY_SONG
  2. else ITUNES_SONG
  3. else YOUTUBE_VIDEO
  4. else whichever entity comes first
  5. else an empty entity
"""

import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, model_validator


@dataclass(frozen=True)
class PlatformInfo:
    name: str
    color: str
    icon: str
    priority: int
    counter_column: str


PLATFORM_CATALOG: dict[str, PlatformInfo] = {
    "spotify":      PlatformInfo("Spotify", "#1DB954", "/assets/images/platforms/png/picto_spotify.png", 1, "clicks_spotify"),
    "appleMusic":   PlatformInfo("Apple Music", "#FA243C", "/assets/images/platforms/png/picto_apple.png", 2, "clicks_apple_music"),
    "youtubeMusic": PlatformInfo("YouTube Music", "#FF0000", "/assets/images/platforms/png/picto_youtubemusic.png", 3, "clicks_youtube_music"),
    "youtube":      PlatformInfo("YouTube", "#FF0000", "/assets/images/platforms/png/picto_youtube.png", 4, "clicks_youtube"),
    "deezer":       PlatformInfo("Deezer", "#FF6600", "/assets/images/platforms/png/picto_deezer.png", 5, "clicks_deezer"),
    "soundcloud":   PlatformInfo("SoundCloud", "#FF5500", "/assets/images/platforms/png/picto_soundcloud.png", 6, "clicks_soundcloud"),
    "tidal":        PlatformInfo("Tidal", "#000000", "/assets/images/platforms/png/picto_tidal.png", 7, "clicks_tidal"),
    "amazonMusic":  PlatformInfo("Amazon Music", "#FF9900", "/assets/images/platforms/png/picto_amazon.png", 8, "clicks_amazon_music"),
    "bandcamp":     PlatformInfo("Bandcamp", "#629AA0", "/assets/images/platforms/png/picto_bandcamp.png", 9, "clicks_bandcamp"),
}

GENERIC_COLOR = "#666666"
GENERIC_ICON = "/assets/images/platforms/png/picto_generic.png"

# Click-tracking keys arrive in whatever shape the page sent them
PLATFORM_ALIASES = {
    "spotify": "spotify",
    "apple": "appleMusic",
    "applemusic": "appleMusic",
    "youtubemusic": "youtubeMusic",
    "youtube": "youtube",
    "deezer": "deezer",
    "soundcloud": "soundcloud",
    "tidal": "tidal",
    "amazon": "amazonMusic",
    "amazonmusic": "amazonMusic",
    "bandcamp": "bandcamp",
}

ENTITY_PRIORITY = ("SPOTIFY_SONG", "ITUNES_SONG", "YOUTUBE_VIDEO")

_WHITESPACE = re.compile(r"\s+")


def normalize_platform_key(raw: str | None) -> str | None:
    """Map a tracking key ("Apple Music", "amazon", "spotify") to a catalog key, or None."""
    if not raw:
        return None
    return PLATFORM_ALIASES.get(_WHITESPACE.sub("", raw).lower())


def platform_priority(key: str | None) -> int:
    info = PLATFORM_CATALOG.get(key or "")
    return info.priority if info else len(PLATFORM_CATALOG) + 1


class Platform(BaseModel):
    """One streaming destination on a SmartLink page."""

    key: str | None = None
    name: str = ""
    color: str | None = None
    icon: str | None = None
    url: str
    native_app_uri_mobile: str | None = None
    native_app_uri_desktop: str | None = None

    @model_validator(mode="after")
    def _fill_display_metadata(self) -> "Platform":
        info = PLATFORM_CATALOG.get(self.key or "")
        if info is not None:
            self.name = self.name or info.name
            self.color = self.color or info.color
            self.icon = self.icon or info.icon
        else:
            self.name = self.name or (self.key or "")
            self.color = self.color or GENERIC_COLOR
            self.icon = self.icon or GENERIC_ICON

        if not self.name.strip():
            raise ValueError("platform needs a display name")
        if not self.url.startswith(("https://", "http://")):
            raise ValueError("platform url must start with https:// or http://")
        return self


class ParsedAggregate(BaseModel):
    title: str = ""
    artist: str = ""
    cover_url: str = ""
    platforms: list[Platform] = Field(default_factory=list)
    page_url: str = ""
    entity_id: str | None = None
    is_stale: bool = False

    # Raw Odesli document; kept for storage, never serialized to clients
    payload: dict[str, Any] = Field(default_factory=dict, exclude=True)


def select_entity(entities: dict[str, Any]) -> tuple[str | None, dict[str, Any]]:
    """Pick the entity that supplies title / artist / cover."""
    for prefix in ENTITY_PRIORITY:
        for entity_id, entity in entities.items():
            if entity_id.startswith(prefix):
                return entity_id, entity if isinstance(entity, dict) else {}

    for entity_id, entity in entities.items():
        return entity_id, entity if isinstance(entity, dict) else {}

    return None, {}


def extract_platforms(links_by_platform: dict[str, Any]) -> list[Platform]:
    """Map Odesli links to catalog platforms, dropping unknown keys, sorted by priority."""
    platforms = []
    for key, link in links_by_platform.items():
        if key not in PLATFORM_CATALOG:
            continue
        if not isinstance(link, dict) or not str(link.get("url") or "").startswith(("https://", "http://")):
            continue
        platforms.append(Platform(
            key=key,
            url=link["url"],
            native_app_uri_mobile=link.get("nativeAppUriMobile"),
            native_app_uri_desktop=link.get("nativeAppUriDesktop"),
        ))

    platforms.sort(key=lambda p: platform_priority(p.key))
    return platforms


def parse_aggregate(payload: dict[str, Any]) -> ParsedAggregate:
    """Turn a raw Odesli `/links` response into what a SmartLink needs.

    Raises ``ValueError`` when the document isn't shaped like an Odesli response.
    """
    if not isinstance(payload, dict):
        raise ValueError("Odesli payload must be a JSON object")

    # Absent (or null) maps are empty; any other non-object is malformed
    entities = payload.get("entitiesByUniqueId")
    links = payload.get("linksByPlatform")
    entities = {} if entities is None else entities
    links = {} if links is None else links
    if not isinstance(entities, dict) or not isinstance(links, dict):
        raise ValueError("Odesli payload has malformed entity or link maps")

    entity_id, entity = select_entity(entities)

    return ParsedAggregate(
        title=entity.get("title") or "",
        artist=entity.get("artistName") or "",
        cover_url=entity.get("thumbnailUrl") or "",
        platforms=extract_platforms(links),
        page_url=payload.get("pageUrl") or "",
        entity_id=entity_id,
        payload=payload,
    )
