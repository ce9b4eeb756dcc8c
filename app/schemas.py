"""
Request/response models shared by the core and the routers.

The JSON columns on `smartlinks` (platforms, customization, tracking_pixels)
are read and written through these models, never as bare dicts.
"""

import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.core.platforms import Platform


class Customization(BaseModel):
    primary_color: str = "#1976d2"
    background_color: str = "#ffffff"
    text_color: str = "#333333"


class TrackingPixels(BaseModel):
    """Provider IDs only. Script generation happens in the page layer."""
    google_analytics: str | None = None
    google_tag_manager: str | None = None
    google_ads: str | None = None
    meta_pixel: str | None = None
    tiktok_pixel: str | None = None
    custom_scripts: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# SmartLink input
# ---------------------------------------------------------------------------

class SmartLinkCreate(BaseModel):
    source_url: str | None = None     # resolved via Odesli; explicit fields below win
    title: str | None = None
    artist: str | None = None
    description: str | None = None
    cover_url: str | None = None
    preview_audio_url: str | None = None
    platforms: list[Platform] | None = None
    template: str | None = None
    customization: Customization | None = None
    tracking_pixels: TrackingPixels | None = None


class SmartLinkUpdate(BaseModel):
    """Partial update. Unset or null fields keep their stored value."""
    source_url: str | None = None
    title: str | None = None
    artist: str | None = None
    description: str | None = None
    cover_url: str | None = None
    preview_audio_url: str | None = None
    platforms: list[Platform] | None = None
    template: str | None = None
    customization: Customization | None = None
    tracking_pixels: TrackingPixels | None = None
    is_active: bool | None = None

    # Only with refetch: swap the platform list for the freshly resolved one
    replace_platforms: bool = False


# ---------------------------------------------------------------------------
# SmartLink output
# ---------------------------------------------------------------------------

class SmartLinkRead(BaseModel):
    id: int
    user_id: int
    slug: str
    title: str
    artist: str | None = None
    description: str | None = None
    cover_url: str | None = None
    preview_audio_url: str | None = None
    platforms: list[Platform] = Field(default_factory=list)
    template: str = "default"
    customization: Customization = Field(default_factory=Customization)
    tracking_pixels: TrackingPixels = Field(default_factory=TrackingPixels)
    is_active: bool = True
    click_count: int = 0
    source_url: str | None = None
    odesli_data: dict[str, Any] | None = Field(default=None, exclude=True)
    odesli_fetched_at: datetime.datetime | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None
    owner_name: str | None = None


class PublicSmartLink(BaseModel):
    """What the unauthenticated page needs, without owner or provenance fields."""
    id: int
    slug: str
    title: str
    artist: str | None = None
    description: str | None = None
    cover_url: str | None = None
    preview_audio_url: str | None = None
    platforms: list[Platform] = Field(default_factory=list)
    template: str = "default"
    customization: Customization = Field(default_factory=Customization)
    tracking_pixels: TrackingPixels = Field(default_factory=TrackingPixels)


class SmartLinkSummary(BaseModel):
    id: int
    slug: str
    title: str
    artist: str | None = None
    cover_url: str | None = None
    is_active: bool = True
    click_count: int = 0
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None
    # Admin listing only
    owner_name: str | None = None
    owner_email: str | None = None


class SmartLinkPage(BaseModel):
    items: list[SmartLinkSummary]
    total: int
    has_more: bool


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

class PlatformClicks(BaseModel):
    platform: str
    clicks: int


class DailyClicks(BaseModel):
    date: datetime.date
    clicks: int


class AnalyticsSummary(BaseModel):
    total_page_views: int = 0
    total_clicks: int = 0
    per_platform: list[PlatformClicks] = Field(default_factory=list)
    top_platform: str | None = None
    # Lifetime clicks spread evenly over the window, not real per-day history
    daily_series: list[DailyClicks] = Field(default_factory=list)
    window_days: int = 30
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None
