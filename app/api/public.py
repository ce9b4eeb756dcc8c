"""
Public SmartLink endpoints. No caller identity required.

  GET  /s/{slug}                      → SmartLink page data (JSON)
  POST /api/smartlinks/{slug}/click   → outbound platform click

Analytics writes run as background tasks after the response is sent and
never fail the request.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel

from app.core.analytics import AnalyticsCounter
from app.core.exceptions import SmartLinkNotFound
from app.core.smartlinks import SmartLinkStore
from app.dependencies import get_analytics, get_smartlink_store
from app.schemas import PublicSmartLink

import structlog

logger = structlog.get_logger()
router = APIRouter(tags=["public"])


class ClickRequest(BaseModel):
    platform: str


@router.get("/s/{slug}", response_model=PublicSmartLink)
async def public_smartlink(
    slug: str,
    background_tasks: BackgroundTasks,
    store: SmartLinkStore = Depends(get_smartlink_store),
    analytics: AnalyticsCounter = Depends(get_analytics),
):
    try:
        link = await store.get_by_slug(slug)
    except SmartLinkNotFound:
        logger.info("smartlink_page_not_found", slug=slug)
        raise HTTPException(status_code=404, detail="SmartLink not found") from None

    background_tasks.add_task(analytics.record_page_view, link.id)
    return PublicSmartLink.model_validate(link.model_dump())


@router.post("/api/smartlinks/{slug}/click")
async def track_click(
    slug: str,
    req: ClickRequest,
    background_tasks: BackgroundTasks,
    store: SmartLinkStore = Depends(get_smartlink_store),
    analytics: AnalyticsCounter = Depends(get_analytics),
):
    try:
        link = await store.get_by_slug(slug)
    except SmartLinkNotFound:
        raise HTTPException(status_code=404, detail="SmartLink not found") from None

    background_tasks.add_task(analytics.record_platform_click, link.id, req.platform)
    return {"success": True}
