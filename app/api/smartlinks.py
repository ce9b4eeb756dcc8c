"""
SmartLink management API.

Callers are identified by the gateway headers (see middleware/auth.py).
Artists and labels only ever see their own SmartLinks; admins see all.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from app.api.errors import http_error
from app.config import get_settings
from app.core.analytics import AnalyticsCounter
from app.core.exceptions import SmartLinkError
from app.core.smartlinks import SmartLinkStore
from app.dependencies import get_analytics, get_smartlink_store
from app.middleware.auth import AuthContext, require_user
from app.schemas import (
    AnalyticsSummary,
    SmartLinkCreate,
    SmartLinkPage,
    SmartLinkRead,
    SmartLinkUpdate,
)

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/smartlinks", tags=["smartlinks"])


class CreatedSmartLink(BaseModel):
    smartlink: SmartLinkRead
    public_url: str


def _public_url(slug: str) -> str:
    return f"{get_settings().public_base_url.rstrip('/')}/s/{slug}"


@router.post("", response_model=CreatedSmartLink, status_code=201)
async def create_smartlink(
    req: SmartLinkCreate,
    auth: AuthContext = Depends(require_user),
    store: SmartLinkStore = Depends(get_smartlink_store),
):
    # Links are always created for the caller, admins included
    try:
        link = await store.create(auth.user_id, req)
    except SmartLinkError as exc:
        raise http_error(exc) from exc
    return CreatedSmartLink(smartlink=link, public_url=_public_url(link.slug))


@router.get("", response_model=SmartLinkPage)
async def list_smartlinks(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    search: str = Query("", max_length=200),
    auth: AuthContext = Depends(require_user),
    store: SmartLinkStore = Depends(get_smartlink_store),
):
    return await store.list_links(auth.owner_scope, limit=limit, offset=offset, search=search)


@router.get("/{smartlink_id}", response_model=SmartLinkRead)
async def get_smartlink(
    smartlink_id: int,
    auth: AuthContext = Depends(require_user),
    store: SmartLinkStore = Depends(get_smartlink_store),
):
    try:
        return await store.get_by_id(smartlink_id, auth.owner_scope)
    except SmartLinkError as exc:
        raise http_error(exc) from exc


@router.put("/{smartlink_id}", response_model=SmartLinkRead)
async def update_smartlink(
    smartlink_id: int,
    req: SmartLinkUpdate,
    refresh: bool = Query(False, description="Re-resolve the source URL through Odesli"),
    auth: AuthContext = Depends(require_user),
    store: SmartLinkStore = Depends(get_smartlink_store),
):
    try:
        return await store.update(smartlink_id, auth.owner_scope, req, refetch=refresh)
    except SmartLinkError as exc:
        raise http_error(exc) from exc


@router.delete("/{smartlink_id}")
async def delete_smartlink(
    smartlink_id: int,
    auth: AuthContext = Depends(require_user),
    store: SmartLinkStore = Depends(get_smartlink_store),
):
    deleted = await store.delete(smartlink_id, auth.owner_scope)
    return {"deleted": deleted}


@router.get("/{smartlink_id}/analytics", response_model=AnalyticsSummary)
async def smartlink_analytics(
    smartlink_id: int,
    days: int | None = Query(None, ge=1, le=365),
    auth: AuthContext = Depends(require_user),
    analytics: AnalyticsCounter = Depends(get_analytics),
):
    window = days or get_settings().analytics_default_days
    try:
        return await analytics.read(smartlink_id, auth.owner_scope, window)
    except SmartLinkError as exc:
        raise http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
