"""
Odesli resolution API.

  POST   /api/odesli         → resolve a music URL into cross-platform links
  GET    /api/odesli/stats   → cache statistics (admin)
  DELETE /api/odesli/cache   → purge expired cache entries (admin)
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.errors import http_error
from app.core.exceptions import ResolutionError
from app.core.platforms import ParsedAggregate
from app.core.rate_limiter import FixedWindowRateLimiter
from app.core.resolution_cache import ResolutionCache
from app.core.resolver import LinkResolver
from app.dependencies import get_rate_limiter, get_resolution_cache, get_resolver
from app.middleware.auth import AuthContext, require_admin, require_user

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/odesli", tags=["odesli"])


class ResolveRequest(BaseModel):
    url: str


@router.post("", response_model=ParsedAggregate)
async def resolve_url(
    req: ResolveRequest,
    auth: AuthContext = Depends(require_user),
    resolver: LinkResolver = Depends(get_resolver),
):
    try:
        return await resolver.resolve(req.url)
    except ResolutionError as exc:
        raise http_error(exc) from exc


@router.get("/stats")
async def cache_stats(
    auth: AuthContext = Depends(require_admin),
    cache: ResolutionCache = Depends(get_resolution_cache),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
):
    return {
        "cache": await cache.stats(),
        "popular": await cache.popular(5),
        "rate_limit": {
            "limit": limiter.limit,
            "window_seconds": limiter.window_seconds,
            "reset_in_seconds": round(limiter.reset_in, 1),
        },
    }


@router.delete("/cache")
async def cleanup_cache(
    auth: AuthContext = Depends(require_admin),
    cache: ResolutionCache = Depends(get_resolution_cache),
):
    deleted = await cache.cleanup_expired()
    logger.info("odesli_cache_purged", deleted=deleted, admin_id=auth.user_id)
    return {"deleted_count": deleted}
