"""Map core exceptions to HTTP responses for the routers."""

from fastapi import HTTPException

from app.core.exceptions import (
    InvalidSmartLinkData,
    InvalidSourceUrl,
    OwnerNotFound,
    QuotaExceeded,
    RateLimited,
    ResolutionTimeout,
    SlugSpaceExhausted,
    SmartLinkError,
    SmartLinkNotFound,
    UpstreamError,
    UpstreamNotFound,
    UpstreamRateLimited,
)

import structlog

logger = structlog.get_logger()


def http_error(exc: SmartLinkError) -> HTTPException:
    if isinstance(exc, (InvalidSourceUrl, InvalidSmartLinkData)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, QuotaExceeded):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, (SmartLinkNotFound, UpstreamNotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, OwnerNotFound):
        return HTTPException(status_code=404, detail="User not found")
    if isinstance(exc, RateLimited):
        return HTTPException(
            status_code=429,
            detail=str(exc),
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )
    if isinstance(exc, UpstreamRateLimited):
        headers = {"Retry-After": str(int(exc.retry_after))} if exc.retry_after else None
        return HTTPException(status_code=429, detail=str(exc), headers=headers)
    if isinstance(exc, ResolutionTimeout):
        return HTTPException(status_code=408, detail=str(exc))
    if isinstance(exc, UpstreamError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, SlugSpaceExhausted):
        logger.error("slug_space_exhausted_request", attempts=exc.attempts)
        return HTTPException(status_code=503, detail="Could not allocate a SmartLink address, try again later")

    logger.error("unmapped_smartlink_error", error=str(exc), kind=type(exc).__name__)
    return HTTPException(status_code=500, detail="Internal error")
