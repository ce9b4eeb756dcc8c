"""Response hardening for every route."""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Authenticated API responses carry per-user data
_PRIVATE_PREFIXES = ("/api/",)
# Public pages are counted on every view, so no shared caching either
_PUBLIC_PAGE_PREFIX = "/s/"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        for header in ("server", "X-Powered-By"):
            if header in response.headers:
                del response.headers[header]

        path = request.url.path
        if path.startswith(_PRIVATE_PREFIXES):
            response.headers["Cache-Control"] = "no-store, private"
            response.headers["Pragma"] = "no-cache"
        elif path.startswith(_PUBLIC_PAGE_PREFIX):
            response.headers["Cache-Control"] = "no-cache"

        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        if not path.startswith(_PUBLIC_PAGE_PREFIX):
            response.headers["X-Frame-Options"] = "DENY"
            response.headers.setdefault("Content-Security-Policy", "frame-ancestors 'none'")

        return response
