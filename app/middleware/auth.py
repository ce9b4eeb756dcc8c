"""
Caller identity for authenticated routes.

Login, sessions and tokens live in the gateway in front of this service.
The gateway forwards the verified identity as headers:
  - X-User-Id    → integer user id (required)
  - X-User-Role  → "admin" for operators, anything else for artists/labels

Scoping rule used everywhere downstream:
  - admin  → owner_scope is None (unscoped, sees every SmartLink)
  - other  → owner_scope is the caller's own user id
"""

from dataclasses import dataclass

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

import structlog

logger = structlog.get_logger()

user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)
user_role_header = APIKeyHeader(name="X-User-Role", auto_error=False)


@dataclass
class AuthContext:
    """Resolved caller for the current request."""
    user_id: int
    is_admin: bool

    @property
    def owner_scope(self) -> int | None:
        return None if self.is_admin else self.user_id


async def require_user(
    user_id: str | None = Security(user_id_header),
    role: str | None = Security(user_role_header),
) -> AuthContext:
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing caller identity.")
    try:
        uid = int(user_id)
    except ValueError:
        logger.warning("auth_bad_user_header", value=user_id[:32])
        raise HTTPException(status_code=401, detail="Invalid caller identity.") from None
    return AuthContext(user_id=uid, is_admin=(role or "").lower() == "admin")


async def require_admin(
    user_id: str | None = Security(user_id_header),
    role: str | None = Security(user_role_header),
) -> AuthContext:
    auth = await require_user(user_id, role)
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="This endpoint is restricted to administrators.")
    return auth
