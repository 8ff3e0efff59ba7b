"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_caller          → decode JWT, return who is calling
  require_self_or_right(...)  → the caller asks about itself, holds an
                                admin right, or is a service
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import decode_token
from app.database import get_db
from app.middleware.exceptions import PermissionDeniedError, ResourceNotFoundError
from app.services.access import get_user
from app.services.users import check_admin_right

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/oauth/token")


@dataclass(frozen=True)
class Caller:
    subject: str
    is_service: bool = False


# ── Core caller dependency ──────────────────────────────────

async def get_current_caller(token: str = Depends(oauth2_scheme)) -> Caller:
    """Decode the JWT into a Caller.

    User tokens carry the user id in `sub`; service tokens carry the
    client id and skip per-user checks.
    """
    payload = decode_token(token)
    subject: str | None = payload.get("sub")
    token_type = payload.get("type")
    if not subject or token_type not in ("access", "service"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Caller(subject=subject, is_service=token_type == "service")


# ── Right-based access control ──────────────────────────────

def require_self_or_right(right_name: str):
    """Dependency factory for routes under /users/{user_id}.

    Usage:
        @router.get("/{user_id}/permissionStrings")
        async def strings(caller: Caller = Depends(require_self_or_right(USERS_MANAGE))):
            ...
    """
    async def _check(
        user_id: str,
        caller: Caller = Depends(get_current_caller),
        db: AsyncSession = Depends(get_db),
    ) -> Caller:
        if caller.is_service or caller.subject == user_id:
            return caller

        try:
            user = await get_user(db, caller.subject)
        except ResourceNotFoundError:
            user = None
        if user is None or not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found or inactive",
            )

        if not await check_admin_right(db, caller.subject, right_name):
            raise PermissionDeniedError(f"Missing right: {right_name}")
        return caller

    return _check
