from __future__ import annotations

from typing import Annotated
from uuid import UUID

import asyncpg

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.dependencies import get_db
from api.middleware.exception_handlers import AuthenticationError
from api.middleware.request_context import update_request_context
from api.services.auth_service import AuthService
from core.constants import AUDIT_ROLE_OWNER
from models.error_models import ErrorCode
from models.schemas.auth import UserInfo

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[asyncpg.Pool, Depends(get_db)],
) -> UserInfo:
    """Authenticate incoming REST requests."""
    if credentials is None:
        raise AuthenticationError(
            message="Authentication required",
            code=ErrorCode.AUTH_REQUIRED,
        )

    auth = AuthService(db)
    try:
        payload = auth.decode_access_token(credentials.credentials)
        user = await auth.get_user_by_id(UUID(payload["sub"]))
    except ValueError as exc:
        raise AuthenticationError(
            message="Invalid token",
            code=ErrorCode.AUTH_INVALID_TOKEN,
        ) from exc

    if not user:
        raise AuthenticationError(
            message="User not found",
            code=ErrorCode.AUTH_USER_NOT_FOUND,
        )

    user_info = UserInfo(**auth.user_payload(user))
    update_request_context(user_id=str(user_info.id), organization_id=str(user_info.organization_id))
    return user_info


async def require_owner(user: Annotated[UserInfo, Depends(get_current_user)]) -> UserInfo:
    """Allow only organization owners (audit endpoints)."""
    if user.role != AUDIT_ROLE_OWNER:
        raise AuthenticationError(
            message="Owner role required",
            code=ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS,
        )
    return user


CurrentUser = Annotated[UserInfo, Depends(get_current_user)]
Owner = Annotated[UserInfo, Depends(require_owner)]
