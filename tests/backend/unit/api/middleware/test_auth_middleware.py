from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from fastapi.security import HTTPAuthorizationCredentials

from api.middleware.auth import get_current_user, require_owner
from api.middleware.exception_handlers import AuthenticationError
from api.middleware.request_context import (
    RequestContext,
    clear_request_context,
    get_request_context,
    set_request_context,
)
from models.error_models import ErrorCode
from models.schemas.auth import UserInfo

USER_ID = "550e8400-e29b-41d4-a716-446655440000"
ORG_ID = "8d7f9c1e-3b2a-4c5d-9e8f-7a6b5c4d3e2f"


@pytest.fixture
def mock_db_pool() -> MagicMock:
    return MagicMock()


@pytest.fixture
def mock_auth_service() -> Generator[MagicMock, None, None]:
    with patch("api.middleware.auth.AuthService") as MockService:
        instance = MockService.return_value
        instance.user_payload.return_value = {
            "id": USER_ID,
            "email": "owner@test.com",
            "display_name": "Test Owner",
            "role": "OWNER",
            "organization_id": ORG_ID,
        }
        yield instance


@pytest.mark.asyncio
async def test_get_current_user_valid_token(mock_db_pool: MagicMock, mock_auth_service: MagicMock) -> None:
    creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="valid_token")
    mock_auth_service.decode_access_token.return_value = {"sub": USER_ID}
    mock_auth_service.get_user_by_id = AsyncMock(return_value={"id": USER_ID, "email": "owner@test.com"})

    user = await get_current_user(creds, mock_db_pool)

    assert user.email == "owner@test.com"
    assert str(user.organization_id) == ORG_ID
    mock_auth_service.decode_access_token.assert_called_with("valid_token")


@pytest.mark.asyncio
async def test_get_current_user_binds_request_context(mock_db_pool: MagicMock, mock_auth_service: MagicMock) -> None:
    creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="valid_token")
    mock_auth_service.decode_access_token.return_value = {"sub": USER_ID}
    mock_auth_service.get_user_by_id = AsyncMock(return_value={"id": USER_ID})

    set_request_context(RequestContext(request_id="req_1", method="POST", path="/"))
    try:
        await get_current_user(creds, mock_db_pool)
        context = get_request_context()
    finally:
        clear_request_context()

    assert context is not None
    assert context.user_id == USER_ID
    assert context.organization_id == ORG_ID


@pytest.mark.asyncio
async def test_get_current_user_missing_credentials(mock_db_pool: MagicMock) -> None:
    with pytest.raises(AuthenticationError) as exc:
        await get_current_user(None, mock_db_pool)

    assert exc.value.code == ErrorCode.AUTH_REQUIRED


@pytest.mark.asyncio
async def test_get_current_user_invalid_token(mock_db_pool: MagicMock, mock_auth_service: MagicMock) -> None:
    creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="bad_token")
    mock_auth_service.decode_access_token.side_effect = ValueError("Bad token")

    with pytest.raises(AuthenticationError) as exc:
        await get_current_user(creds, mock_db_pool)

    assert exc.value.code == ErrorCode.AUTH_INVALID_TOKEN


@pytest.mark.asyncio
async def test_get_current_user_malformed_subject(mock_db_pool: MagicMock, mock_auth_service: MagicMock) -> None:
    creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="valid_token")
    mock_auth_service.decode_access_token.return_value = {"sub": "not-a-uuid"}

    with pytest.raises(AuthenticationError) as exc:
        await get_current_user(creds, mock_db_pool)

    assert exc.value.code == ErrorCode.AUTH_INVALID_TOKEN


@pytest.mark.asyncio
async def test_get_current_user_user_not_found(mock_db_pool: MagicMock, mock_auth_service: MagicMock) -> None:
    creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="valid_token")
    mock_auth_service.decode_access_token.return_value = {"sub": USER_ID}
    mock_auth_service.get_user_by_id = AsyncMock(return_value=None)

    with pytest.raises(AuthenticationError) as exc:
        await get_current_user(creds, mock_db_pool)

    assert exc.value.code == ErrorCode.AUTH_USER_NOT_FOUND


@pytest.mark.asyncio
async def test_require_owner_allows_owner() -> None:
    user = UserInfo(id=uuid4(), email="o@test.com", role="OWNER", organization_id=uuid4())

    assert await require_owner(user) is user


@pytest.mark.asyncio
@pytest.mark.parametrize("role", ["MEMBER", "ADMIN", "owner"])
async def test_require_owner_rejects_other_roles(role: str) -> None:
    user = UserInfo(id=uuid4(), email="m@test.com", role=role, organization_id=uuid4())

    with pytest.raises(AuthenticationError) as exc:
        await require_owner(user)

    assert exc.value.code == ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS
