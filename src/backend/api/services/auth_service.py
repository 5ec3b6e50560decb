from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import asyncpg

from jose import JWTError, jwt

from core.constants import Settings, get_settings


class AuthService:
    """Validates JWT access tokens issued by the chat service."""

    def __init__(self, pool: asyncpg.Pool, settings: Settings | None = None):
        self.pool = pool
        self.settings = settings or get_settings()

    def decode_access_token(self, token: str) -> dict[str, Any]:
        """Decode and validate an access token."""
        return self._decode_token(token, "access")

    def issue_access_token(self, user: asyncpg.Record | dict[str, Any], expires_in: timedelta | None = None) -> str:
        """Issue an access token for a user (operator tooling and tests)."""
        lifetime = expires_in or timedelta(minutes=self.settings.access_token_expires_minutes)
        expires_at = datetime.now(timezone.utc) + lifetime
        payload = {
            "sub": str(user["id"]),
            "email": user["email"],
            "type": "access",
            "exp": expires_at,
        }
        token: str = jwt.encode(payload, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)
        return token

    async def get_user_by_id(self, user_id: UUID) -> asyncpg.Record | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(
                """
                SELECT id, email, display_name, role, organization_id
                FROM users
                WHERE id = $1
                """,
                user_id,
            )

    def _decode_token(self, token: str, token_type: str) -> dict[str, Any]:
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self.settings.jwt_secret,
                algorithms=[self.settings.jwt_algorithm],
            )
        except JWTError as exc:
            raise ValueError("Invalid token") from exc

        if payload.get("type") != token_type:
            raise ValueError("Invalid token type")
        if "sub" not in payload:
            raise ValueError("Token has no subject")
        return payload

    def user_payload(self, user: asyncpg.Record | dict[str, Any]) -> dict[str, Any]:
        return {
            "id": str(user["id"]),
            "email": user["email"],
            "display_name": user.get("display_name"),
            "role": user["role"],
            "organization_id": str(user["organization_id"]),
        }
