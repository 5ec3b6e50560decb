"""
Authentication-related API schemas.

Tokens are issued by the chat service this backend audits; this service only
verifies them, so the schemas cover the authenticated principal.
"""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserInfo(BaseModel):
    """Authenticated user with organization membership."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "email": "owner@example.com",
                "display_name": "Jane Doe",
                "role": "OWNER",
                "organization_id": "8d7f9c1e-3b2a-4c5d-9e8f-7a6b5c4d3e2f",
            }
        }
    )

    id: UUID = Field(
        ...,
        description="User UUID",
        json_schema_extra={"example": "550e8400-e29b-41d4-a716-446655440000"},
    )
    email: str = Field(
        ...,
        description="User email address",
        json_schema_extra={"example": "owner@example.com"},
    )
    display_name: str | None = Field(
        default=None,
        max_length=100,
        description="User display name",
        json_schema_extra={"example": "Jane Doe"},
    )
    role: str = Field(
        ...,
        description="Role within the organization",
        json_schema_extra={"example": "OWNER"},
    )
    organization_id: UUID = Field(
        ...,
        description="Organization the user belongs to",
        json_schema_extra={"example": "8d7f9c1e-3b2a-4c5d-9e8f-7a6b5c4d3e2f"},
    )
