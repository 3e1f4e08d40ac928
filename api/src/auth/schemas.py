"""Authentication schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from src.auth.permissions import UserRole


class AuthenticatedUser(BaseModel):
    """User identity carried by a validated access token."""

    id: UUID = Field(..., description="User ID (token subject)")
    role: UserRole = Field(..., description="User role")
    email: str | None = Field(default=None, description="User email")
