"""Pydantic schemas for the authenticated caller."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coursemarket.auth.permissions import UserRole


class UserResponse(BaseModel):
    """Authenticated user as seen by request handlers."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    role: UserRole
    name: str = Field(default="", description="Display name (not carried in tokens)")


class UserSummary(BaseModel):
    """Public buyer info shown in sales reports."""

    id: UUID
    name: str
    email: str
