"""
User Models.

``User`` mirrors a row of the ``users`` table including the credential
hash; ``UserPublic`` is the outward representation and never carries it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from travelgate.models.enums import UserRole


class User(BaseModel):
    """Represents a stored user account."""

    id: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool = True
    password_hash: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_public(self) -> "UserPublic":
        return UserPublic.model_validate(self)


class UserPublic(BaseModel):
    """User as exposed to callers; no credential material."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserCreate(BaseModel):
    """Validated payload for a new account (password already hashed)."""

    email: str
    password_hash: str
    first_name: str
    last_name: str
    role: UserRole = UserRole.USER


class UserPatch(BaseModel):
    """Optional-field patch for an account.

    Only fields explicitly provided by the caller are applied; use
    ``model_dump(exclude_unset=True)`` to obtain them.  Unknown keys are
    ignored.
    """

    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None


class UserStats(BaseModel):
    """Account counts for the admin dashboard."""

    total: int = 0
    active: int = 0
    inactive: int = 0
    by_role: dict[str, int] = Field(default_factory=dict)
