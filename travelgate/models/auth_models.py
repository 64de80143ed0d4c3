"""
Authentication Models.

Pydantic models for the auth request/response contracts between
``AuthService``, ``TokenService`` and callers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from travelgate.models.enums import UserRole
from travelgate.models.user import UserPublic


class ValidationResult(BaseModel):
    """Result of a single field validation check.

    Attributes
    ----------
    is_valid:
        ``True`` when the value passes the validation rule.
    error_message:
        Human-readable description of the failure, or ``None`` on success.
    """

    is_valid: bool
    error_message: Optional[str] = None

    model_config = {"from_attributes": True}


class TokenClaims(BaseModel):
    """Verified payload of an access token."""

    sub: str
    email: str
    role: UserRole
    iat: datetime
    exp: datetime


class LoginResult(BaseModel):
    """Successful login: the account and a freshly issued access token."""

    user: UserPublic
    access_token: str
    token_type: str = "Bearer"
    expires_at: datetime
