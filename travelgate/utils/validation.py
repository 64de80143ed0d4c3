"""
Input Validation Helpers.

Stateless checks shared by the account and authentication services.
Each returns a :class:`ValidationResult` rather than raising so callers
can map the failure onto their own error kind.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Optional

from travelgate.models.auth_models import ValidationResult
from travelgate.models.enums import UserRole

__all__ = [
    "first_missing",
    "is_blank",
    "parse_role",
    "validate_email",
    "validate_password",
]

_EMAIL_RE: re.Pattern[str] = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_blank(value: object) -> bool:
    """``None`` and whitespace-only strings count as blank."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def first_missing(data: Mapping[str, object], fields: Sequence[str]) -> Optional[str]:
    """Return the first of *fields* that is absent or blank in *data*."""
    for name in fields:
        if is_blank(data.get(name)):
            return name
    return None


def validate_email(email: str) -> ValidationResult:
    """Validate an email address against a permissive ``local@domain.tld`` pattern."""
    if not email or not email.strip():
        return ValidationResult(is_valid=False, error_message="Email address is required.")
    if not _EMAIL_RE.match(email.strip()):
        return ValidationResult(
            is_valid=False,
            error_message="Please enter a valid email address.",
        )
    return ValidationResult(is_valid=True)


def validate_password(password: str) -> ValidationResult:
    """Enforce the password policy.

    Policy: minimum 8 characters, at least 1 uppercase letter,
    1 lowercase letter and 1 digit.
    """
    if len(password) < 8:
        return ValidationResult(
            is_valid=False,
            error_message="Password must be at least 8 characters.",
        )
    if not re.search(r"[A-Z]", password):
        return ValidationResult(
            is_valid=False,
            error_message="Password must contain at least one uppercase letter.",
        )
    if not re.search(r"[a-z]", password):
        return ValidationResult(
            is_valid=False,
            error_message="Password must contain at least one lowercase letter.",
        )
    if not re.search(r"\d", password):
        return ValidationResult(
            is_valid=False,
            error_message="Password must contain at least one digit.",
        )
    return ValidationResult(is_valid=True)


def parse_role(value: object) -> Optional[UserRole]:
    """Return the matching :class:`UserRole`, or ``None`` when unrecognised."""
    if not isinstance(value, str):
        return None
    try:
        return UserRole(value.strip().lower())
    except ValueError:
        return None
