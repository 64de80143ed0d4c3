"""
Service Layer Result Envelope and Error Kinds.

Every service method returns a :class:`ServiceResult`.  Failures carry a
machine-readable :class:`ErrorCode` alongside the human-readable message
and an HTTP-style status code, so any transport can map them without
inspecting message text.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

__all__ = ["ERROR_STATUS_CODES", "ErrorCode", "ServiceResult"]


class ErrorCode(StrEnum):
    """Exhaustive enumeration of failure kinds returned by services."""

    # --- Validation ---
    MISSING_FIELD = "MISSING_FIELD"
    MISSING_FIELDS = "MISSING_FIELDS"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    INVALID_BUDGET = "INVALID_BUDGET"
    INVALID_EMAIL = "INVALID_EMAIL"
    INVALID_ROLE = "INVALID_ROLE"
    INVALID_STATUS = "INVALID_STATUS"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    COMMENTS_REQUIRED = "COMMENTS_REQUIRED"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # --- Approver assignment ---
    CANNOT_SELF_APPROVE = "CANNOT_SELF_APPROVE"
    APPROVER_NOT_FOUND = "APPROVER_NOT_FOUND"
    APPROVER_INACTIVE = "APPROVER_INACTIVE"
    NOT_AN_APPROVER = "NOT_AN_APPROVER"

    # --- Lookup ---
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # --- Authorization / authentication ---
    FORBIDDEN = "FORBIDDEN"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"

    # --- State conflicts (wrong current status) ---
    CANNOT_UPDATE_SUBMITTED = "CANNOT_UPDATE_SUBMITTED"
    CANNOT_SUBMIT = "CANNOT_SUBMIT"
    CANNOT_APPROVE = "CANNOT_APPROVE"
    CANNOT_REJECT = "CANNOT_REJECT"
    CANNOT_CANCEL = "CANNOT_CANCEL"
    CANNOT_DELETE = "CANNOT_DELETE"

    # --- Account management ---
    CANNOT_DEACTIVATE_SELF = "CANNOT_DEACTIVATE_SELF"
    CANNOT_DELETE_SELF = "CANNOT_DELETE_SELF"
    EMAIL_EXISTS = "EMAIL_EXISTS"
    USER_HAS_REQUESTS = "USER_HAS_REQUESTS"

    # --- Downstream ---
    SERVER_ERROR = "SERVER_ERROR"


ERROR_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.APPROVER_NOT_FOUND: 404,
    ErrorCode.REQUEST_NOT_FOUND: 404,
    ErrorCode.USER_NOT_FOUND: 404,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.ACCOUNT_DEACTIVATED: 403,
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.INVALID_TOKEN: 401,
    ErrorCode.TOKEN_EXPIRED: 401,
    ErrorCode.EMAIL_EXISTS: 409,
    ErrorCode.USER_HAS_REQUESTS: 409,
    ErrorCode.SERVER_ERROR: 500,
}
"""Status codes that differ from the default ``400``."""


class ServiceResult(BaseModel, Generic[T]):
    """
    Standard service return envelope.

    Generic over ``T`` so callers can annotate return types precisely
    (e.g. ``ServiceResult[TravelRequest]``).  ``error_code`` is ``None``
    on success.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    status_code: int = 200

    @classmethod
    def ok(cls, data: Optional[T] = None, status_code: int = 200) -> "ServiceResult[T]":
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, code: ErrorCode, message: str) -> "ServiceResult[T]":
        """Build a failure result whose status code is derived from *code*."""
        return cls(
            success=False,
            error=message,
            error_code=code,
            status_code=ERROR_STATUS_CODES.get(code, 400),
        )
