"""
Shared Enumerations for TravelGate Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents, so values read
back from SQLite (plain ``str``) compare directly against members.
"""

from __future__ import annotations

from enum import StrEnum


class UserRole(StrEnum):
    """Valid user roles in the system."""

    USER = "user"
    APPROVER = "approver"
    ADMIN = "admin"


class RequestStatus(StrEnum):
    """Travel request lifecycle states.

    ``DRAFT`` and ``PENDING`` are the only non-terminal states.
    """

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (RequestStatus.DRAFT, RequestStatus.PENDING)


class NotificationKind(StrEnum):
    """Lifecycle transitions that trigger an email."""

    SUBMISSION = "submission"
    APPROVAL = "approval"
    REJECTION = "rejection"
    CANCELLATION = "cancellation"


class NotificationStatus(StrEnum):
    """Recorded outcome of a single delivery attempt."""

    SENT = "sent"
    FAILED = "failed"


DECIDER_ROLES: frozenset[UserRole] = frozenset({UserRole.APPROVER, UserRole.ADMIN})
"""Roles allowed to be assigned as a request's approver."""
