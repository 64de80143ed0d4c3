"""Shared utility functions and models for TravelGate.

Convenience re-exports so consumers can import directly from
``travelgate.utils`` while full module imports remain supported.
"""

from travelgate.utils.audit import AuditEvent, log_audit_event
from travelgate.utils.security import hash_password, verify_password
from travelgate.utils.validation import (
    first_missing,
    is_blank,
    parse_role,
    validate_email,
    validate_password,
)

__all__ = [
    "AuditEvent",
    "first_missing",
    "hash_password",
    "is_blank",
    "log_audit_event",
    "parse_role",
    "validate_email",
    "validate_password",
    "verify_password",
]
