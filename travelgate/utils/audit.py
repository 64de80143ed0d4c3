"""
Structured Audit Logging Utility.

Every committed state change is logged as a structured JSON object and,
when a database is supplied, persisted to the ``audit_log`` table.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from travelgate.database import DatabaseManager
from travelgate.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event", "persist_audit_event"]

# Scalar type permitted inside the ``details`` mapping.  Nested structures
# should be modelled explicitly, not smuggled through the audit log.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def _build_event(
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]],
) -> AuditEvent:
    return AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
    db: Optional[DatabaseManager] = None,
) -> None:
    """Log a structured JSON audit event, with optional SQLite persistence.

    Always emits an ``AUDIT:`` log line via *logger*.  When *db* is
    provided the event is also written to ``audit_log``.  Inside
    :meth:`DatabaseManager.batch_write` the row joins the enclosing
    transaction and a persistence error propagates so the change it
    describes rolls back with it.  Outside a batch the audited operation
    has already committed, so the error is logged as a warning.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"CREATE"``, ``"APPROVE"``,
            ``"DEACTIVATE"``).
        entity_type: Type of entity affected (``"TravelRequest"``, ``"User"``).
        entity_id: Primary key of the affected entity.
        user_id: ID of the user who performed the action.
        details: Optional additional context (e.g. old/new status).
        db: Optional database manager for persistence.
    """
    event = _build_event(action, entity_type, entity_id, user_id, details)

    if db is not None:
        try:
            persist_audit_event(db, event)
        except Exception as db_err:
            if db.in_batch:
                raise
            logger.warning("Failed to persist audit event to SQLite: %s", db_err)

    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))


def persist_audit_event(db: DatabaseManager, event: AuditEvent) -> None:
    """Write a validated :class:`AuditEvent` to the ``audit_log`` table.

    Honours :meth:`DatabaseManager.batch_write`: inside a batch the commit
    is left to the enclosing block.
    """
    with db.lock:
        db.sqlite.execute(
            """
            INSERT INTO audit_log (timestamp, action, entity_type, entity_id, user_id, details)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                event.timestamp,
                event.action,
                event.entity_type,
                event.entity_id,
                event.user_id,
                json.dumps(event.details, default=str),
            ),
        )
        if not db.in_batch:
            db.sqlite.commit()
