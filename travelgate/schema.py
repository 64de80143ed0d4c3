"""
Centralized SQLite Schema Initialization.

Defines the canonical schema for the TravelGate database and provides a
single entry-point -- :func:`initialize_schema` -- that creates all
required tables idempotently.  A ``schema_version`` table records the
version the tables were created at.

The store repeats the invariants the lifecycle engine enforces, so a
row that violates them can never be written by any path:

- ``role`` and ``status`` are restricted by CHECK constraints.
- ``return_date >= departure_date``, ``estimated_budget > 0`` and
  ``requester_id <> approver_id`` hold for every travel request.
- Users referenced by a travel request cannot be hard-deleted
  (``ON DELETE RESTRICT``); notification logs follow their request.

Usage::

    from travelgate.schema import initialize_schema

    initialize_schema(db.sqlite, StructuredLogger(name="schema"))
"""

from __future__ import annotations

import sqlite3

from travelgate.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "REQUIRED_TABLES", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 1

_TABLE_DEFINITIONS: list[str] = [
    # -- single-row version tracker -------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- accounts ---------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'user'
            CHECK (role IN ('user', 'approver', 'admin')),
        is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0, 1)),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    # -- travel requests ----------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS travel_requests (
        id TEXT PRIMARY KEY,
        requester_id TEXT NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
        approver_id TEXT NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
        destination TEXT NOT NULL CHECK (length(trim(destination)) > 0),
        departure_date TEXT NOT NULL,
        return_date TEXT NOT NULL,
        purpose TEXT NOT NULL CHECK (length(trim(purpose)) > 0),
        estimated_budget TEXT NOT NULL
            CHECK (CAST(estimated_budget AS REAL) > 0),
        transportation_mode TEXT,
        accommodation_details TEXT,
        additional_notes TEXT,
        status TEXT NOT NULL DEFAULT 'draft'
            CHECK (status IN ('draft', 'pending', 'approved', 'rejected', 'cancelled')),
        approval_comments TEXT,
        submitted_at TEXT,
        decided_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        CHECK (return_date >= departure_date),
        CHECK (requester_id <> approver_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_travel_requests_requester ON travel_requests(requester_id)",
    "CREATE INDEX IF NOT EXISTS idx_travel_requests_approver ON travel_requests(approver_id)",
    "CREATE INDEX IF NOT EXISTS idx_travel_requests_status ON travel_requests(status)",
    # -- delivery outcome per notification ---------------------------------------
    """
    CREATE TABLE IF NOT EXISTS notification_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        travel_request_id TEXT NOT NULL
            REFERENCES travel_requests(id) ON DELETE CASCADE,
        recipient_email TEXT NOT NULL,
        notification_type TEXT NOT NULL
            CHECK (notification_type IN ('submission', 'approval', 'rejection', 'cancellation')),
        status TEXT NOT NULL CHECK (status IN ('sent', 'failed')),
        error_message TEXT,
        sent_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_notification_logs_request ON notification_logs(travel_request_id)",
    # -- queryable audit trail ------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        details TEXT NOT NULL DEFAULT '{}'
    )
    """,
]

REQUIRED_TABLES: frozenset[str] = frozenset({
    "schema_version",
    "users",
    "travel_requests",
    "notification_logs",
    "audit_log",
})

# ---------------------------------------------------------------------------
# Version tracking helpers
# ---------------------------------------------------------------------------

def _ensure_version_table(conn: sqlite3.Connection) -> None:
    conn.execute(_TABLE_DEFINITIONS[0])
    conn.commit()


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the stored schema version, or ``0`` for a fresh database."""
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return int(row[0]) if row else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def _create_all_tables(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    for ddl in _TABLE_DEFINITIONS:
        conn.execute(ddl)
    logger.info("All %d schema statements applied.", len(_TABLE_DEFINITIONS))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Ensure the database matches :data:`CURRENT_SCHEMA_VERSION`.

    Workflow:
        1. Guarantee the ``schema_version`` table exists (separate commit).
        2. Read the stored version number (``0`` for a fresh database).
        3. Return immediately when already current.
        4. Otherwise apply every ``CREATE ... IF NOT EXISTS`` statement
           and record the version, both in one transaction.  On failure
           everything is rolled back and the next startup retries.

    Safe to call on every startup.
    """
    _ensure_version_table(conn)
    current: int = _get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.info("Schema is up to date (version %d).", current)
        return

    logger.info(
        "Upgrading schema from version %d to %d.", current, CURRENT_SCHEMA_VERSION,
    )

    try:
        _create_all_tables(conn, logger)
        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except Exception:
        conn.rollback()
        logger.error(
            "Schema initialisation failed; rolled back to version %d.", current,
        )
        raise

    logger.info("Schema initialised at version %d.", CURRENT_SCHEMA_VERSION)
