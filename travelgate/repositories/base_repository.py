"""
Base Repository.

Provides shared infrastructure for all repositories:
- DatabaseManager reference and its connection lock
- Logger reference
- Commit handling that cooperates with ``batch_write``
- Value conversion between Python types and SQLite storage
"""

from __future__ import annotations

import sqlite3
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Union

from travelgate.database import DatabaseManager
from travelgate.logger import StructuredLogger

SqlValue = Union[str, int, float, None]


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Returns the shared SQLite connection."""
        return self._db.sqlite

    def _commit(self) -> None:
        """Commit the SQLite transaction unless a batch is active.

        Inside :meth:`DatabaseManager.batch_write` this is a no-op; the
        batch issues a single commit (or rollback) when it exits.
        """
        if not self._db.in_batch:
            self.sqlite.commit()

    def _rollback(self) -> None:
        if not self._db.in_batch:
            self.sqlite.rollback()

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now() -> str:
        """Current UTC time as the ISO-8601 text stored in timestamp columns."""
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _to_sql(value: object) -> SqlValue:
        """Convert a model value into its SQLite storage form.

        Dates and timestamps become ISO-8601 text, decimals become their
        exact string form, booleans become ``0`` / ``1``.
        """
        if value is None:
            return None
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, (int, float)):
            return value
        # StrEnum members and any other value are stored as plain text.
        return str(value)
