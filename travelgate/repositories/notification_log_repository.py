"""
Notification Log Repository.

Records one row per delivery attempt in ``notification_logs``.
"""

from __future__ import annotations

from typing import Optional

from travelgate.database import DatabaseManager
from travelgate.logger import StructuredLogger
from travelgate.models.enums import NotificationKind, NotificationStatus
from travelgate.models.notification import NotificationLog
from travelgate.repositories.base_repository import BaseRepository


class NotificationLogRepository(BaseRepository):
    """Data access layer for notification delivery records."""

    TABLE = "notification_logs"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def record(
        self,
        travel_request_id: str,
        recipient_email: str,
        kind: NotificationKind,
        status: NotificationStatus,
        error_message: Optional[str] = None,
    ) -> None:
        with self._db.lock:
            try:
                self.sqlite.execute(
                    f"""
                    INSERT INTO {self.TABLE}
                        (travel_request_id, recipient_email, notification_type,
                         status, error_message, sent_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        travel_request_id,
                        recipient_email,
                        str(kind),
                        str(status),
                        error_message,
                        self._now(),
                    ),
                )
                self._commit()
            except Exception:
                self._rollback()
                raise

    def list_for_request(self, travel_request_id: str) -> list[NotificationLog]:
        """Delivery records for a request, oldest first."""
        with self._db.lock:
            rows = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE travel_request_id = ? ORDER BY id",
                (travel_request_id,),
            ).fetchall()
        return [NotificationLog(**dict(row)) for row in rows]
