"""
Travel Request Repository.

Request store: all data access against ``travel_requests``.

State changes go through :meth:`TravelRequestRepository.conditional_update`
and :meth:`TravelRequestRepository.delete`, both of which carry the
expected current status in their ``WHERE`` clause.  The write and its
read-back run under the shared connection lock, so of two callers racing
on the same request exactly one sees its precondition hold.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from travelgate.database import DatabaseManager
from travelgate.logger import StructuredLogger
from travelgate.models.enums import RequestStatus
from travelgate.models.travel_request import (
    MUTABLE_REQUEST_FIELDS,
    RequestFilters,
    TravelRequest,
    TravelRequestCreate,
    TravelRequestWithParties,
)
from travelgate.models.user import UserPublic
from travelgate.repositories.base_repository import BaseRepository

# Columns a conditional update may write besides the draft-mutable fields.
_TRANSITION_COLUMNS: frozenset[str] = frozenset({
    "status",
    "approval_comments",
    "submitted_at",
    "decided_at",
})
_WRITABLE_COLUMNS: frozenset[str] = MUTABLE_REQUEST_FIELDS | _TRANSITION_COLUMNS

_PARTY_COLUMNS: tuple[str, ...] = (
    "id",
    "email",
    "first_name",
    "last_name",
    "role",
    "is_active",
    "created_at",
    "updated_at",
)

_SELECT_WITH_PARTIES: str = (
    "SELECT r.*, "
    + ", ".join(f"rq.{c} AS requester__{c}" for c in _PARTY_COLUMNS)
    + ", "
    + ", ".join(f"ap.{c} AS approver__{c}" for c in _PARTY_COLUMNS)
    + " FROM travel_requests r"
    " JOIN users rq ON rq.id = r.requester_id"
    " JOIN users ap ON ap.id = r.approver_id"
)


def _split_party_row(row: dict[str, object]) -> TravelRequestWithParties:
    base: dict[str, object] = {}
    requester: dict[str, object] = {}
    approver: dict[str, object] = {}
    for key, value in row.items():
        if key.startswith("requester__"):
            requester[key.removeprefix("requester__")] = value
        elif key.startswith("approver__"):
            approver[key.removeprefix("approver__")] = value
        else:
            base[key] = value
    return TravelRequestWithParties(
        **base,
        requester=UserPublic(**requester),
        approver=UserPublic(**approver),
    )


class TravelRequestRepository(BaseRepository):
    """Data access layer for TravelRequest entities."""

    TABLE = "travel_requests"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, request_id: str) -> Optional[TravelRequest]:
        with self._db.lock:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (request_id,)
            ).fetchone()
        return TravelRequest(**dict(row)) if row else None

    def get_with_parties(self, request_id: str) -> Optional[TravelRequestWithParties]:
        """Fetch a request joined with its requester and approver."""
        with self._db.lock:
            row = self.sqlite.execute(
                f"{_SELECT_WITH_PARTIES} WHERE r.id = ?", (request_id,)
            ).fetchone()
        return _split_party_row(dict(row)) if row else None

    def list_by_filter(self, filters: RequestFilters) -> list[TravelRequestWithParties]:
        """Return requests matching every populated field of *filters*, newest first."""
        clauses: list[str] = []
        params: list[object] = []
        if filters.status is not None:
            clauses.append("r.status = ?")
            params.append(str(filters.status))
        if filters.requester_id is not None:
            clauses.append("r.requester_id = ?")
            params.append(filters.requester_id)
        if filters.approver_id is not None:
            clauses.append("r.approver_id = ?")
            params.append(filters.approver_id)
        if filters.start_date is not None:
            clauses.append("r.departure_date >= ?")
            params.append(filters.start_date.isoformat())
        if filters.end_date is not None:
            clauses.append("r.return_date <= ?")
            params.append(filters.end_date.isoformat())

        sql = _SELECT_WITH_PARTIES
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY r.created_at DESC"

        with self._db.lock:
            rows = self.sqlite.execute(sql, params).fetchall()
        return [_split_party_row(dict(row)) for row in rows]

    def count_by_status(self, requester_id: Optional[str] = None) -> dict[RequestStatus, int]:
        """Count requests per status, optionally for a single requester."""
        sql = f"SELECT status, COUNT(*) AS cnt FROM {self.TABLE}"
        params: tuple[str, ...] = ()
        if requester_id is not None:
            sql += " WHERE requester_id = ?"
            params = (requester_id,)
        sql += " GROUP BY status"

        with self._db.lock:
            rows = self.sqlite.execute(sql, params).fetchall()
        counts = {status: 0 for status in RequestStatus}
        for row in rows:
            counts[RequestStatus(row["status"])] = int(row["cnt"])
        return counts

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        owner_id: str,
        data: TravelRequestCreate,
        status: RequestStatus,
        submitted_at: Optional[datetime] = None,
    ) -> TravelRequest:
        """Insert a request owned by *owner_id* in the given initial *status*."""
        request_id = self._new_id()
        now = self._now()
        with self._db.lock:
            try:
                self.sqlite.execute(
                    f"""
                    INSERT INTO {self.TABLE}
                        (id, requester_id, approver_id, destination,
                         departure_date, return_date, purpose, estimated_budget,
                         transportation_mode, accommodation_details, additional_notes,
                         status, submitted_at, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        request_id,
                        owner_id,
                        data.approver_id,
                        data.destination,
                        self._to_sql(data.departure_date),
                        self._to_sql(data.return_date),
                        data.purpose,
                        self._to_sql(data.estimated_budget),
                        data.transportation_mode,
                        data.accommodation_details,
                        data.additional_notes,
                        str(status),
                        self._to_sql(submitted_at),
                        now,
                        now,
                    ),
                )
                self._commit()
            except Exception:
                self._rollback()
                raise
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (request_id,)
            ).fetchone()
        return TravelRequest(**dict(row))

    def conditional_update(
        self,
        request_id: str,
        expected_status: RequestStatus,
        patch: dict[str, object],
    ) -> Optional[TravelRequest]:
        """Apply *patch* only if the request is currently in *expected_status*.

        ``updated_at`` is always bumped.  Returns the updated request, or
        ``None`` when the request is missing or its status no longer
        matches (the precondition failed and nothing was written).
        """
        assignments = {k: v for k, v in patch.items() if k in _WRITABLE_COLUMNS}
        set_parts = [f"{column} = ?" for column in assignments]
        set_parts.append("updated_at = ?")
        params = [self._to_sql(v) for v in assignments.values()]
        params.extend([self._now(), request_id, str(expected_status)])

        with self._db.lock:
            try:
                cursor = self.sqlite.execute(
                    f"UPDATE {self.TABLE} SET {', '.join(set_parts)} "
                    "WHERE id = ? AND status = ?",
                    params,
                )
                if cursor.rowcount == 0:
                    self._rollback()
                    return None
                self._commit()
            except Exception:
                self._rollback()
                raise
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (request_id,)
            ).fetchone()
        return TravelRequest(**dict(row)) if row else None

    def delete(
        self,
        request_id: str,
        expected_status: RequestStatus = RequestStatus.DRAFT,
    ) -> bool:
        """Delete the request only if it is in *expected_status*."""
        with self._db.lock:
            try:
                cursor = self.sqlite.execute(
                    f"DELETE FROM {self.TABLE} WHERE id = ? AND status = ?",
                    (request_id, str(expected_status)),
                )
                self._commit()
            except Exception:
                self._rollback()
                raise
            return cursor.rowcount > 0
