"""
Request Query Service.

Read-side operations over travel requests: single lookups, scoped lists,
the approver's pending queue and status statistics.  Statistics are
computed from the store on every call; nothing is cached.
"""

from __future__ import annotations

import sqlite3
from datetime import date
from typing import Optional, Union

from travelgate.auth import Actor
from travelgate.logger import StructuredLogger
from travelgate.models.enums import RequestStatus
from travelgate.models.service_models import ErrorCode, ServiceResult
from travelgate.models.travel_request import RequestFilters, RequestStats
from travelgate.repositories.travel_request_repository import TravelRequestRepository
from travelgate.services import authorization
from travelgate.services.base_service import BaseService

StatusFilter = Union[RequestStatus, str, None]


def _parse_status(value: StatusFilter) -> tuple[Optional[RequestStatus], bool]:
    """Return ``(status, ok)``; blank means no filter."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, True
    try:
        return RequestStatus(str(value).strip().lower()), True
    except ValueError:
        return None, False


def _invalid_status(value: StatusFilter) -> ServiceResult:
    allowed = ", ".join(s.value for s in RequestStatus)
    return ServiceResult.fail(
        ErrorCode.INVALID_STATUS, f"Invalid status '{value}'. Expected one of: {allowed}.",
    )


class RequestQueryService(BaseService):
    """Read-only access to travel requests, scoped by the actor's rights."""

    def __init__(self, request_repo: TravelRequestRepository, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._request_repo = request_repo

    def get_request(self, actor: Actor, request_id: str) -> ServiceResult:
        """Fetch a request with both parties; visible to requester, approver and admins."""
        try:
            request = self._request_repo.get_with_parties(request_id)
        except sqlite3.Error as exc:
            return self._server_error(f"lookup of travel request {request_id}", exc)

        if request is None:
            return ServiceResult.fail(ErrorCode.REQUEST_NOT_FOUND, "Travel request not found.")
        if not authorization.can_view_request(actor, request):
            return ServiceResult.fail(
                ErrorCode.FORBIDDEN, "You do not have access to this travel request.",
            )
        return ServiceResult.ok(request)

    def list_requests(
        self,
        actor: Actor,
        status: StatusFilter = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> ServiceResult:
        """Admins see every request (all filters apply); others see their own."""
        parsed, ok = _parse_status(status)
        if not ok:
            return _invalid_status(status)

        if actor.is_admin:
            filters = RequestFilters(status=parsed, start_date=start_date, end_date=end_date)
        else:
            filters = RequestFilters(status=parsed, requester_id=actor.id)
        return self._list(filters)

    def list_my_requests(self, actor: Actor, status: StatusFilter = None) -> ServiceResult:
        parsed, ok = _parse_status(status)
        if not ok:
            return _invalid_status(status)
        return self._list(RequestFilters(status=parsed, requester_id=actor.id))

    def list_pending_approvals(self, actor: Actor) -> ServiceResult:
        """Pending requests assigned to the actor (approvers and admins only)."""
        if not authorization.can_view_pending_approvals(actor):
            return ServiceResult.fail(
                ErrorCode.FORBIDDEN, "Only approvers and admins have a pending-approval queue.",
            )
        return self._list(RequestFilters(status=RequestStatus.PENDING, approver_id=actor.id))

    def get_request_stats(self, actor: Actor) -> ServiceResult:
        """Counts by status; system-wide for admins, own requests otherwise."""
        try:
            counts = self._request_repo.count_by_status(
                requester_id=None if actor.is_admin else actor.id,
            )
        except sqlite3.Error as exc:
            return self._server_error("request statistics", exc)

        stats = RequestStats(
            total=sum(counts.values()),
            **{status.value: count for status, count in counts.items()},
        )
        return ServiceResult.ok(stats)

    def _list(self, filters: RequestFilters) -> ServiceResult:
        try:
            return ServiceResult.ok(self._request_repo.list_by_filter(filters))
        except sqlite3.Error as exc:
            return self._server_error("travel request listing", exc)
