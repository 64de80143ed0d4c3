"""
Request Lifecycle Service.

The travel-request state machine::

    (new) --create--> draft | pending
    draft --update--> draft
    draft --submit--> pending
    draft --delete--> (removed)
    pending --approve--> approved
    pending --reject--> rejected
    pending --cancel--> cancelled

``approved``, ``rejected`` and ``cancelled`` are terminal.

Every transition follows the same pipeline: load the request (404),
check the actor against the authorization policy (403), check the
current status, then write through a conditional update whose ``WHERE``
clause repeats the expected status.  A lost race therefore surfaces as
the operation's ``CANNOT_*`` state-conflict code, never as an overwrite.
The write and its ``audit_log`` row commit together in one
``batch_write`` transaction.  Once that has committed, a notification
job is dispatched without waiting for delivery.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import ValidationError

from travelgate.auth import Actor
from travelgate.database import DatabaseManager
from travelgate.logger import StructuredLogger
from travelgate.models.enums import DECIDER_ROLES, NotificationKind, RequestStatus
from travelgate.models.notification import NotificationJob
from travelgate.models.service_models import ErrorCode, ServiceResult
from travelgate.models.travel_request import (
    REQUIRED_CREATE_FIELDS,
    TravelRequest,
    TravelRequestCreate,
    TravelRequestPatch,
)
from travelgate.models.user import User
from travelgate.repositories.travel_request_repository import TravelRequestRepository
from travelgate.repositories.user_repository import UserRepository
from travelgate.services import authorization
from travelgate.services.base_service import BaseService
from travelgate.services.notification_dispatcher import NotificationDispatcher
from travelgate.utils.audit import log_audit_event
from travelgate.utils.validation import first_missing, is_blank

_DATE_FIELDS: tuple[str, ...] = ("departure_date", "return_date")
# Patch fields that map to NOT NULL columns and so cannot be cleared.
_NON_NULLABLE_PATCH_FIELDS: tuple[str, ...] = (
    "approver_id",
    "destination",
    "departure_date",
    "return_date",
    "purpose",
    "estimated_budget",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_failure(exc: ValidationError) -> ServiceResult:
    """Map a payload parse error onto the matching validation kind.

    Date problems are reported before budget problems, mirroring the
    order of the creation checks.
    """
    failed = {str(err["loc"][0]) for err in exc.errors() if err.get("loc")}
    if failed & set(_DATE_FIELDS):
        return ServiceResult.fail(
            ErrorCode.INVALID_DATE_RANGE,
            "Departure and return dates must be valid calendar dates (YYYY-MM-DD).",
        )
    if "estimated_budget" in failed:
        return ServiceResult.fail(
            ErrorCode.INVALID_BUDGET, "Estimated budget must be a positive number.",
        )
    return ServiceResult.fail(
        ErrorCode.VALIDATION_ERROR,
        f"Invalid value for: {', '.join(sorted(failed)) or 'request'}.",
    )


def _check_dates(departure: date, return_: date) -> Optional[ServiceResult]:
    if return_ < departure:
        return ServiceResult.fail(
            ErrorCode.INVALID_DATE_RANGE,
            "Return date must be on or after the departure date.",
        )
    return None


def _check_budget(budget: Decimal) -> Optional[ServiceResult]:
    if budget <= 0:
        return ServiceResult.fail(
            ErrorCode.INVALID_BUDGET, "Estimated budget must be greater than zero.",
        )
    return None


class RequestLifecycleService(BaseService):
    """Applies travel-request state transitions.

    Dependencies are injected via __init__; the acting user arrives as an
    explicit :class:`Actor` on every call.
    """

    def __init__(
        self,
        request_repo: TravelRequestRepository,
        user_repo: UserRepository,
        dispatcher: NotificationDispatcher,
        db: DatabaseManager,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._request_repo = request_repo
        self._user_repo = user_repo
        self._dispatcher = dispatcher
        self._db = db

    # ------------------------------------------------------------------
    # Public: create
    # ------------------------------------------------------------------

    def create_request(
        self,
        actor: Actor,
        data: Mapping[str, object],
        submit: bool = False,
    ) -> ServiceResult:
        """
        Create a travel request owned by *actor*.

        Validation order: required fields, date range, budget, self
        approval, then the approver's existence, activity and role.  The
        first failing check decides the error.

        Args:
            actor: The authenticated requester.
            data: Raw field mapping; unrecognised keys are ignored.
            submit: Create directly as ``pending`` (sets ``submitted_at``
                and notifies the approver) instead of ``draft``.

        Returns:
            ServiceResult carrying the stored ``TravelRequest`` (201).
        """
        missing = first_missing(data, REQUIRED_CREATE_FIELDS)
        if missing is not None:
            return ServiceResult.fail(
                ErrorCode.MISSING_FIELD, f"Missing required field: {missing}.",
            )

        try:
            payload = TravelRequestCreate.model_validate(dict(data))
        except ValidationError as exc:
            return _parse_failure(exc)

        failure = (
            _check_dates(payload.departure_date, payload.return_date)
            or _check_budget(payload.estimated_budget)
        )
        if failure is not None:
            return failure

        try:
            approver, failure = self._resolve_approver(actor.id, payload.approver_id)
            if failure is not None:
                return failure

            status = RequestStatus.PENDING if submit else RequestStatus.DRAFT
            with self._db.batch_write():
                request = self._request_repo.create(
                    owner_id=actor.id,
                    data=payload,
                    status=status,
                    submitted_at=_utcnow() if submit else None,
                )
                log_audit_event(
                    logger=self._logger,
                    action="CREATE",
                    entity_type="TravelRequest",
                    entity_id=request.id,
                    user_id=actor.id,
                    details={"status": str(status), "approver_id": payload.approver_id},
                    db=self._db,
                )

            if submit:
                self._notify(NotificationKind.SUBMISSION, request, approver=approver)

            return ServiceResult.ok(request, status_code=201)
        except sqlite3.Error as exc:
            return self._server_error("travel request creation", exc)

    # ------------------------------------------------------------------
    # Public: draft operations
    # ------------------------------------------------------------------

    def update_request(
        self,
        actor: Actor,
        request_id: str,
        changes: Mapping[str, object],
    ) -> ServiceResult:
        """
        Apply a partial update to a draft.

        Only the fields modelled by ``TravelRequestPatch`` are read from
        *changes*.  Date-range and budget rules are re-checked against the
        merged result; a changed approver is validated like on creation.
        """
        try:
            request = self._request_repo.get_by_id(request_id)
            if request is None:
                return self._not_found()
            if not authorization.can_mutate_draft(actor, request):
                return self._forbidden("Only the requester can update this request.")
            if request.status != RequestStatus.DRAFT:
                return ServiceResult.fail(
                    ErrorCode.CANNOT_UPDATE_SUBMITTED,
                    f"Cannot update a {request.status} request. Only drafts can be edited.",
                )

            try:
                patch = TravelRequestPatch.model_validate(dict(changes))
            except ValidationError as exc:
                return _parse_failure(exc)
            fields = patch.model_dump(exclude_unset=True)

            for name in _NON_NULLABLE_PATCH_FIELDS:
                if name in fields and is_blank(fields[name]):
                    return ServiceResult.fail(
                        ErrorCode.MISSING_FIELD, f"Field cannot be empty: {name}.",
                    )

            failure = _check_dates(
                fields.get("departure_date", request.departure_date),
                fields.get("return_date", request.return_date),
            )
            if failure is None and "estimated_budget" in fields:
                failure = _check_budget(fields["estimated_budget"])
            if failure is None and fields.get("approver_id", request.approver_id) != request.approver_id:
                _, failure = self._resolve_approver(request.requester_id, fields["approver_id"])
            if failure is not None:
                return failure

            with self._db.batch_write():
                updated = self._request_repo.conditional_update(
                    request_id, RequestStatus.DRAFT, fields,
                )
                if updated is None:
                    return self._lost_race(
                        request_id,
                        ErrorCode.CANNOT_UPDATE_SUBMITTED,
                        "Request is no longer a draft.",
                    )
                log_audit_event(
                    logger=self._logger,
                    action="UPDATE",
                    entity_type="TravelRequest",
                    entity_id=request_id,
                    user_id=actor.id,
                    details={"fields": ",".join(sorted(fields))},
                    db=self._db,
                )
            return ServiceResult.ok(updated)
        except sqlite3.Error as exc:
            return self._server_error(f"update of travel request {request_id}", exc)

    def submit_request(self, actor: Actor, request_id: str) -> ServiceResult:
        """Move a draft to ``pending`` and notify the approver."""
        return self._transition(
            actor,
            request_id,
            allowed=authorization.can_mutate_draft,
            forbidden_message="Only the requester can submit this request.",
            from_status=RequestStatus.DRAFT,
            conflict=ErrorCode.CANNOT_SUBMIT,
            patch=lambda: {"status": RequestStatus.PENDING, "submitted_at": _utcnow()},
            action="SUBMIT",
            notification=NotificationKind.SUBMISSION,
        )

    def delete_request(self, actor: Actor, request_id: str) -> ServiceResult:
        """Remove a draft.  Submitted requests are never deleted."""
        try:
            request = self._request_repo.get_by_id(request_id)
            if request is None:
                return self._not_found()
            if not authorization.can_mutate_draft(actor, request):
                return self._forbidden("Only the requester can delete this request.")
            if request.status != RequestStatus.DRAFT:
                return self._wrong_state(ErrorCode.CANNOT_DELETE, request.status, RequestStatus.DRAFT)

            with self._db.batch_write():
                if not self._request_repo.delete(request_id, RequestStatus.DRAFT):
                    return self._lost_race(
                        request_id, ErrorCode.CANNOT_DELETE, "Request is no longer a draft.",
                    )
                log_audit_event(
                    logger=self._logger,
                    action="DELETE",
                    entity_type="TravelRequest",
                    entity_id=request_id,
                    user_id=actor.id,
                    details={"destination": request.destination},
                    db=self._db,
                )
            return ServiceResult.ok({"message": "Travel request deleted successfully."})
        except sqlite3.Error as exc:
            return self._server_error(f"deletion of travel request {request_id}", exc)

    # ------------------------------------------------------------------
    # Public: decisions on pending requests
    # ------------------------------------------------------------------

    def approve_request(
        self,
        actor: Actor,
        request_id: str,
        comments: Optional[str] = None,
    ) -> ServiceResult:
        """Approve a pending request; comments are optional."""
        stored_comments = comments.strip() if comments and comments.strip() else None
        return self._transition(
            actor,
            request_id,
            allowed=authorization.can_decide,
            forbidden_message="Only the assigned approver or an admin can approve this request.",
            from_status=RequestStatus.PENDING,
            conflict=ErrorCode.CANNOT_APPROVE,
            patch=lambda: {
                "status": RequestStatus.APPROVED,
                "decided_at": _utcnow(),
                "approval_comments": stored_comments,
            },
            action="APPROVE",
            notification=NotificationKind.APPROVAL,
        )

    def reject_request(
        self,
        actor: Actor,
        request_id: str,
        comments: Optional[str],
    ) -> ServiceResult:
        """Reject a pending request.  Non-blank comments are mandatory."""
        if is_blank(comments):
            return ServiceResult.fail(
                ErrorCode.COMMENTS_REQUIRED, "Comments are required when rejecting a request.",
            )
        stored_comments = comments.strip()
        return self._transition(
            actor,
            request_id,
            allowed=authorization.can_decide,
            forbidden_message="Only the assigned approver or an admin can reject this request.",
            from_status=RequestStatus.PENDING,
            conflict=ErrorCode.CANNOT_REJECT,
            patch=lambda: {
                "status": RequestStatus.REJECTED,
                "decided_at": _utcnow(),
                "approval_comments": stored_comments,
            },
            action="REJECT",
            notification=NotificationKind.REJECTION,
        )

    def cancel_request(self, actor: Actor, request_id: str) -> ServiceResult:
        """Withdraw a pending request and let the approver know."""
        return self._transition(
            actor,
            request_id,
            allowed=authorization.can_cancel,
            forbidden_message="Only the requester can cancel this request.",
            from_status=RequestStatus.PENDING,
            conflict=ErrorCode.CANNOT_CANCEL,
            patch=lambda: {"status": RequestStatus.CANCELLED},
            action="CANCEL",
            notification=NotificationKind.CANCELLATION,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _transition(
        self,
        actor: Actor,
        request_id: str,
        *,
        allowed: Callable[[Actor, TravelRequest], bool],
        forbidden_message: str,
        from_status: RequestStatus,
        conflict: ErrorCode,
        patch: Callable[[], dict[str, object]],
        action: str,
        notification: NotificationKind,
    ) -> ServiceResult:
        """Run the shared load / authorize / guard / write / audit / notify pipeline."""
        try:
            request = self._request_repo.get_by_id(request_id)
            if request is None:
                return self._not_found()
            if not allowed(actor, request):
                return self._forbidden(forbidden_message)
            if request.status != from_status:
                return self._wrong_state(conflict, request.status, from_status)

            with self._db.batch_write():
                updated = self._request_repo.conditional_update(request_id, from_status, patch())
                if updated is None:
                    return self._lost_race(
                        request_id, conflict, f"Request is no longer {from_status}.",
                    )
                log_audit_event(
                    logger=self._logger,
                    action=action,
                    entity_type="TravelRequest",
                    entity_id=request_id,
                    user_id=actor.id,
                    details={"from_status": str(from_status), "to_status": str(updated.status)},
                    db=self._db,
                )

            self._notify(notification, updated)
            return ServiceResult.ok(updated)
        except sqlite3.Error as exc:
            return self._server_error(f"{action.lower()} of travel request {request_id}", exc)

    def _resolve_approver(
        self,
        requester_id: str,
        approver_id: str,
    ) -> tuple[Optional[User], Optional[ServiceResult]]:
        """Check that *approver_id* may decide a request raised by *requester_id*."""
        if approver_id == requester_id:
            return None, ServiceResult.fail(
                ErrorCode.CANNOT_SELF_APPROVE, "You cannot assign yourself as the approver.",
            )
        approver = self._user_repo.get_by_id(approver_id)
        if approver is None:
            return None, ServiceResult.fail(ErrorCode.APPROVER_NOT_FOUND, "Approver not found.")
        if not approver.is_active:
            return None, ServiceResult.fail(
                ErrorCode.APPROVER_INACTIVE, "The selected approver account is inactive.",
            )
        if approver.role not in DECIDER_ROLES:
            return None, ServiceResult.fail(
                ErrorCode.NOT_AN_APPROVER, "The selected user is not an approver.",
            )
        return approver, None

    def _notify(
        self,
        kind: NotificationKind,
        request: TravelRequest,
        approver: Optional[User] = None,
    ) -> None:
        """Dispatch a notification job (non-blocking; failures are only logged)."""
        try:
            requester = self._user_repo.get_by_id(request.requester_id)
            if approver is None:
                approver = self._user_repo.get_by_id(request.approver_id)
            if requester is None or approver is None:
                self._logger.warning(
                    "Skipping %s notification for request %s: party not found.",
                    kind, request.id,
                )
                return
            self._dispatcher.dispatch(
                NotificationJob(kind=kind, request=request, requester=requester, approver=approver)
            )
        except Exception as exc:
            self._logger.error(
                "Request %s transitioned, but %s notification could not be dispatched: %s",
                request.id, kind, exc,
            )

    def _lost_race(self, request_id: str, conflict: ErrorCode, message: str) -> ServiceResult:
        """Classify a failed conditional write: vanished row or changed status."""
        if self._request_repo.get_by_id(request_id) is None:
            return self._not_found()
        self._logger.info("Conditional write on request %s lost a race (%s).", request_id, conflict)
        return ServiceResult.fail(conflict, message)

    @staticmethod
    def _wrong_state(
        conflict: ErrorCode,
        current: RequestStatus,
        expected: RequestStatus,
    ) -> ServiceResult:
        return ServiceResult.fail(
            conflict,
            f"Current status is '{current}'. Only '{expected}' requests allow this action.",
        )

    @staticmethod
    def _not_found() -> ServiceResult:
        return ServiceResult.fail(ErrorCode.REQUEST_NOT_FOUND, "Travel request not found.")

    @staticmethod
    def _forbidden(message: str) -> ServiceResult:
        return ServiceResult.fail(ErrorCode.FORBIDDEN, message)
