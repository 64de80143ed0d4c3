"""
User Management Service.

Account administration: listing, lookup, profile updates, soft / hard
deletion, the approver directory and account statistics.  Which fields
an actor may change is decided by the authorization policy; fields
outside that set are dropped from the patch before anything is written.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping
from typing import Optional

from pydantic import ValidationError

from travelgate.auth import Actor
from travelgate.database import DatabaseManager
from travelgate.logger import StructuredLogger
from travelgate.models.enums import DECIDER_ROLES, UserRole
from travelgate.models.service_models import ErrorCode, ServiceResult
from travelgate.models.user import UserPatch, UserStats
from travelgate.repositories.user_repository import UserRepository
from travelgate.services import authorization
from travelgate.services.base_service import BaseService
from travelgate.utils.audit import log_audit_event
from travelgate.utils.validation import is_blank, parse_role, validate_email


class UserService(BaseService):
    """Service for user administration."""

    def __init__(
        self,
        repo: UserRepository,
        db: DatabaseManager,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_users(
        self,
        actor: Actor,
        role: Optional[str] = None,
        active: Optional[bool] = None,
    ) -> ServiceResult:
        """All accounts, newest first (admins only)."""
        if not authorization.can_list_all_users(actor):
            return ServiceResult.fail(ErrorCode.FORBIDDEN, "Only admins can list users.")

        parsed_role: Optional[UserRole] = None
        if not is_blank(role):
            parsed_role = parse_role(role)
            if parsed_role is None:
                return ServiceResult.fail(ErrorCode.INVALID_ROLE, f"Invalid role '{role}'.")

        try:
            users = self._repo.list_users(role=parsed_role, is_active=active)
        except sqlite3.Error as exc:
            return self._server_error("user listing", exc)
        return ServiceResult.ok([u.to_public() for u in users])

    def get_user(self, actor: Actor, user_id: str) -> ServiceResult:
        """An account, visible to admins and to its owner."""
        if not authorization.can_view_user(actor, user_id):
            return ServiceResult.fail(ErrorCode.FORBIDDEN, "You can only view your own account.")
        try:
            user = self._repo.get_by_id(user_id)
        except sqlite3.Error as exc:
            return self._server_error(f"lookup of user {user_id}", exc)
        if user is None:
            return ServiceResult.fail(ErrorCode.USER_NOT_FOUND, "User not found.")
        return ServiceResult.ok(user.to_public())

    def list_approvers(self, actor: Actor) -> ServiceResult:
        """Active approvers and admins, sorted by name, for approver selection."""
        try:
            approvers = self._repo.list_active_by_roles(DECIDER_ROLES)
        except sqlite3.Error as exc:
            return self._server_error("approver listing", exc)
        return ServiceResult.ok([u.to_public() for u in approvers])

    def get_user_stats(self, actor: Actor) -> ServiceResult:
        """Account counts by activity and role (admins only)."""
        if not authorization.can_manage_users(actor):
            return ServiceResult.fail(ErrorCode.FORBIDDEN, "Only admins can view user statistics.")
        try:
            groups = self._repo.count_by_role_and_activity()
        except sqlite3.Error as exc:
            return self._server_error("user statistics", exc)

        stats = UserStats(by_role={role.value: 0 for role in UserRole})
        for role, is_active, count in groups:
            stats.total += count
            if is_active:
                stats.active += count
            else:
                stats.inactive += count
            stats.by_role[role.value] += count
        return ServiceResult.ok(stats)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_user(
        self,
        actor: Actor,
        user_id: str,
        changes: Mapping[str, object],
    ) -> ServiceResult:
        """
        Apply a partial account update.

        Admins may change email, names, role and activity; users may change
        only their own names.  Disallowed keys are ignored rather than
        rejected.  An admin can never deactivate their own account.
        """
        allowed = authorization.updatable_user_fields(actor, user_id)
        if not allowed:
            return ServiceResult.fail(ErrorCode.FORBIDDEN, "You can only update your own account.")

        try:
            patch = UserPatch.model_validate(dict(changes))
        except ValidationError as exc:
            fields = ", ".join(sorted({str(e["loc"][0]) for e in exc.errors() if e.get("loc")}))
            return ServiceResult.fail(ErrorCode.VALIDATION_ERROR, f"Invalid value for: {fields}.")

        fields = {
            name: value
            for name, value in patch.model_dump(exclude_unset=True).items()
            if name in allowed
        }

        if authorization.is_self_deactivation(actor, user_id, fields):
            return ServiceResult.fail(
                ErrorCode.CANNOT_DEACTIVATE_SELF, "You cannot deactivate your own account.",
            )
        if not authorization.can_update_user_fields(actor, user_id, fields):
            return ServiceResult.fail(ErrorCode.FORBIDDEN, "You cannot change these fields.")

        for name in ("first_name", "last_name", "is_active"):
            if name in fields and is_blank(fields[name]):
                return ServiceResult.fail(ErrorCode.MISSING_FIELD, f"Field cannot be empty: {name}.")

        if "role" in fields:
            parsed_role = parse_role(fields["role"])
            if parsed_role is None:
                return ServiceResult.fail(ErrorCode.INVALID_ROLE, f"Invalid role '{fields['role']}'.")
            fields["role"] = parsed_role

        for name in ("first_name", "last_name"):
            if name in fields:
                fields[name] = str(fields[name]).strip()

        try:
            target = self._repo.get_by_id(user_id)
            if target is None:
                return ServiceResult.fail(ErrorCode.USER_NOT_FOUND, "User not found.")

            if "email" in fields:
                email = str(fields["email"]).strip()
                if not validate_email(email).is_valid:
                    return ServiceResult.fail(ErrorCode.INVALID_EMAIL, "Invalid email format.")
                if self._repo.email_exists(email, exclude_id=user_id):
                    return ServiceResult.fail(ErrorCode.EMAIL_EXISTS, "Email is already in use.")
                fields["email"] = email

            try:
                with self._db.batch_write():
                    updated = self._repo.update(user_id, fields)
                    if updated is None:
                        return ServiceResult.fail(ErrorCode.USER_NOT_FOUND, "User not found.")
                    log_audit_event(
                        logger=self._logger,
                        action="UPDATE",
                        entity_type="User",
                        entity_id=user_id,
                        user_id=actor.id,
                        details={"fields": ",".join(sorted(fields))},
                        db=self._db,
                    )
            except sqlite3.IntegrityError:
                return ServiceResult.fail(ErrorCode.EMAIL_EXISTS, "Email is already in use.")
            return ServiceResult.ok(updated.to_public())
        except sqlite3.Error as exc:
            return self._server_error(f"update of user {user_id}", exc)

    def delete_user(self, actor: Actor, user_id: str, hard: bool = False) -> ServiceResult:
        """
        Deactivate (default) or permanently remove an account.

        Permanent removal is refused while any travel request references
        the user.
        """
        if not authorization.can_manage_users(actor):
            return ServiceResult.fail(ErrorCode.FORBIDDEN, "Only admins can delete users.")
        if not authorization.can_delete_user(actor, user_id):
            return ServiceResult.fail(
                ErrorCode.CANNOT_DELETE_SELF, "You cannot delete your own account.",
            )

        try:
            if self._repo.get_by_id(user_id) is None:
                return ServiceResult.fail(ErrorCode.USER_NOT_FOUND, "User not found.")

            try:
                with self._db.batch_write():
                    if hard:
                        self._repo.hard_delete(user_id)
                    else:
                        self._repo.deactivate(user_id)
                    log_audit_event(
                        logger=self._logger,
                        action="HARD_DELETE" if hard else "DEACTIVATE",
                        entity_type="User",
                        entity_id=user_id,
                        user_id=actor.id,
                        db=self._db,
                    )
            except sqlite3.IntegrityError:
                return ServiceResult.fail(
                    ErrorCode.USER_HAS_REQUESTS,
                    "Cannot delete user with existing travel requests.",
                )
            message = "User permanently deleted." if hard else "User deactivated successfully."
            return ServiceResult.ok({"message": message})
        except sqlite3.Error as exc:
            return self._server_error(f"deletion of user {user_id}", exc)
