"""
Authorization Policy.

Pure predicates over ``(actor, action, resource)``.  No hidden state and
no I/O: every check takes explicit actor and resource snapshots, so the
policy is testable without a database or mocks.
"""

from __future__ import annotations

from travelgate.auth import Actor
from travelgate.models.enums import DECIDER_ROLES
from travelgate.models.travel_request import TravelRequest

__all__ = [
    "ADMIN_USER_FIELDS",
    "SELF_USER_FIELDS",
    "can_cancel",
    "can_decide",
    "can_delete_user",
    "can_list_all_users",
    "can_manage_users",
    "can_mutate_draft",
    "can_update_user_fields",
    "can_view_pending_approvals",
    "can_view_request",
    "can_view_user",
    "is_self_deactivation",
    "updatable_user_fields",
]

SELF_USER_FIELDS: frozenset[str] = frozenset({"first_name", "last_name"})
ADMIN_USER_FIELDS: frozenset[str] = SELF_USER_FIELDS | {"email", "role", "is_active"}


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

def can_view_user(actor: Actor, target_id: str) -> bool:
    return actor.is_admin or actor.id == target_id


def can_list_all_users(actor: Actor) -> bool:
    return actor.is_admin


def can_manage_users(actor: Actor) -> bool:
    return actor.is_admin


def updatable_user_fields(actor: Actor, target_id: str) -> frozenset[str]:
    """Fields *actor* may set on the account *target_id*."""
    if actor.is_admin:
        return ADMIN_USER_FIELDS
    if actor.id == target_id:
        return SELF_USER_FIELDS
    return frozenset()


def is_self_deactivation(actor: Actor, target_id: str, changes: dict[str, object]) -> bool:
    """``True`` when *changes* would switch off the actor's own account."""
    return (
        actor.id == target_id
        and "is_active" in changes
        and changes["is_active"] is not None
        and not changes["is_active"]
    )


def can_update_user_fields(actor: Actor, target_id: str, changes: dict[str, object]) -> bool:
    """Admin may set any field; self may set only name fields.

    Deactivating one's own account is refused for every role.
    """
    if is_self_deactivation(actor, target_id, changes):
        return False
    allowed = updatable_user_fields(actor, target_id)
    return bool(allowed) and set(changes).issubset(allowed)


def can_delete_user(actor: Actor, target_id: str) -> bool:
    return actor.is_admin and actor.id != target_id


# ---------------------------------------------------------------------------
# Travel requests
# ---------------------------------------------------------------------------

def can_view_request(actor: Actor, request: TravelRequest) -> bool:
    return (
        actor.id == request.requester_id
        or actor.id == request.approver_id
        or actor.is_admin
    )


def can_mutate_draft(actor: Actor, request: TravelRequest) -> bool:
    """Only the requester edits, submits or deletes a draft, whatever their role."""
    return actor.id == request.requester_id


def can_decide(actor: Actor, request: TravelRequest) -> bool:
    return actor.id == request.approver_id or actor.is_admin


def can_cancel(actor: Actor, request: TravelRequest) -> bool:
    return actor.id == request.requester_id


def can_view_pending_approvals(actor: Actor) -> bool:
    return actor.role in DECIDER_ROLES
