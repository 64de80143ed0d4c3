"""
Authorization Policy Tests.

The policy is pure: every check here builds actors and request
snapshots in memory, no database involved.
"""

from datetime import date
from decimal import Decimal

import pytest

from travelgate.auth import Actor
from travelgate.models.enums import RequestStatus, UserRole
from travelgate.models.travel_request import TravelRequest
from travelgate.services import authorization as policy

REQUESTER = Actor(id="u-requester", role=UserRole.USER)
APPROVER = Actor(id="u-approver", role=UserRole.APPROVER)
OTHER_APPROVER = Actor(id="u-other-approver", role=UserRole.APPROVER)
ADMIN = Actor(id="u-admin", role=UserRole.ADMIN)
STRANGER = Actor(id="u-stranger", role=UserRole.USER)


def _request(status: RequestStatus = RequestStatus.PENDING, requester_id: str = REQUESTER.id) -> TravelRequest:
    return TravelRequest(
        id="req-1",
        requester_id=requester_id,
        approver_id=APPROVER.id,
        destination="Oslo",
        departure_date=date(2026, 5, 1),
        return_date=date(2026, 5, 3),
        purpose="Conference",
        estimated_budget=Decimal("900"),
        status=status,
    )


class TestRequestVisibility:

    @pytest.mark.parametrize("actor", [REQUESTER, APPROVER, ADMIN])
    def test_parties_and_admin_can_view(self, actor):
        assert policy.can_view_request(actor, _request())

    @pytest.mark.parametrize("actor", [STRANGER, OTHER_APPROVER])
    def test_unrelated_actors_cannot_view(self, actor):
        assert not policy.can_view_request(actor, _request())


class TestDraftMutation:

    def test_only_requester_mutates_draft(self):
        draft = _request(RequestStatus.DRAFT)
        assert policy.can_mutate_draft(REQUESTER, draft)
        assert not policy.can_mutate_draft(APPROVER, draft)

    def test_admin_has_no_draft_privileges(self):
        assert not policy.can_mutate_draft(ADMIN, _request(RequestStatus.DRAFT))

    def test_admin_who_raised_request_can_mutate_it(self):
        draft = _request(RequestStatus.DRAFT, requester_id=ADMIN.id)
        assert policy.can_mutate_draft(ADMIN, draft)


class TestDecisions:

    def test_assigned_approver_decides(self):
        assert policy.can_decide(APPROVER, _request())

    def test_admin_decides_any_request(self):
        assert policy.can_decide(ADMIN, _request())

    def test_unassigned_approver_cannot_decide(self):
        assert not policy.can_decide(OTHER_APPROVER, _request())

    def test_requester_cannot_decide(self):
        assert not policy.can_decide(REQUESTER, _request())

    def test_only_requester_cancels(self):
        assert policy.can_cancel(REQUESTER, _request())
        assert not policy.can_cancel(APPROVER, _request())
        assert not policy.can_cancel(ADMIN, _request())

    @pytest.mark.parametrize(
        "actor,expected",
        [(REQUESTER, False), (APPROVER, True), (ADMIN, True)],
    )
    def test_pending_queue_is_for_deciders(self, actor, expected):
        assert policy.can_view_pending_approvals(actor) is expected


class TestAccountPolicy:

    def test_user_may_view_self_only(self):
        assert policy.can_view_user(REQUESTER, REQUESTER.id)
        assert not policy.can_view_user(REQUESTER, APPROVER.id)
        assert policy.can_view_user(ADMIN, REQUESTER.id)

    def test_listing_and_management_are_admin_only(self):
        assert policy.can_list_all_users(ADMIN)
        assert not policy.can_list_all_users(APPROVER)
        assert policy.can_manage_users(ADMIN)
        assert not policy.can_manage_users(REQUESTER)

    def test_self_may_change_names_only(self):
        assert policy.can_update_user_fields(REQUESTER, REQUESTER.id, {"first_name": "R"})
        assert not policy.can_update_user_fields(REQUESTER, REQUESTER.id, {"role": "admin"})
        assert not policy.can_update_user_fields(REQUESTER, REQUESTER.id, {"email": "x@y.io"})

    def test_user_cannot_touch_another_account(self):
        assert policy.updatable_user_fields(REQUESTER, APPROVER.id) == frozenset()
        assert not policy.can_update_user_fields(REQUESTER, APPROVER.id, {"first_name": "R"})

    def test_admin_may_change_any_field_of_others(self):
        changes = {"email": "n@example.com", "role": "approver", "is_active": False}
        assert policy.can_update_user_fields(ADMIN, REQUESTER.id, changes)

    def test_nobody_deactivates_themself(self):
        assert policy.is_self_deactivation(ADMIN, ADMIN.id, {"is_active": False})
        assert not policy.can_update_user_fields(ADMIN, ADMIN.id, {"is_active": False})

    def test_reactivating_self_is_not_a_deactivation(self):
        assert not policy.is_self_deactivation(ADMIN, ADMIN.id, {"is_active": True})
        assert policy.can_update_user_fields(ADMIN, ADMIN.id, {"is_active": True})

    def test_admin_cannot_delete_self(self):
        assert policy.can_delete_user(ADMIN, REQUESTER.id)
        assert not policy.can_delete_user(ADMIN, ADMIN.id)
        assert not policy.can_delete_user(REQUESTER, STRANGER.id)
