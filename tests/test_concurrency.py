"""
Concurrent Transition Tests.

Racing callers on the same request must never both win: the conditional
update lets exactly one through and the others report their state
conflict.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

from travelgate.models.enums import RequestStatus
from travelgate.models.service_models import ErrorCode

RACERS = 8


def _race(*calls):
    """Run *calls* as simultaneously as possible and return their results in order."""
    barrier = threading.Barrier(len(calls))

    def _run(call):
        barrier.wait()
        return call()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(_run, call) for call in calls]
        return [f.result(timeout=30) for f in futures]


class TestRacingDecisions:

    def test_exactly_one_concurrent_approve_wins(self, lifecycle, actors, pending, request_repo):
        results = _race(
            *[lambda: lifecycle.approve_request(actors.approver, pending.id) for _ in range(RACERS)]
        )

        winners = [r for r in results if r.success]
        losers = [r for r in results if not r.success]
        assert len(winners) == 1
        assert {r.error_code for r in losers} == {ErrorCode.CANNOT_APPROVE}
        assert request_repo.get_by_id(pending.id).status == RequestStatus.APPROVED

    def test_approve_versus_reject(self, lifecycle, actors, pending, request_repo):
        approve, reject = _race(
            lambda: lifecycle.approve_request(actors.approver, pending.id),
            lambda: lifecycle.reject_request(actors.admin, pending.id, "Freeze on travel"),
        )

        assert approve.success != reject.success
        final = request_repo.get_by_id(pending.id).status
        if approve.success:
            assert final == RequestStatus.APPROVED
            assert reject.error_code == ErrorCode.CANNOT_REJECT
        else:
            assert final == RequestStatus.REJECTED
            assert approve.error_code == ErrorCode.CANNOT_APPROVE

    def test_cancel_versus_approve(self, lifecycle, actors, pending, request_repo):
        cancel, approve = _race(
            lambda: lifecycle.cancel_request(actors.requester, pending.id),
            lambda: lifecycle.approve_request(actors.approver, pending.id),
        )

        assert cancel.success != approve.success
        assert request_repo.get_by_id(pending.id).status in (
            RequestStatus.CANCELLED,
            RequestStatus.APPROVED,
        )

    def test_only_one_submission_is_notified(self, lifecycle, actors, draft, outbox):
        results = _race(
            *[lambda: lifecycle.submit_request(actors.requester, draft.id) for _ in range(RACERS)]
        )

        assert sum(r.success for r in results) == 1
        assert {r.error_code for r in results if not r.success} == {ErrorCode.CANNOT_SUBMIT}
        assert len(outbox()) == 1
