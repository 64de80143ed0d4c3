"""
Notification Tests.

Email composition, the single delivery attempt with its recorded
outcome, and the background worker lifecycle.
"""

import smtplib
from concurrent.futures import ThreadPoolExecutor

import pytest

from travelgate.models.enums import NotificationKind, NotificationStatus
from travelgate.models.notification import NotificationJob
from travelgate.services.email_service import EmailService


@pytest.fixture
def email_service(services):
    return services["email_service"]


@pytest.fixture
def job_for(request_repo, people):
    def _job(kind, request):
        return NotificationJob(
            kind=kind,
            request=request_repo.get_by_id(request.id),
            requester=people.requester,
            approver=people.approver,
        )

    return _job


class TestRecipients:

    @pytest.mark.parametrize(
        "kind,party",
        [
            (NotificationKind.SUBMISSION, "approver"),
            (NotificationKind.CANCELLATION, "approver"),
            (NotificationKind.APPROVAL, "requester"),
            (NotificationKind.REJECTION, "requester"),
        ],
    )
    def test_recipient_by_kind(self, job_for, draft, people, kind, party):
        assert job_for(kind, draft).recipient == getattr(people, party)


class TestEmailService:

    def test_submission_email_content(self, email_service, job_for, draft, fake_smtp, config):
        result = email_service.send_notification(job_for(NotificationKind.SUBMISSION, draft))
        assert result.success

        (msg,) = fake_smtp.sent
        assert msg["From"] == f"{config.MAIL_FROM_NAME} <{config.MAIL_USERNAME}>"
        text = msg.get_body(preferencelist=("plain",)).get_content()
        assert text.startswith("Hello Anna Approver,")
        assert "Destination: Lisbon, Portugal" in text
        assert "Estimated Budget: $1,850.50" in text
        assert f"http://travel.test/requests/{draft.id}" in text

        html = msg.get_body(preferencelist=("html",)).get_content()
        assert "Lisbon, Portugal" in html

    def test_html_is_escaped(self, email_service, job_for, lifecycle, actors, draft, fake_smtp):
        lifecycle.update_request(actors.requester, draft.id, {"destination": "<b>Oslo</b>"})
        email_service.send_notification(job_for(NotificationKind.SUBMISSION, draft))

        html = fake_smtp.sent[0].get_body(preferencelist=("html",)).get_content()
        assert "&lt;b&gt;Oslo&lt;/b&gt;" in html
        assert "<b>Oslo</b>" not in html

    def test_uses_starttls_and_timeout(self, email_service, job_for, draft, fake_smtp, config):
        email_service.send_notification(job_for(NotificationKind.APPROVAL, draft))
        (connection,) = fake_smtp.connections
        assert connection.tls
        assert connection.timeout == config.MAIL_TIMEOUT_S
        assert connection.closed

    def test_unconfigured_mail_fails_without_connecting(
        self, config, logger, job_for, draft, fake_smtp,
    ):
        unconfigured = EmailService(config=config.model_copy(update={"MAIL_USERNAME": ""}), logger=logger)
        result = unconfigured.send_notification(job_for(NotificationKind.APPROVAL, draft))
        assert not result.success
        assert "configuration" in result.error
        assert fake_smtp.connections == []

    def test_network_error_is_a_failed_result(self, email_service, job_for, draft, fake_smtp):
        fake_smtp.failure = TimeoutError("timed out")
        result = email_service.send_notification(job_for(NotificationKind.APPROVAL, draft))
        assert not result.success
        assert "Network error" in result.error


class TestDispatcher:

    def test_notify_records_sent(self, dispatcher, job_for, draft, notification_log_repo, people):
        outcome = dispatcher.notify(job_for(NotificationKind.SUBMISSION, draft))
        assert outcome.delivered
        assert outcome.error is None

        (log,) = notification_log_repo.list_for_request(draft.id)
        assert log.recipient_email == people.approver.email
        assert log.notification_type == NotificationKind.SUBMISSION
        assert log.status == NotificationStatus.SENT

    def test_notify_records_failure(self, dispatcher, job_for, draft, notification_log_repo, fake_smtp):
        fake_smtp.failure = smtplib.SMTPException("mailbox unavailable")
        outcome = dispatcher.notify(job_for(NotificationKind.REJECTION, draft))
        assert not outcome.delivered

        (log,) = notification_log_repo.list_for_request(draft.id)
        assert log.status == NotificationStatus.FAILED
        assert "mailbox unavailable" in log.error_message

    def test_each_job_is_attempted_once(self, dispatcher, job_for, draft, fake_smtp):
        fake_smtp.failure = smtplib.SMTPException("down")
        dispatcher.dispatch(job_for(NotificationKind.APPROVAL, draft))
        assert dispatcher.wait_until_idle(timeout=5.0)
        assert len(fake_smtp.connections) == 1

    def test_composition_error_is_recorded(
        self, dispatcher, email_service, job_for, draft, notification_log_repo, monkeypatch,
    ):
        def _broken_template(job):
            raise KeyError("content")

        monkeypatch.setattr(email_service, "send_notification", _broken_template)
        outcome = dispatcher.notify(job_for(NotificationKind.APPROVAL, draft))
        assert not outcome.delivered
        assert "composition" in outcome.error

        (log,) = notification_log_repo.list_for_request(draft.id)
        assert log.status == NotificationStatus.FAILED

    def test_dispatch_starts_the_worker(self, dispatcher, job_for, draft, fake_smtp):
        assert not dispatcher.is_running
        dispatcher.dispatch(job_for(NotificationKind.APPROVAL, draft))
        assert dispatcher.is_running
        assert dispatcher.wait_until_idle(timeout=5.0)
        assert len(fake_smtp.sent) == 1

    def test_dispatch_after_stop_is_delivered(self, dispatcher, job_for, draft, fake_smtp):
        dispatcher.start()
        dispatcher.stop()
        dispatcher.dispatch(job_for(NotificationKind.APPROVAL, draft))
        assert dispatcher.wait_until_idle(timeout=5.0)
        assert len(fake_smtp.sent) == 1

    def test_stop_racing_dispatch_loses_no_job(self, dispatcher, job_for, draft, fake_smtp):
        job = job_for(NotificationKind.APPROVAL, draft)

        def _dispatch_many():
            for _ in range(20):
                dispatcher.dispatch(job)

        def _stop_repeatedly():
            for _ in range(5):
                dispatcher.stop()

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [pool.submit(_dispatch_many), pool.submit(_stop_repeatedly)]
            for future in futures:
                future.result()

        assert dispatcher.wait_until_idle(timeout=5.0)
        assert len(fake_smtp.sent) == 20

    def test_worker_delivers_in_background(self, dispatcher, job_for, draft, fake_smtp):
        dispatcher.start()
        assert dispatcher.is_running
        for kind in (NotificationKind.SUBMISSION, NotificationKind.APPROVAL):
            dispatcher.dispatch(job_for(kind, draft))

        assert dispatcher.wait_until_idle(timeout=5.0)
        assert len(fake_smtp.sent) == 2

        dispatcher.stop()
        assert not dispatcher.is_running

    def test_start_is_idempotent(self, dispatcher):
        dispatcher.start()
        dispatcher.start()
        assert dispatcher.is_running
        dispatcher.stop()
        dispatcher.stop()

    def test_lifecycle_with_worker_running(self, dispatcher, lifecycle, actors, draft, fake_smtp):
        dispatcher.start()
        result = lifecycle.submit_request(actors.requester, draft.id)
        assert result.success

        assert dispatcher.wait_until_idle(timeout=5.0)
        assert [m["To"] for m in fake_smtp.sent] == ["anna@example.com"]

    def test_bookkeeping_error_is_swallowed(self, dispatcher, job_for, draft, monkeypatch):
        def _broken(**kwargs):
            raise RuntimeError("log table gone")

        monkeypatch.setattr(dispatcher._log_repo, "record", _broken)
        dispatcher.dispatch(job_for(NotificationKind.APPROVAL, draft))
        assert dispatcher.wait_until_idle(timeout=5.0)
