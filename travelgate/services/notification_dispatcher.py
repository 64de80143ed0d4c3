"""
Notification Dispatcher.

Delivers lifecycle emails off the caller's thread.  The lifecycle engine
hands over a :class:`NotificationJob` only after its conditional update
has committed; from then on the job has its own failure path:

- :meth:`NotificationDispatcher.notify` makes exactly one delivery
  attempt and records the outcome in ``notification_logs``.
- :meth:`NotificationDispatcher.dispatch` queues the job for the daemon
  worker and never raises.  The worker is started on first dispatch, so
  the caller never waits on SMTP.

Follows the daemon-thread lifecycle used by the other background
services: :meth:`start` / :meth:`stop` are also available to the owner
for an explicit startup and an orderly drain at shutdown.
"""

from __future__ import annotations

import queue
import threading
import time
from typing import Optional

from travelgate.logger import StructuredLogger
from travelgate.models.enums import NotificationStatus
from travelgate.models.service_models import ErrorCode, ServiceResult
from travelgate.models.notification import NotificationJob, NotificationOutcome
from travelgate.repositories.notification_log_repository import NotificationLogRepository
from travelgate.services.base_service import BaseService
from travelgate.services.email_service import EmailService


class NotificationDispatcher(BaseService):
    """Fire-and-forget delivery of workflow notifications.

    Parameters
    ----------
    email_service:
        Sender used for the single delivery attempt per job.
    log_repo:
        Repository recording each attempt's outcome.
    logger:
        Structured JSON logger.
    """

    _STOP_TIMEOUT_S: float = 10.0

    def __init__(
        self,
        email_service: EmailService,
        log_repo: NotificationLogRepository,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._email_service = email_service
        self._log_repo = log_repo
        self._queue: queue.Queue[Optional[NotificationJob]] = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._pending: int = 0
        # Guards _thread and _pending; enqueueing happens under it too.
        self._idle = threading.Condition()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the delivery worker on a daemon thread.

        Idempotent: calling ``start()`` while running is a no-op.
        """
        with self._idle:
            self._start_locked()

    def stop(self) -> None:
        """Drain queued jobs, then stop the worker (waits up to 10 s).

        Safe to call when the worker is not running.  A job dispatched
        afterwards starts a fresh worker with its own queue.
        """
        with self._idle:
            thread = self._thread
            if thread is None:
                return
            self._thread = None
            self._queue.put(None)

        thread.join(timeout=self._STOP_TIMEOUT_S)

        if thread.is_alive():
            self._logger.warning(
                "Notification worker did not terminate within %.0f s.",
                self._STOP_TIMEOUT_S,
            )
        else:
            self._logger.info("Notification worker stopped.")

    @property
    def is_running(self) -> bool:
        """``True`` when the worker thread is alive."""
        with self._idle:
            return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def dispatch(self, job: NotificationJob) -> None:
        """Queue *job* for the worker, starting it if needed.

        Returns immediately; delivery and its bookkeeping happen on the
        worker thread.
        """
        with self._idle:
            self._start_locked()
            self._pending += 1
            self._queue.put(job)

    def wait_until_idle(self, timeout: float = 5.0) -> bool:
        """Block until every queued job has been processed.

        Returns ``False`` if jobs are still outstanding after *timeout*.
        """
        deadline = time.monotonic() + timeout
        with self._idle:
            while self._pending > 0:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def notify(self, job: NotificationJob) -> NotificationOutcome:
        """Make one delivery attempt for *job* and record its outcome."""
        recipient = job.recipient
        try:
            result = self._email_service.send_notification(job)
        except Exception as exc:
            self._logger.error(
                "Could not build %s email for request %s: %s",
                job.kind, job.request.id, exc, exc_info=True,
            )
            result = ServiceResult.fail(ErrorCode.SERVER_ERROR, f"Email composition error: {exc}")
        outcome = NotificationOutcome(delivered=result.success, error=result.error)

        self._log_repo.record(
            travel_request_id=job.request.id,
            recipient_email=recipient.email,
            kind=job.kind,
            status=NotificationStatus.SENT if outcome.delivered else NotificationStatus.FAILED,
            error_message=outcome.error,
        )

        if outcome.delivered:
            self._logger.info(
                "Sent %s notification for request %s to %s.",
                job.kind, job.request.id, recipient.email,
            )
        else:
            self._logger.warning(
                "Failed to send %s notification for request %s to %s: %s",
                job.kind, job.request.id, recipient.email, outcome.error,
            )
        return outcome

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _deliver_safely(self, job: NotificationJob) -> None:
        """Run :meth:`notify`, logging and swallowing any failure."""
        try:
            self.notify(job)
        except Exception as exc:
            self._logger.error(
                "Notification for request %s could not be processed: %s",
                job.request.id,
                exc,
                exc_info=True,
            )

    def _start_locked(self) -> None:
        """Start a worker unless one is alive.  Caller holds ``_idle``."""
        if self._thread is not None and self._thread.is_alive():
            return

        # Each worker drains its own queue, so a stopping worker's sentinel
        # is never taken by its successor.
        self._queue = queue.Queue()
        self._thread = threading.Thread(
            target=self._run_loop,
            args=(self._queue,),
            name="NotificationWorker",
            daemon=True,
        )
        self._thread.start()
        self._logger.info("Notification worker started.")

    def _run_loop(self, jobs: queue.Queue[Optional[NotificationJob]]) -> None:
        while True:
            job = jobs.get()
            if job is None:
                break
            try:
                self._deliver_safely(job)
            finally:
                with self._idle:
                    self._pending -= 1
                    self._idle.notify_all()
