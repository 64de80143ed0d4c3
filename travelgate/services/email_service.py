"""
Email Notification Service.

Composes and sends the workflow emails over SMTP.  One call to
:meth:`EmailService.send_email` is one bounded delivery attempt
(``MAIL_TIMEOUT_S``); failures come back as a ``ServiceResult`` and are
never raised to the caller.
"""

from __future__ import annotations

import html
import smtplib
from datetime import date
from email.message import EmailMessage
from typing import Optional, Union

from travelgate.config import AppConfig
from travelgate.logger import StructuredLogger
from travelgate.models.enums import NotificationKind
from travelgate.models.notification import NotificationJob
from travelgate.models.service_models import ErrorCode, ServiceResult
from travelgate.services.base_service import BaseService
from travelgate.utils.audit import log_audit_event

_HTML_LAYOUT: str = """\
<html>
<body style="font-family: Arial, sans-serif; color: #333; line-height: 1.6;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #4f46e5; color: #fff; padding: 20px; text-align: center;">
      <h1>Travel Request System</h1>
    </div>
    <div style="background: #f9fafb; padding: 30px;">
{content}
    </div>
    <div style="text-align: center; font-size: 12px; color: #6b7280;">
      <p>This is an automated message from the Travel Request System.</p>
      <p>Please do not reply to this email.</p>
    </div>
  </div>
</body>
</html>
"""


def _format_date(value: date) -> str:
    return value.strftime("%B %d, %Y").replace(" 0", " ")


class EmailService(BaseService):
    """Service for composing and sending email notifications."""

    def __init__(self, config: AppConfig, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._config = config

    # ------------------------------------------------------------------
    # Core send method
    # ------------------------------------------------------------------

    def send_email(
        self,
        to_addresses: Union[str, list[str]],
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
    ) -> ServiceResult:
        """Compose and send an email synchronously via SMTP.

        Returns a ServiceResult indicating success or failure so callers
        can react without catching exceptions.
        """
        try:
            self._config.validate_email_config()
        except ValueError as exc:
            self._logger.warning("Email not sent, configuration incomplete: %s", exc)
            return ServiceResult.fail(
                ErrorCode.SERVER_ERROR, f"Email configuration error: {exc}",
            )

        recipients_str = (
            ", ".join(to_addresses) if isinstance(to_addresses, list) else to_addresses
        )
        msg = EmailMessage()
        try:
            msg["Subject"] = subject
            msg["From"] = f"{self._config.MAIL_FROM_NAME} <{self._config.MAIL_USERNAME}>"
            msg["To"] = recipients_str
            msg.set_content(body_text)
            if body_html:
                msg.add_alternative(body_html, subtype="html")
        except ValueError as exc:
            # Header values may not contain CR or LF.
            self._logger.error("Email to %s could not be composed: %s", recipients_str, exc)
            return ServiceResult.fail(ErrorCode.SERVER_ERROR, f"Email composition error: {exc}")

        return self._dispatch_smtp(msg)

    # ------------------------------------------------------------------
    # Workflow notifications
    # ------------------------------------------------------------------

    def send_notification(self, job: NotificationJob) -> ServiceResult:
        """Send the email for one lifecycle transition to its recipient."""
        subject, text, content = self._render(job)
        return self.send_email(
            job.recipient.email,
            subject,
            text,
            _HTML_LAYOUT.format(content=content),
        )

    def _request_link(self, request_id: str) -> str:
        return f"{self._config.CLIENT_URL.rstrip('/')}/requests/{request_id}"

    def _render(self, job: NotificationJob) -> tuple[str, str, str]:
        """Return ``(subject, plain text, html content)`` for *job*."""
        req = job.request
        requester_name = job.requester.full_name
        approver_name = job.approver.full_name
        link = self._request_link(req.id)
        esc = html.escape

        details: list[tuple[str, str]] = [
            ("Destination", req.destination),
            ("Departure", _format_date(req.departure_date)),
            ("Return", _format_date(req.return_date)),
        ]

        if job.kind == NotificationKind.SUBMISSION:
            subject = f"New Travel Request from {requester_name}"
            greeting = approver_name
            lead = f"{requester_name} has submitted a new travel request that requires your approval."
            details += [
                ("Purpose", req.purpose),
                ("Estimated Budget", f"${req.estimated_budget:,.2f}"),
            ]
            closing = "Please review and approve or reject this request at your earliest convenience."
            action = "Review Request"
        elif job.kind == NotificationKind.APPROVAL:
            subject = "✅ Travel Request Approved"
            greeting = requester_name
            lead = f"Great news! Your travel request has been APPROVED by {approver_name}."
            details.append(("Budget", f"${req.estimated_budget:,.2f}"))
            if req.approval_comments:
                details.append(("Comments", req.approval_comments))
            closing = "You may now proceed with your travel arrangements."
            action = "View Request Details"
        elif job.kind == NotificationKind.REJECTION:
            subject = "❌ Travel Request Rejected"
            greeting = requester_name
            lead = (
                "We regret to inform you that your travel request has been "
                f"REJECTED by {approver_name}."
            )
            if req.approval_comments:
                details.append(("Reason for Rejection", req.approval_comments))
            closing = f"If you have questions about this decision, please contact {approver_name} directly."
            action = "View Request Details"
        else:
            subject = f"Travel Request Cancelled by {requester_name}"
            greeting = approver_name
            lead = f"{requester_name} has cancelled their travel request."
            closing = (
                "No action is required from you. This request has been removed "
                "from your pending approvals."
            )
            action = ""

        text_lines = [f"Hello {greeting},", "", lead, ""]
        text_lines += [f"{label}: {value}" for label, value in details]
        if action:
            text_lines += ["", f"{action}: {link}"]
        text_lines += ["", closing]

        html_parts = [
            f"      <p>Hello {esc(greeting)},</p>",
            f"      <p>{esc(lead)}</p>",
            "      <div>",
        ]
        html_parts += [
            f"        <div><strong>{esc(label)}:</strong> {esc(value)}</div>"
            for label, value in details
        ]
        html_parts.append("      </div>")
        if action:
            html_parts.append(f'      <p><a href="{esc(link)}">{esc(action)}</a></p>')
        html_parts.append(f"      <p>{esc(closing)}</p>")

        return subject, "\n".join(text_lines), "\n".join(html_parts)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _dispatch_smtp(self, msg: EmailMessage) -> ServiceResult:
        """Open an SMTP connection, authenticate, send, and close.

        The connection honours ``MAIL_TIMEOUT_S`` so a stalled server
        degrades into a failed result instead of blocking indefinitely.
        """
        config = self._config
        smtp: Optional[smtplib.SMTP] = None
        try:
            if config.MAIL_USE_SSL:
                smtp = smtplib.SMTP_SSL(
                    config.MAIL_SERVER, config.MAIL_PORT, timeout=config.MAIL_TIMEOUT_S,
                )
            else:
                smtp = smtplib.SMTP(
                    config.MAIL_SERVER, config.MAIL_PORT, timeout=config.MAIL_TIMEOUT_S,
                )
                smtp.starttls()
            smtp.login(config.MAIL_USERNAME, config.MAIL_PASSWORD.get_secret_value())
            smtp.send_message(msg)

            self._logger.info("Email sent successfully to %s", msg["To"])
            log_audit_event(
                logger=self._logger,
                action="EMAIL_SENT",
                entity_type="Email",
                entity_id=msg["Subject"] or "",
                user_id="system",
                details={"to": msg["To"], "subject": msg["Subject"]},
            )
            return ServiceResult.ok()

        except smtplib.SMTPAuthenticationError as exc:
            self._logger.error(
                "SMTP authentication failed for '%s': %s", config.MAIL_USERNAME, exc,
            )
            return ServiceResult.fail(ErrorCode.SERVER_ERROR, f"SMTP authentication failed: {exc}")

        except smtplib.SMTPException as exc:
            self._logger.error("SMTP error sending to %s: %s", msg["To"], exc)
            return ServiceResult.fail(ErrorCode.SERVER_ERROR, f"SMTP error: {exc}")

        except OSError as exc:
            self._logger.error(
                "Network error connecting to %s:%d: %s",
                config.MAIL_SERVER,
                config.MAIL_PORT,
                exc,
            )
            return ServiceResult.fail(ErrorCode.SERVER_ERROR, f"Network error: {exc}")

        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError):
                    pass
