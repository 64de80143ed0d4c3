"""
Notification Models.

The dispatcher receives a :class:`NotificationJob`, makes exactly one
delivery attempt and reports a :class:`NotificationOutcome`; the outcome
is stored as a :class:`NotificationLog` row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from travelgate.models.enums import NotificationKind, NotificationStatus
from travelgate.models.travel_request import TravelRequest
from travelgate.models.user import User


class NotificationJob(BaseModel):
    """Snapshot of one transition to notify about."""

    kind: NotificationKind
    request: TravelRequest
    requester: User
    approver: User

    @property
    def recipient(self) -> User:
        """Approver for submission/cancellation, requester for decisions."""
        if self.kind in (NotificationKind.SUBMISSION, NotificationKind.CANCELLATION):
            return self.approver
        return self.requester


class NotificationOutcome(BaseModel):
    delivered: bool
    error: Optional[str] = None


class NotificationLog(BaseModel):
    """A stored delivery record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    travel_request_id: str
    recipient_email: str
    notification_type: NotificationKind
    status: NotificationStatus
    error_message: Optional[str] = None
    sent_at: datetime
