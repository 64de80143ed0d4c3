"""
Data Models Package.

Re-exports the Pydantic models for convenient imports:
    from travelgate.models import TravelRequest, User, RequestStatus
"""

from travelgate.models.enums import (
    NotificationKind,
    NotificationStatus,
    RequestStatus,
    UserRole,
)
from travelgate.models.notification import NotificationJob, NotificationLog, NotificationOutcome
from travelgate.models.service_models import ErrorCode, ServiceResult
from travelgate.models.travel_request import (
    RequestFilters,
    RequestStats,
    TravelRequest,
    TravelRequestCreate,
    TravelRequestPatch,
    TravelRequestWithParties,
)
from travelgate.models.user import User, UserCreate, UserPatch, UserPublic, UserStats

__all__ = [
    "ErrorCode",
    "NotificationJob",
    "NotificationKind",
    "NotificationLog",
    "NotificationOutcome",
    "NotificationStatus",
    "RequestFilters",
    "RequestStats",
    "RequestStatus",
    "ServiceResult",
    "TravelRequest",
    "TravelRequestCreate",
    "TravelRequestPatch",
    "TravelRequestWithParties",
    "User",
    "UserCreate",
    "UserPatch",
    "UserPublic",
    "UserRole",
    "UserStats",
]
