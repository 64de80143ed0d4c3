"""
Repository Layer Package.

Data-access abstractions over the SQLite store.  Services never touch
``db.sqlite`` directly; all statements flow through repositories.

Usage:
    from travelgate.repositories import TravelRequestRepository, UserRepository
"""

from travelgate.repositories.base_repository import BaseRepository
from travelgate.repositories.notification_log_repository import NotificationLogRepository
from travelgate.repositories.travel_request_repository import TravelRequestRepository
from travelgate.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "NotificationLogRepository",
    "TravelRequestRepository",
    "UserRepository",
]
