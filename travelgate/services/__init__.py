"""
Business Logic Services Package.

Services depend on the Repository layer for data access and receive the
acting user as an explicit :class:`~travelgate.auth.Actor`.

The ``create_services()`` factory wires every repository and service together,
returning a typed dict that the application layer (API handlers / CLI) can
consume without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from travelgate.config import AppConfig
from travelgate.database import DatabaseManager
from travelgate.jwt_auth import TokenService
from travelgate.logger import StructuredLogger, get_logger
from travelgate.repositories.notification_log_repository import NotificationLogRepository
from travelgate.repositories.travel_request_repository import TravelRequestRepository
from travelgate.repositories.user_repository import UserRepository
from travelgate.services.auth_service import AuthService
from travelgate.services.email_service import EmailService
from travelgate.services.notification_dispatcher import NotificationDispatcher
from travelgate.services.request_lifecycle import RequestLifecycleService
from travelgate.services.request_queries import RequestQueryService
from travelgate.services.users import UserService


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    token_service: TokenService
    auth_service: AuthService
    user_service: UserService
    email_service: EmailService
    notification_dispatcher: NotificationDispatcher
    request_lifecycle_service: RequestLifecycleService
    request_query_service: RequestQueryService


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    logger: Optional[StructuredLogger] = None,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    entry-point calls it once at startup.  The notification dispatcher
    starts its worker on the first dispatched job; call ``stop()`` on it
    at shutdown to drain pending deliveries.

    Args:
        db: Initialised DatabaseManager with the schema in place.
        config: Application configuration.
        logger: Shared service logger; one is created when omitted.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = logger or get_logger("services", config=config)

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    user_repo = UserRepository(db=db, logger=logger)
    request_repo = TravelRequestRepository(db=db, logger=logger)
    notification_log_repo = NotificationLogRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Leaf services (no service dependencies)
    # ------------------------------------------------------------------
    token_service = TokenService(config)
    email_service = EmailService(config=config, logger=logger)
    user_service = UserService(repo=user_repo, db=db, logger=logger)
    request_query_service = RequestQueryService(request_repo=request_repo, logger=logger)

    # ------------------------------------------------------------------
    # 3. Composite services
    # ------------------------------------------------------------------
    dispatcher = NotificationDispatcher(
        email_service=email_service,
        log_repo=notification_log_repo,
        logger=logger,
    )
    request_lifecycle_service = RequestLifecycleService(
        request_repo=request_repo,
        user_repo=user_repo,
        dispatcher=dispatcher,
        db=db,
        logger=logger,
    )
    auth_service = AuthService(
        user_repo=user_repo,
        token_service=token_service,
        config=config,
        db=db,
        logger=logger,
    )

    return ServiceContainer(
        token_service=token_service,
        auth_service=auth_service,
        user_service=user_service,
        email_service=email_service,
        notification_dispatcher=dispatcher,
        request_lifecycle_service=request_lifecycle_service,
        request_query_service=request_query_service,
    )
