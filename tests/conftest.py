"""
Shared pytest fixtures for the TravelGate test suite.

Every test gets its own SQLite file under ``tmp_path`` with the schema
applied, a fixed cast of seeded accounts and an SMTP transport that
records messages instead of opening sockets.
"""

from __future__ import annotations

import smtplib
from datetime import date, timedelta
from email.message import EmailMessage
from types import SimpleNamespace
from typing import Generator, Optional

import pytest

from travelgate.auth import actor_for
from travelgate.config import AppConfig
from travelgate.database import DatabaseManager
from travelgate.logger import StructuredLogger
from travelgate.models.enums import UserRole
from travelgate.models.user import User, UserCreate
from travelgate.repositories.notification_log_repository import NotificationLogRepository
from travelgate.repositories.travel_request_repository import TravelRequestRepository
from travelgate.repositories.user_repository import UserRepository
from travelgate.schema import initialize_schema
from travelgate.services import ServiceContainer, create_services
from travelgate.utils.security import hash_password

TEST_PASSWORD = "Passw0rd!"
TEST_HASH_ITERATIONS = 1_000


# =============================================================================
# SMTP double
# =============================================================================


class FakeSMTP:
    """Stands in for ``smtplib.SMTP`` / ``SMTP_SSL``.

    Class-level state is reset by the ``fake_smtp`` fixture before each test.
    """

    sent: list[EmailMessage] = []
    connections: list["FakeSMTP"] = []
    failure: Optional[Exception] = None

    def __init__(self, host: str, port: int, timeout: Optional[float] = None) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.tls = False
        self.closed = False
        FakeSMTP.connections.append(self)

    def starttls(self) -> None:
        self.tls = True

    def login(self, username: str, password: str) -> None:
        if FakeSMTP.failure is not None:
            raise FakeSMTP.failure

    def send_message(self, msg: EmailMessage) -> None:
        FakeSMTP.sent.append(msg)

    def quit(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def fake_smtp(monkeypatch: pytest.MonkeyPatch) -> type[FakeSMTP]:
    """Route all SMTP traffic to :class:`FakeSMTP`."""
    FakeSMTP.sent = []
    FakeSMTP.connections = []
    FakeSMTP.failure = None
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(smtplib, "SMTP_SSL", FakeSMTP)
    return FakeSMTP


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def config(tmp_path) -> AppConfig:
    return AppConfig(
        _env_file=None,
        DATABASE_PATH=str(tmp_path / "travelgate-test.db"),
        JWT_SECRET="test-signing-secret",
        PASSWORD_HASH_ITERATIONS=TEST_HASH_ITERATIONS,
        MAIL_SERVER="smtp.test.local",
        MAIL_PORT=587,
        MAIL_USERNAME="mailer@example.com",
        MAIL_PASSWORD="mail-secret",
        CLIENT_URL="http://travel.test",
        DEFAULT_ADMIN_EMAIL="root@example.com",
        DEFAULT_ADMIN_PASSWORD="Bootstrap1",
        LOG_LEVEL="DEBUG",
        LOG_FILE="",
    )


@pytest.fixture
def logger(config: AppConfig) -> StructuredLogger:
    return StructuredLogger(name="travelgate.tests", config=config)


@pytest.fixture
def db(config: AppConfig, logger: StructuredLogger) -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(sqlite_path=config.DATABASE_PATH, logger=logger)
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def user_repo(db: DatabaseManager, logger: StructuredLogger) -> UserRepository:
    return UserRepository(db=db, logger=logger)


@pytest.fixture
def request_repo(db: DatabaseManager, logger: StructuredLogger) -> TravelRequestRepository:
    return TravelRequestRepository(db=db, logger=logger)


@pytest.fixture
def notification_log_repo(
    db: DatabaseManager, logger: StructuredLogger,
) -> NotificationLogRepository:
    return NotificationLogRepository(db=db, logger=logger)


@pytest.fixture
def services(
    db: DatabaseManager, config: AppConfig, logger: StructuredLogger,
) -> Generator[ServiceContainer, None, None]:
    container = create_services(db=db, config=config, logger=logger)
    yield container
    container["notification_dispatcher"].stop()


@pytest.fixture
def dispatcher(services: ServiceContainer):
    return services["notification_dispatcher"]


@pytest.fixture
def outbox(dispatcher, fake_smtp: type[FakeSMTP]):
    """Messages sent so far, read once the notification worker is idle."""

    def _sent() -> list[EmailMessage]:
        assert dispatcher.wait_until_idle(timeout=5.0)
        return fake_smtp.sent

    return _sent


@pytest.fixture
def lifecycle(services: ServiceContainer):
    return services["request_lifecycle_service"]


@pytest.fixture
def queries(services: ServiceContainer):
    return services["request_query_service"]


# =============================================================================
# Seeded accounts
# =============================================================================


def make_user(
    repo: UserRepository,
    email: str,
    first_name: str,
    last_name: str,
    role: UserRole = UserRole.USER,
    active: bool = True,
) -> User:
    user = repo.create(
        UserCreate(
            email=email,
            password_hash=hash_password(TEST_PASSWORD, TEST_HASH_ITERATIONS),
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
    )
    if not active:
        user = repo.deactivate(user.id)
    return user


@pytest.fixture
def people(user_repo: UserRepository) -> SimpleNamespace:
    """The standard cast: requester, two approvers, an admin and extras."""
    return SimpleNamespace(
        requester=make_user(user_repo, "rita@example.com", "Rita", "Requester"),
        colleague=make_user(user_repo, "carl@example.com", "Carl", "Colleague"),
        approver=make_user(user_repo, "anna@example.com", "Anna", "Approver", UserRole.APPROVER),
        other_approver=make_user(
            user_repo, "otto@example.com", "Otto", "Other", UserRole.APPROVER,
        ),
        admin=make_user(user_repo, "adam@example.com", "Adam", "Admin", UserRole.ADMIN),
        retired_approver=make_user(
            user_repo, "ivy@example.com", "Ivy", "Inactive", UserRole.APPROVER, active=False,
        ),
    )


@pytest.fixture
def actors(people: SimpleNamespace) -> SimpleNamespace:
    return SimpleNamespace(**{name: actor_for(user) for name, user in vars(people).items()})


# =============================================================================
# Payload helpers
# =============================================================================


def trip(approver_id: str, **overrides: object) -> dict[str, object]:
    """A valid creation payload; keyword arguments replace individual keys."""
    departure = date.today() + timedelta(days=30)
    payload: dict[str, object] = {
        "approver_id": approver_id,
        "destination": "Lisbon, Portugal",
        "departure_date": departure.isoformat(),
        "return_date": (departure + timedelta(days=4)).isoformat(),
        "purpose": "Customer workshop",
        "estimated_budget": "1850.50",
        "transportation_mode": "flight",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def draft(lifecycle, actors, people):
    """A draft raised by the requester and assigned to the approver."""
    result = lifecycle.create_request(actors.requester, trip(people.approver.id))
    assert result.success, result.error
    return result.data


@pytest.fixture
def pending(lifecycle, actors, people, outbox):
    """A submitted request; the outbox is cleared once its email is out."""
    created = lifecycle.create_request(actors.requester, trip(people.approver.id))
    result = lifecycle.submit_request(actors.requester, created.data.id)
    assert result.success, result.error
    outbox().clear()
    return result.data
