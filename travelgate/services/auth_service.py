"""
Authentication Service.

Credential login, admin-issued registration, the current-user lookup
and the bootstrap admin account.  Passwords are stored as PBKDF2 hashes
(``travelgate.utils.security``); access tokens come from
:class:`~travelgate.jwt_auth.TokenService`.

Login never reveals whether an email is registered: an unknown address
and a wrong password produce the same ``INVALID_CREDENTIALS`` result.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping

from travelgate.auth import Actor
from travelgate.config import AppConfig
from travelgate.database import DatabaseManager
from travelgate.jwt_auth import TokenService
from travelgate.logger import StructuredLogger
from travelgate.models.auth_models import LoginResult
from travelgate.models.enums import UserRole
from travelgate.models.service_models import ErrorCode, ServiceResult
from travelgate.models.user import User, UserCreate
from travelgate.repositories.user_repository import UserRepository
from travelgate.services import authorization
from travelgate.services.base_service import BaseService
from travelgate.utils.audit import log_audit_event
from travelgate.utils.security import hash_password, verify_password
from travelgate.utils.validation import (
    first_missing,
    is_blank,
    parse_role,
    validate_email,
    validate_password,
)

_REGISTER_FIELDS: tuple[str, ...] = ("email", "password", "first_name", "last_name")


class AuthService(BaseService):
    """Authentication and account provisioning."""

    def __init__(
        self,
        user_repo: UserRepository,
        token_service: TokenService,
        config: AppConfig,
        db: DatabaseManager,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._user_repo = user_repo
        self._tokens = token_service
        self._config = config
        self._db = db

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> ServiceResult:
        """Verify credentials and issue an access token.

        Returns:
            ServiceResult carrying a ``LoginResult`` on success.
        """
        if is_blank(email) or not password:
            return ServiceResult.fail(
                ErrorCode.MISSING_FIELDS, "Email and password are required.",
            )
        if not validate_email(email).is_valid:
            return ServiceResult.fail(ErrorCode.INVALID_EMAIL, "Invalid email format.")

        try:
            user = self._user_repo.get_by_email(email)
        except sqlite3.Error as exc:
            return self._server_error("login", exc)

        if user is None or not verify_password(password, user.password_hash):
            self._logger.warning("Failed login attempt for %s.", email.strip())
            return ServiceResult.fail(
                ErrorCode.INVALID_CREDENTIALS, "Invalid email or password.",
            )
        if not user.is_active:
            return ServiceResult.fail(
                ErrorCode.ACCOUNT_DEACTIVATED,
                "Your account has been deactivated. Contact your administrator.",
            )

        token, expires_at = self._tokens.issue(user)
        log_audit_event(
            logger=self._logger,
            action="LOGIN",
            entity_type="User",
            entity_id=user.id,
            user_id=user.id,
            db=self._db,
        )
        return ServiceResult.ok(
            LoginResult(user=user.to_public(), access_token=token, expires_at=expires_at)
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, actor: Actor, data: Mapping[str, object]) -> ServiceResult:
        """Create an account on behalf of an admin.

        Expected keys: ``email``, ``password``, ``first_name``,
        ``last_name`` and optionally ``role`` (defaults to ``user``).
        """
        if not authorization.can_manage_users(actor):
            return ServiceResult.fail(ErrorCode.FORBIDDEN, "Only admins can register users.")

        missing = first_missing(data, _REGISTER_FIELDS)
        if missing is not None:
            return ServiceResult.fail(
                ErrorCode.MISSING_FIELDS,
                "Email, password, first name and last name are required.",
            )

        email = str(data["email"]).strip()
        password = str(data["password"])
        if not validate_email(email).is_valid:
            return ServiceResult.fail(ErrorCode.INVALID_EMAIL, "Invalid email format.")

        password_check = validate_password(password)
        if not password_check.is_valid:
            return ServiceResult.fail(
                ErrorCode.WEAK_PASSWORD, password_check.error_message or "Weak password.",
            )

        role = UserRole.USER
        if not is_blank(data.get("role")):
            parsed = parse_role(data.get("role"))
            if parsed is None:
                return ServiceResult.fail(
                    ErrorCode.INVALID_ROLE, "Role must be one of: user, approver, admin.",
                )
            role = parsed

        try:
            if self._user_repo.email_exists(email):
                return ServiceResult.fail(ErrorCode.EMAIL_EXISTS, "Email is already registered.")

            new_user = UserCreate(
                email=email,
                password_hash=hash_password(password, self._config.PASSWORD_HASH_ITERATIONS),
                first_name=str(data["first_name"]).strip(),
                last_name=str(data["last_name"]).strip(),
                role=role,
            )
            try:
                with self._db.batch_write():
                    user = self._user_repo.create(new_user)
                    log_audit_event(
                        logger=self._logger,
                        action="REGISTER",
                        entity_type="User",
                        entity_id=user.id,
                        user_id=actor.id,
                        details={"role": str(role)},
                        db=self._db,
                    )
            except sqlite3.IntegrityError:
                return ServiceResult.fail(ErrorCode.EMAIL_EXISTS, "Email is already registered.")
            return ServiceResult.ok(user.to_public(), status_code=201)
        except sqlite3.Error as exc:
            return self._server_error("user registration", exc)

    # ------------------------------------------------------------------
    # Session helpers
    # ------------------------------------------------------------------

    def get_current_user(self, actor: Actor) -> ServiceResult:
        """The account behind *actor*, re-read from the store."""
        try:
            user = self._user_repo.get_by_id(actor.id)
        except sqlite3.Error as exc:
            return self._server_error("current user lookup", exc)
        if user is None:
            return ServiceResult.fail(ErrorCode.USER_NOT_FOUND, "User not found.")
        if not user.is_active:
            return ServiceResult.fail(
                ErrorCode.ACCOUNT_DEACTIVATED, "Your account has been deactivated.",
            )
        return ServiceResult.ok(user.to_public())

    def ensure_default_admin(self) -> User:
        """Create the bootstrap admin account if it does not exist yet.

        Idempotent; returns the existing or newly created account.
        """
        email = self._config.DEFAULT_ADMIN_EMAIL
        existing = self._user_repo.get_by_email(email)
        if existing is not None:
            return existing

        seed = UserCreate(
            email=email,
            password_hash=hash_password(
                self._config.DEFAULT_ADMIN_PASSWORD.get_secret_value(),
                self._config.PASSWORD_HASH_ITERATIONS,
            ),
            first_name="System",
            last_name="Administrator",
            role=UserRole.ADMIN,
        )
        with self._db.batch_write():
            admin = self._user_repo.create(seed)
            log_audit_event(
                logger=self._logger,
                action="SEED_ADMIN",
                entity_type="User",
                entity_id=admin.id,
                user_id="system",
                db=self._db,
            )
        self._logger.warning(
            "Created default admin account %s. Change its password after first login.",
            email,
        )
        return admin
