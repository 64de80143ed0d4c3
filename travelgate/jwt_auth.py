"""
Access Token Service.

Issues and verifies signed JWT access tokens (PyJWT).  A verified token
yields the :class:`~travelgate.auth.Actor` that every service call
receives; nothing downstream parses tokens itself.

Usage::

    tokens = TokenService(config)
    token, expires_at = tokens.issue(user)
    actor = tokens.verify(TokenService.extract_bearer(header))
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import ValidationError

from travelgate.auth import Actor
from travelgate.config import AppConfig
from travelgate.models.auth_models import TokenClaims
from travelgate.models.service_models import ErrorCode
from travelgate.models.user import User


class AuthenticationError(RuntimeError):
    """Raised when a token is missing, malformed, tampered with or expired."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_TOKEN) -> None:
        super().__init__(message)
        self.code = code


class TokenService:
    """Signs and verifies access tokens with the configured HMAC secret."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    def issue(self, user: User) -> tuple[str, datetime]:
        """Return a signed token for *user* and its expiry time."""
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + timedelta(minutes=self._config.JWT_EXPIRE_MINUTES)
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": str(user.role),
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(
            payload,
            self._config.jwt_signing_key,
            algorithm=self._config.JWT_ALGORITHM,
        )
        return token, expires_at

    def decode(self, token: str) -> TokenClaims:
        """Verify signature and expiry and return the typed claims.

        Raises:
            AuthenticationError: ``TOKEN_EXPIRED`` or ``INVALID_TOKEN``.
        """
        try:
            payload = jwt.decode(
                token,
                self._config.jwt_signing_key,
                algorithms=[self._config.JWT_ALGORITHM],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token expired.", ErrorCode.TOKEN_EXPIRED) from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid token.") from exc

        try:
            return TokenClaims.model_validate(payload)
        except ValidationError as exc:
            raise AuthenticationError("Invalid token claims.") from exc

    def verify(self, token: str) -> Actor:
        """Return the actor a valid token speaks for."""
        claims = self.decode(token)
        return Actor(id=claims.sub, role=claims.role)

    @staticmethod
    def extract_bearer(header: Optional[str]) -> str:
        """Pull the token out of an ``Authorization: Bearer <token>`` header.

        Raises:
            AuthenticationError: If the header is absent or not a bearer header.
        """
        if not header or not header.startswith("Bearer "):
            raise AuthenticationError("Authentication required.")
        token = header.split(" ", 1)[1].strip()
        if not token:
            raise AuthenticationError("Authentication required.")
        return token
