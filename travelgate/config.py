"""
Application Configuration.

Pydantic Settings model for the TravelGate service.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import ClassVar, Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # Used only when JWT_SECRET is not provided; triggers a startup warning.
    FALLBACK_JWT_SECRET: ClassVar[str] = "travelgate-dev-secret-change-me"

    # --- Storage ---
    DATABASE_PATH: str = "travelgate.db"

    # --- Authentication ---
    JWT_SECRET: SecretStr = SecretStr("")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 30
    PASSWORD_HASH_ITERATIONS: int = 600_000

    # --- Email / SMTP ---
    MAIL_SERVER: str = "smtp.gmail.com"
    MAIL_PORT: int = 587
    MAIL_USE_SSL: bool = False
    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: SecretStr = SecretStr("")
    MAIL_FROM_NAME: str = "Travel Request System"
    MAIL_TIMEOUT_S: float = 10.0
    CLIENT_URL: str = "http://localhost:5173"

    # --- Bootstrap account ---
    DEFAULT_ADMIN_EMAIL: str = "admin@company.com"
    DEFAULT_ADMIN_PASSWORD: SecretStr = SecretStr("Admin@123")

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "travelgate.log"  # empty string disables the file handler
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit startup warnings when critical configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so operators get a log line for each placeholder still in use.
        """
        _log = logging.getLogger("travelgate.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.JWT_SECRET.get_secret_value():
            _log.warning(
                "JWT_SECRET is empty; tokens are signed with the built-in "
                "development secret. Set JWT_SECRET in production."
            )

        if not self.MAIL_USERNAME:
            _log.warning(
                "MAIL_USERNAME is empty; email notifications will be "
                "recorded as failed."
            )

        return self

    @property
    def jwt_signing_key(self) -> str:
        """Secret used to sign and verify access tokens."""
        return self.JWT_SECRET.get_secret_value() or self.FALLBACK_JWT_SECRET

    @property
    def log_level_value(self) -> int:
        """Numeric ``logging`` level for :attr:`LOG_LEVEL` (INFO when unknown)."""
        level = logging.getLevelName(self.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO

    # --- Email Validation ---
    def validate_email_config(self) -> None:
        """Validate that email configuration is complete.

        Raises:
            ValueError: If required email settings are missing.
        """
        if not self.MAIL_USERNAME or not self.MAIL_PASSWORD.get_secret_value():
            raise ValueError("MAIL_USERNAME and MAIL_PASSWORD must be set")
        if not self.MAIL_SERVER:
            raise ValueError("MAIL_SERVER must be set")


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path takes no lock while
    first initialisation stays thread-safe.  Prefer constructor injection
    of ``AppConfig``; the factory serves the entry point and the logger.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance


def reset_config() -> None:
    """Drop the cached singleton so the next ``get_config()`` re-reads the environment."""
    global _config_instance
    with _config_lock:
        _config_instance = None
