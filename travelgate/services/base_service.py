"""
Base Service Class.

Minimal base class standardizing the logger pattern for all services.
Services extend this and add their own repository dependencies via __init__.
"""

from __future__ import annotations

from travelgate.logger import StructuredLogger
from travelgate.models.service_models import ErrorCode, ServiceResult


class BaseService:
    """Base class for all service classes. Provides a logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger

    def _server_error(self, operation: str, exc: Exception) -> ServiceResult:
        """Log *exc* with traceback and wrap it as a ``SERVER_ERROR`` result."""
        self._logger.error(
            "Error during %s: %s", operation, str(exc), exc_info=True,
        )
        return ServiceResult.fail(ErrorCode.SERVER_ERROR, f"Database error: {exc}")
