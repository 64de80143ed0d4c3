"""
JSON Logging.

Every TravelGate component logs through a :class:`StructuredLogger`, a
``logging.LoggerAdapter`` whose handlers emit one JSON object per line.
Handlers are attached the first time a logger name is seen and are
configured from :class:`~travelgate.config.AppConfig`: stdout always, and
a size-rotated file when ``LOG_FILE`` is non-empty.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, TextIO

if TYPE_CHECKING:
    from travelgate.config import AppConfig

# Attributes of a bare LogRecord; anything else on a record came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
}


class JSONFormatter(logging.Formatter):
    """Render a record as ``{"timestamp", "level", "logger_name", "message"}``.

    Caller-supplied ``extra`` fields are stringified under ``"extra"`` and a
    traceback, if any, goes under ``"exception"``.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, object] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra = {k: str(v) for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False)


def _rotating_file(path: str, config: AppConfig) -> RotatingFileHandler:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        target,
        maxBytes=config.LOG_MAX_BYTES,
        backupCount=config.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )


class StructuredLogger(logging.LoggerAdapter):
    """Injectable JSON logger.

    Build one per component and hand it to the objects that log.  The
    usual ``debug``/``info``/``warning``/``error``/``exception`` methods come
    from :class:`logging.LoggerAdapter`; the wrapped ``logging.Logger`` is
    ``.logger``.
    """

    def __init__(
        self,
        name: str = "travelgate",
        config: Optional[AppConfig] = None,
        stream: Optional[TextIO] = None,
    ) -> None:
        if config is None:
            # Imported here: the config module logs through plain logging.
            from travelgate.config import get_config
            config = get_config()

        super().__init__(logging.getLogger(name), {})
        self.logger.setLevel(config.log_level_value)
        if not self.logger.handlers:
            self._attach_handlers(config, stream)

    def _attach_handlers(self, config: AppConfig, stream: Optional[TextIO]) -> None:
        handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
        file_error: Optional[OSError] = None
        if config.LOG_FILE:
            try:
                handlers.append(_rotating_file(config.LOG_FILE, config))
            except OSError as exc:
                file_error = exc

        formatter = JSONFormatter()
        for handler in handlers:
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

        if file_error is not None:
            self.warning(
                "Log file %s unavailable (%s); logging to the console only.",
                config.LOG_FILE,
                file_error,
            )

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        # Pass the caller's ``extra`` through untouched.
        return msg, kwargs


def get_logger(name: str = "travelgate", config: Optional[AppConfig] = None) -> StructuredLogger:
    """Return the JSON logger for component *name*."""
    return StructuredLogger(name=name, config=config)
