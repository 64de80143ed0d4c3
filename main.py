"""
TravelGate Service Entry Point.

Bootstraps the entire dependency graph via constructor injection,
initialises the SQLite schema, seeds the bootstrap admin account and
starts the notification worker.  Every subsystem is wired here; there
are no module-level globals.

The process then idles until SIGINT / SIGTERM, so an API layer embedded
in the same interpreter can use the returned services.

Usage::

    python main.py
"""

from __future__ import annotations

import atexit
import signal
import sys
import threading
from pathlib import Path
from types import FrameType
from typing import Optional

from travelgate.config import AppConfig, get_config
from travelgate.database import DatabaseManager
from travelgate.logger import StructuredLogger, get_logger
from travelgate.schema import initialize_schema
from travelgate.services import ServiceContainer, create_services


def bootstrap(config: AppConfig) -> tuple[DatabaseManager, ServiceContainer]:
    """Open the database, apply the schema and wire the services."""
    # ------------------------------------------------------------------
    # 1. Database Manager
    # ------------------------------------------------------------------
    db = DatabaseManager(
        sqlite_path=Path(config.DATABASE_PATH),
        logger=get_logger("database", config=config),
    )

    # Safe to call twice; the shutdown path below is the primary one.
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 2. Schema Initialization (idempotent)
    # ------------------------------------------------------------------
    initialize_schema(db.sqlite, get_logger("schema", config=config))

    # ------------------------------------------------------------------
    # 3. Service Container (single composition root)
    # ------------------------------------------------------------------
    services = create_services(db=db, config=config, logger=get_logger("services", config=config))

    # ------------------------------------------------------------------
    # 4. Bootstrap admin account
    # ------------------------------------------------------------------
    services["auth_service"].ensure_default_admin()
    return db, services


def main() -> None:
    """Service entry point: wire dependencies and run until signalled."""
    config = get_config()
    logger: StructuredLogger = get_logger("main", config=config)
    logger.info("Starting TravelGate...")

    db, services = bootstrap(config)
    dispatcher = services["notification_dispatcher"]
    dispatcher.start()

    stop_requested = threading.Event()

    def _request_stop(signum: int, _frame: Optional[FrameType]) -> None:
        logger.info("Received signal %s, shutting down.", signum)
        stop_requested.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    logger.info("TravelGate ready (database: %s).", config.DATABASE_PATH)
    try:
        stop_requested.wait()
    finally:
        # Drains queued notifications before the connection goes away.
        dispatcher.stop()
        db.close()
        logger.info("TravelGate shut down.")


if __name__ == "__main__":
    try:
        main()
    except PermissionError as exc:
        sys.stderr.write(f"FATAL: {exc}\n")
        sys.exit(1)
