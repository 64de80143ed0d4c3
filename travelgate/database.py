"""
Database Connection Manager.

Owns the single SQLite connection shared by every repository.  This module
only manages the raw *connection* and its lifecycle; it contains no query
logic.  Data access is performed through the Repository pattern.

Concurrency
-----------
The connection is opened with ``check_same_thread=False`` so the request
handling thread and the notification worker can share it.  Every
statement, read or write, runs under :pyattr:`DatabaseManager.lock` (an
``RLock``).  A conditional ``UPDATE ... WHERE id = ? AND status = ?``
followed by its read-back therefore executes atomically with respect to
any other caller, which is what makes state transitions race-safe.

Usage (dependency injection at startup)::

    from travelgate.database import DatabaseManager
    from travelgate.logger import StructuredLogger

    db = DatabaseManager(
        sqlite_path=Path(config.DATABASE_PATH),
        logger=StructuredLogger(name="database"),
    )
    # Inject `db` into repositories that need it, then db.close() at exit.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from travelgate.logger import StructuredLogger


class DatabaseManager:
    """Manages the connection to the SQLite database.

    Fully configured at construction time; call :meth:`close` when done.

    Parameters
    ----------
    sqlite_path:
        Filesystem path for the SQLite database file.  ``":memory:"`` is
        accepted for throwaway databases.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    """

    def __init__(self, sqlite_path: Path | str, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
        self._lock: threading.RLock = threading.RLock()
        self._in_batch: bool = False
        self._closed: bool = False
        self._sqlite_conn: Optional[sqlite3.Connection] = self._connect_sqlite(sqlite_path)

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Return the open SQLite connection.

        Raises
        ------
        RuntimeError
            If :meth:`close` has already been called.
        """
        if self._closed or self._sqlite_conn is None:
            raise RuntimeError("Database connection is closed.")
        return self._sqlite_conn

    @property
    def lock(self) -> threading.RLock:
        """Return the lock serialising access to the shared connection.

        Any code issuing statements outside a repository must hold it::

            with db.lock:
                db.sqlite.execute("INSERT ...")
                db.sqlite.commit()
        """
        return self._lock

    @property
    def in_batch(self) -> bool:
        """``True`` when a :meth:`batch_write` context is active.

        Repository code checks this flag before issuing ``commit()`` so
        that several writes can share one transaction.
        """
        return self._in_batch

    @contextmanager
    def batch_write(self) -> Generator[None, None, None]:
        """Hold the lock and defer commits until the block exits.

        On normal exit a single ``commit()`` is issued.  On exception the
        transaction is rolled back and the error re-raised.

        Example::

            with db.batch_write():
                repo.create(...)
                repo.create(...)
            # single commit happens here
        """
        with self._lock:
            if self._in_batch:
                # Re-entrant: the outer block owns the commit.
                yield
                return

            self._in_batch = True
            try:
                yield
                self.sqlite.commit()
                self._logger.debug("Batch write committed.")
            except Exception:
                self.sqlite.rollback()
                self._logger.error(
                    "Batch write rolled back due to exception.", exc_info=True,
                )
                raise
            finally:
                self._in_batch = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the SQLite connection.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        with self._lock:
            if self._closed or self._sqlite_conn is None:
                return
            try:
                self._sqlite_conn.close()
                self._logger.info("SQLite connection closed.")
            except sqlite3.ProgrammingError:
                pass
            finally:
                self._closed = True
                self._sqlite_conn = None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _connect_sqlite(self, path: Path | str) -> sqlite3.Connection:
        """Open (or create) a SQLite database.

        Returns a connection with ``row_factory`` set to ``sqlite3.Row``,
        WAL journaling and foreign-key enforcement enabled.

        Raises
        ------
        PermissionError
            If the OS denies access to the database file or its directory.
        """
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA foreign_keys = ON;")
            self._logger.info("SQLite database opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the database at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process."
            )
            self._logger.error(msg)
            raise PermissionError(msg) from exc
