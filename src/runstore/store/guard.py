"""
Lock-guarded ownership of the shared SQLite connection.

Every store operation borrows the connection through ConnectionGuard.locked()
for one statement group, then releases it. The guard is injected into the
stores that need it instead of living as module-level state.

A holder that dies with an unexpected exception may leave a transaction
half-applied, so the guard is poisoned and refuses further use. SQLite errors,
parameter binding errors and runstore errors are expected outcomes and don't
poison the guard.
"""

import logging
import sqlite3
import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from runstore.errors import LockError, RunStoreError, StorageConnectionError

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_MS = 5000

# Raised by the driver while binding parameters, before any statement runs.
BINDING_ERRORS = (OverflowError, UnicodeEncodeError)

# Failures a holder may raise without leaving the connection in doubt.
DB_ERRORS = (sqlite3.Error,) + BINDING_ERRORS


def open_connection(
    db_path: str | Path,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> sqlite3.Connection:
    """
    Open the store file, creating parent directories as needed.

    The connection runs in autocommit mode; transactions are explicit
    (see ConnectionGuard.transaction).

    Raises:
        StorageConnectionError: If the file can't be opened
    """
    path = str(db_path)
    try:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            path,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    except (sqlite3.Error, OSError) as e:
        raise StorageConnectionError(
            db_path=path,
            operation="connect",
            message=f"Failed to connect to database {path}: {e}",
        ) from e
    logger.debug("Opened database %s", path)
    return conn


class ConnectionGuard:
    """
    Mutual-exclusion wrapper around a single sqlite3 connection.

    Usage:
        guard = ConnectionGuard(open_connection("runs.db"))
        with guard.locked() as conn:
            conn.execute(...)
        with guard.transaction() as conn:
            conn.execute(...)
            conn.execute(...)
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn: sqlite3.Connection | None = conn
        self._lock = threading.Lock()
        self._poisoned: str | None = None

    @property
    def poisoned(self) -> bool:
        return self._poisoned is not None

    @property
    def closed(self) -> bool:
        return self._conn is None

    @contextmanager
    def locked(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Hold the lock for the duration of the block.

        Raises:
            LockError: If the guard is poisoned or closed
        """
        with self._lock:
            if self._poisoned is not None:
                raise LockError(reason=f"guard poisoned by {self._poisoned}")
            if self._conn is None:
                raise LockError(reason="database is closed")
            try:
                yield self._conn
            except (*DB_ERRORS, RunStoreError):
                raise
            except BaseException as e:
                self._poisoned = type(e).__name__
                logger.error("Connection guard poisoned by %r", e)
                raise

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Hold the lock and run the block in one BEGIN/COMMIT transaction."""
        with self.locked() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def close(self) -> None:
        """Close the connection; later acquisitions raise LockError."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug("Closed database connection")
