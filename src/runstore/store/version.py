"""
Persisted schema version marker.

The version lives in its own key/value table so it can be read and written
before any domain table exists. A store without the table, or without the
"version" key, is a fresh store at version 0.
"""

import logging
import sqlite3

from runstore.errors import StorageReadError, StorageWriteError
from runstore.store.guard import DB_ERRORS, ConnectionGuard

logger = logging.getLogger(__name__)

VERSION_KEY = "version"

CREATE_VERSION_TABLE_SQL = (
    "CREATE TABLE IF NOT EXISTS schema_version (key TEXT PRIMARY KEY, value INTEGER)"
)


def read_version(conn: sqlite3.Connection) -> int:
    """Read the version using an already-held connection."""
    try:
        exists = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'schema_version'"
        ).fetchone()
        if exists is None:
            return 0
        row = conn.execute(
            "SELECT value FROM schema_version WHERE key = ?",
            (VERSION_KEY,),
        ).fetchone()
    except DB_ERRORS as e:
        raise StorageReadError(
            operation="get_version",
            underlying_error=str(e),
        ) from e
    if row is None or row["value"] is None:
        return 0
    return int(row["value"])


def write_version(conn: sqlite3.Connection, version: int) -> None:
    """Write the version using an already-held connection."""
    try:
        conn.execute(CREATE_VERSION_TABLE_SQL)
        conn.execute(
            "INSERT OR REPLACE INTO schema_version (key, value) VALUES (?, ?)",
            (VERSION_KEY, version),
        )
    except DB_ERRORS as e:
        raise StorageWriteError(
            operation="set_version",
            underlying_error=str(e),
        ) from e


class SchemaVersionStore:
    """
    Reads and writes the persisted schema version.

    Usage:
        versions = SchemaVersionStore(guard)
        if versions.get_version() < 2:
            ...
        versions.set_version(2)
    """

    def __init__(self, guard: ConnectionGuard) -> None:
        self._guard = guard

    def get_version(self) -> int:
        """Return the recorded version, or 0 for a fresh store."""
        with self._guard.locked() as conn:
            return read_version(conn)

    def set_version(self, version: int) -> None:
        """Persist version, overwriting any prior value."""
        with self._guard.locked() as conn:
            write_version(conn, version)
        logger.debug("Schema version set to %d", version)
