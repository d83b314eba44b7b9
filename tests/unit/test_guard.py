"""
Unit tests for the connection guard.

Tests cover:
- Connection opening and parent directory creation
- Explicit transactions (commit and rollback)
- Poisoning after an unexpected failure
- Use after close
"""

import sqlite3
from pathlib import Path

import pytest

from runstore.errors import LockError, StorageConnectionError
from runstore.store import ConnectionGuard, open_connection


class TestOpenConnection:
    """Tests for open_connection."""

    def test_creates_parent_directories(self, temp_dir: Path) -> None:
        """Missing parent directories are created."""
        path = temp_dir / "nested" / "deeper" / "runs.db"
        conn = open_connection(path)
        conn.close()

        assert path.exists()

    def test_foreign_keys_enabled(self, temp_dir: Path) -> None:
        """Foreign keys are enforced on every connection."""
        conn = open_connection(temp_dir / "runs.db")
        try:
            assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        finally:
            conn.close()

    def test_in_memory(self) -> None:
        """In-memory databases are supported."""
        conn = open_connection(":memory:")
        conn.close()

    def test_unopenable_path(self, temp_dir: Path) -> None:
        """A directory can't be opened as a database."""
        blocker = temp_dir / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StorageConnectionError):
            open_connection(blocker / "runs.db")


class TestConnectionGuard:
    """Tests for locking, transactions and poisoning."""

    def test_transaction_commits(self, guard: ConnectionGuard) -> None:
        """Statements in a completed transaction persist."""
        with guard.locked() as conn:
            conn.execute("CREATE TABLE t (x INTEGER)")
        with guard.transaction() as conn:
            conn.execute("INSERT INTO t VALUES (1)")
            conn.execute("INSERT INTO t VALUES (2)")

        with guard.locked() as conn:
            assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 2

    def test_transaction_rolls_back_on_sqlite_error(self, guard: ConnectionGuard) -> None:
        """A failing statement undoes the whole group and doesn't poison."""
        with guard.locked() as conn:
            conn.execute("CREATE TABLE t (x INTEGER PRIMARY KEY)")

        with pytest.raises(sqlite3.IntegrityError):
            with guard.transaction() as conn:
                conn.execute("INSERT INTO t VALUES (1)")
                conn.execute("INSERT INTO t VALUES (1)")

        assert not guard.poisoned
        with guard.locked() as conn:
            assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0

    def test_unexpected_error_poisons(self, guard: ConnectionGuard) -> None:
        """A holder dying with a non-database error poisons the guard."""
        with pytest.raises(RuntimeError):
            with guard.locked():
                raise RuntimeError("worker crashed")

        assert guard.poisoned
        with pytest.raises(LockError) as exc_info:
            with guard.locked():
                pass
        assert "RuntimeError" in exc_info.value.reason

    def test_binding_error_does_not_poison(self, guard: ConnectionGuard) -> None:
        """Parameters the driver can't bind fail before any statement runs."""
        with pytest.raises(OverflowError):
            with guard.locked() as conn:
                conn.execute("SELECT ?", (2**70,))
        with pytest.raises(UnicodeEncodeError):
            with guard.locked() as conn:
                conn.execute("SELECT ?", ("\ud800",))

        assert not guard.poisoned
        with guard.locked() as conn:
            assert conn.execute("SELECT 1").fetchone()[0] == 1

    def test_closed_guard_refuses(self, guard: ConnectionGuard) -> None:
        """Acquiring after close fails cleanly."""
        guard.close()

        assert guard.closed
        with pytest.raises(LockError):
            with guard.locked():
                pass

    def test_close_is_idempotent(self, guard: ConnectionGuard) -> None:
        guard.close()
        guard.close()
