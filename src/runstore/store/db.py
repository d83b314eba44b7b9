"""
SQLite record store for runs and run logs.

This module provides the typed CRUD and query operations the GUI layer calls.
All history lives in a single SQLite file that the migration engine has
already brought up to date.

Design Principles:
    - Insert-once runs: a run row is written when the agent finishes, never updated
    - Referential integrity: logs are only accepted for runs that exist,
      checked in the same transaction as the insert
    - Cascade: deleting a run deletes its logs in one transaction
    - Short critical sections: each operation holds the connection guard for
      one statement group only

Tables:
    - runs_v2: one row per run, keyed by id
    - run_logs: log lines, keyed by a store-assigned integer id
"""

import logging
import sqlite3
from typing import Any

from runstore.errors import (
    DuplicateKeyError,
    ReferentialViolationError,
    StorageReadError,
    StorageWriteError,
)
from runstore.schema import LogType, Run, RunLog
from runstore.store.guard import DB_ERRORS, ConnectionGuard

logger = logging.getLogger(__name__)

RUN_COLUMNS = (
    "id, session_id, timestamp, agent, model, input, output, tools_used, exit_status"
)


def _row_to_run(row: sqlite3.Row) -> Run:
    return Run(
        id=row["id"],
        session_id=row["session_id"] or "",
        timestamp=row["timestamp"],
        agent=row["agent"],
        model=row["model"] or "",
        input=row["input"],
        output=row["output"],
        tools_used=row["tools_used"] if row["tools_used"] is not None else "[]",
        exit_status=row["exit_status"] if row["exit_status"] is not None else 0,
    )


def _row_to_log(row: sqlite3.Row) -> RunLog:
    try:
        log_type = LogType(row["log_type"])
    except ValueError:
        # Other writers may store arbitrary tags; keep the line readable.
        logger.warning(
            "Log %s of run %s has unknown type %r, reading as info",
            row["id"],
            row["run_id"],
            row["log_type"],
        )
        log_type = LogType.INFO
    return RunLog(
        id=row["id"],
        run_id=row["run_id"],
        log_line=row["log_line"],
        log_type=log_type,
        timestamp=row["timestamp"],
    )


class RunStore:
    """
    Typed access to runs and their logs.

    The store expects a migrated database; use RunStoreApp (or
    MigrationEngine directly) before handing it out.

    Usage:
        store = RunStore(guard)
        store.add_run(run)
        log_id = store.add_run_log(RunLog(run_id=run.id, log_line="started"))
        for log in store.get_run_logs(run.id):
            ...
    """

    def __init__(self, guard: ConnectionGuard) -> None:
        self._guard = guard

    # =========================================================================
    # Run Operations
    # =========================================================================

    def add_run(self, run: Run) -> None:
        """
        Insert a new run.

        Raises:
            DuplicateKeyError: If a run with the same id exists (row unchanged)
            StorageWriteError: On any other database failure
        """
        try:
            with self._guard.locked() as conn:
                conn.execute(
                    f"INSERT INTO runs_v2 ({RUN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        run.id,
                        run.session_id,
                        run.timestamp,
                        run.agent,
                        run.model,
                        run.input,
                        run.output,
                        run.tools_used,
                        run.exit_status,
                    ),
                )
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e) or "PRIMARY KEY" in str(e):
                raise DuplicateKeyError(operation="add_run", key=run.id) from e
            raise StorageWriteError(operation="add_run", underlying_error=str(e)) from e
        except DB_ERRORS as e:
            raise StorageWriteError(operation="add_run", underlying_error=str(e)) from e
        logger.debug("Recorded run %s (session=%r)", run.id, run.session_id)

    def get_runs(self, limit: int) -> list[Run]:
        """
        List the most recent runs.

        Args:
            limit: Maximum number of runs; zero or negative returns []

        Returns:
            Runs ordered by timestamp, newest first
        """
        if limit <= 0:
            return []
        try:
            with self._guard.locked() as conn:
                rows = conn.execute(
                    f"SELECT {RUN_COLUMNS} FROM runs_v2 ORDER BY timestamp DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        except DB_ERRORS as e:
            raise StorageReadError(operation="get_runs", underlying_error=str(e)) from e
        return [_row_to_run(row) for row in rows]

    def get_run_by_id(self, run_id: str) -> Run | None:
        """Get a run by id, or None if it doesn't exist."""
        try:
            with self._guard.locked() as conn:
                row = conn.execute(
                    f"SELECT {RUN_COLUMNS} FROM runs_v2 WHERE id = ?",
                    (run_id,),
                ).fetchone()
        except DB_ERRORS as e:
            raise StorageReadError(operation="get_run_by_id", underlying_error=str(e)) from e
        if row is None:
            return None
        return _row_to_run(row)

    def get_runs_by_session(self, session_id: str) -> list[Run]:
        """
        All runs of a session in conversation order.

        Returns:
            Runs ordered by timestamp, oldest first
        """
        try:
            with self._guard.locked() as conn:
                rows = conn.execute(
                    f"SELECT {RUN_COLUMNS} FROM runs_v2 "
                    "WHERE session_id = ? ORDER BY timestamp ASC",
                    (session_id,),
                ).fetchall()
        except DB_ERRORS as e:
            raise StorageReadError(
                operation="get_runs_by_session",
                underlying_error=str(e),
            ) from e
        return [_row_to_run(row) for row in rows]

    def delete_run(self, run_id: str) -> int:
        """
        Delete a run and all of its logs.

        Deleting an id that doesn't exist is not an error.

        Returns:
            Number of run rows removed (0 or 1)
        """
        try:
            with self._guard.transaction() as conn:
                conn.execute("DELETE FROM run_logs WHERE run_id = ?", (run_id,))
                cursor = conn.execute("DELETE FROM runs_v2 WHERE id = ?", (run_id,))
                deleted = cursor.rowcount
        except DB_ERRORS as e:
            raise StorageWriteError(operation="delete_run", underlying_error=str(e)) from e
        if deleted:
            logger.info("Deleted run %s", run_id)
        return deleted

    def count_runs(self) -> int:
        """Total number of recorded runs."""
        try:
            with self._guard.locked() as conn:
                row = conn.execute("SELECT COUNT(*) AS n FROM runs_v2").fetchone()
        except DB_ERRORS as e:
            raise StorageReadError(operation="count_runs", underlying_error=str(e)) from e
        return int(row["n"])

    def list_sessions(self, limit: int = 100) -> list[dict[str, Any]]:
        """
        Summarize non-empty sessions, most recently active first.

        Returns:
            Dicts with session_id, run_count, first_timestamp, last_timestamp
        """
        if limit <= 0:
            return []
        try:
            with self._guard.locked() as conn:
                rows = conn.execute(
                    """
                    SELECT session_id,
                           COUNT(*) AS run_count,
                           MIN(timestamp) AS first_timestamp,
                           MAX(timestamp) AS last_timestamp
                    FROM runs_v2
                    WHERE session_id != ''
                    GROUP BY session_id
                    ORDER BY last_timestamp DESC
                    LIMIT ?
                    """,
                    (limit,),
                ).fetchall()
        except DB_ERRORS as e:
            raise StorageReadError(operation="list_sessions", underlying_error=str(e)) from e
        return [dict(row) for row in rows]

    # =========================================================================
    # Run Log Operations
    # =========================================================================

    def add_run_log(self, log: RunLog) -> int:
        """
        Append a log line to an existing run.

        Any id on the incoming log is ignored; the store assigns one.

        Returns:
            The assigned log id

        Raises:
            ReferentialViolationError: If log.run_id doesn't name a recorded run
            StorageWriteError: On any other database failure
        """
        try:
            with self._guard.transaction() as conn:
                owner = conn.execute(
                    "SELECT 1 FROM runs_v2 WHERE id = ?",
                    (log.run_id,),
                ).fetchone()
                if owner is None:
                    raise ReferentialViolationError(
                        operation="add_run_log",
                        run_id=log.run_id,
                    )
                cursor = conn.execute(
                    """
                    INSERT INTO run_logs (run_id, log_line, log_type, timestamp)
                    VALUES (?, ?, ?, ?)
                    """,
                    (log.run_id, log.log_line, log.log_type.value, log.timestamp),
                )
                log_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            if "FOREIGN KEY" in str(e):
                raise ReferentialViolationError(
                    operation="add_run_log",
                    run_id=log.run_id,
                ) from e
            raise StorageWriteError(operation="add_run_log", underlying_error=str(e)) from e
        except DB_ERRORS as e:
            raise StorageWriteError(operation="add_run_log", underlying_error=str(e)) from e
        return int(log_id)

    def get_run_logs(self, run_id: str) -> list[RunLog]:
        """
        All log lines of a run, oldest first.

        Logs whose run no longer exists are never returned.
        """
        try:
            with self._guard.locked() as conn:
                rows = conn.execute(
                    """
                    SELECT l.id, l.run_id, l.log_line, l.log_type, l.timestamp
                    FROM run_logs l
                    JOIN runs_v2 r ON r.id = l.run_id
                    WHERE l.run_id = ?
                    ORDER BY l.timestamp ASC, l.id ASC
                    """,
                    (run_id,),
                ).fetchall()
        except DB_ERRORS as e:
            raise StorageReadError(operation="get_run_logs", underlying_error=str(e)) from e
        return [_row_to_log(row) for row in rows]

    def prune_orphan_logs(self) -> int:
        """
        Delete logs whose run was removed out-of-band.

        Returns:
            Number of log rows removed
        """
        try:
            with self._guard.transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM run_logs WHERE run_id NOT IN (SELECT id FROM runs_v2)"
                )
                removed = cursor.rowcount
        except DB_ERRORS as e:
            raise StorageWriteError(
                operation="prune_orphan_logs",
                underlying_error=str(e),
            ) from e
        if removed:
            logger.info("Pruned %d orphaned log lines", removed)
        return removed

    # =========================================================================
    # Utility Operations
    # =========================================================================

    def get_run_summary(self, run_id: str) -> dict[str, Any] | None:
        """
        Get a run together with its log lines.

        Returns:
            Dictionary with run fields, decoded tools and logs, or None
        """
        run = self.get_run_by_id(run_id)
        if run is None:
            return None
        logs = self.get_run_logs(run_id)
        summary = run.model_dump()
        summary["tools"] = run.tools
        summary["logs"] = [log.model_dump(mode="json") for log in logs]
        return summary
