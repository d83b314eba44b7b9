"""
Versioned, additive schema migrations.

Each MigrationStep moves the store from one version to the next. Steps are
applied in ascending order; a step and its version bump commit together, so
an interrupted migration resumes from the last completed version.

Rules for steps:
    - Additive only: tables and columns are never dropped
    - Superseded tables get a new versioned name (runs -> runs_v2) rather than
      changing meaning in place; plain column additions with defaults are fine
    - Every statement is retry-safe: CREATE ... IF NOT EXISTS, and columns are
      only added when missing

Version history:
    v1: legacy runs table (agent_id/agent_name/prompt/status shape)
    v2: runs_v2 (session-aware), run_logs, legacy rows carried into runs_v2
"""

import logging
import sqlite3
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from runstore.errors import MigrationError, RunStoreError
from runstore.store.guard import ConnectionGuard
from runstore.store.version import read_version, write_version

logger = logging.getLogger(__name__)

Statement = str | Callable[[sqlite3.Connection], None]


def add_column(table: str, column: str, definition: str) -> Callable[[sqlite3.Connection], None]:
    """Build a statement that adds a column only when it's missing."""

    def apply(conn: sqlite3.Connection) -> None:
        columns = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}
        if column not in columns:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    apply.__name__ = f"add_column_{table}_{column}"
    return apply


@dataclass(frozen=True)
class MigrationStep:
    """
    One atomic schema transformation.

    Attributes:
        from_version: Version the step applies to
        to_version: Version recorded once the step commits
        name: Short label for logs
        statements: SQL strings or callables run in order
    """

    from_version: int
    to_version: int
    name: str
    statements: tuple[Statement, ...] = field(default_factory=tuple)

    def apply(self, conn: sqlite3.Connection) -> None:
        for statement in self.statements:
            if callable(statement):
                statement(conn)
            else:
                conn.execute(statement)


# =============================================================================
# Step Definitions
# =============================================================================

INITIAL_SCHEMA = MigrationStep(
    from_version=0,
    to_version=1,
    name="initial_schema",
    statements=(
        """
        CREATE TABLE IF NOT EXISTS runs (
            id TEXT PRIMARY KEY,
            timestamp TEXT NOT NULL,
            agent_id TEXT NOT NULL,
            agent_name TEXT NOT NULL,
            prompt TEXT NOT NULL,
            output TEXT,
            status TEXT NOT NULL,
            duration_ms INTEGER
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_runs_timestamp ON runs(timestamp DESC)",
        "CREATE INDEX IF NOT EXISTS idx_runs_agent ON runs(agent_id)",
    ),
)

# Legacy timestamps were TEXT: either numeric epoch ms or an ISO-8601 string.
BACKFILL_RUNS_V2_SQL = """
INSERT OR IGNORE INTO runs_v2 (
    id, session_id, timestamp, agent, model, input, output, tools_used, exit_status
)
SELECT
    id,
    COALESCE(session_id, ''),
    CASE
        WHEN CAST(timestamp AS INTEGER) || '' = timestamp THEN CAST(timestamp AS INTEGER)
        ELSE COALESCE(CAST(strftime('%s', timestamp) AS INTEGER) * 1000, 0)
    END,
    agent_id,
    COALESCE(model, ''),
    prompt,
    output,
    COALESCE(tools_used, '[]'),
    COALESCE(exit_status, 0)
FROM runs
"""

RUN_LOGS_AND_SESSIONS = MigrationStep(
    from_version=1,
    to_version=2,
    name="run_logs_and_sessions",
    statements=(
        add_column("runs", "session_id", "TEXT DEFAULT ''"),
        add_column("runs", "model", "TEXT DEFAULT ''"),
        add_column("runs", "tools_used", "TEXT DEFAULT '[]'"),
        add_column("runs", "exit_status", "INTEGER DEFAULT 0"),
        """
        CREATE TABLE IF NOT EXISTS runs_v2 (
            id TEXT PRIMARY KEY,
            session_id TEXT NOT NULL,
            timestamp INTEGER NOT NULL,
            agent TEXT NOT NULL,
            model TEXT NOT NULL,
            input TEXT NOT NULL,
            output TEXT,
            tools_used TEXT DEFAULT '[]',
            exit_status INTEGER DEFAULT 0
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_runs_v2_timestamp ON runs_v2(timestamp DESC)",
        "CREATE INDEX IF NOT EXISTS idx_runs_v2_session ON runs_v2(session_id)",
        "CREATE INDEX IF NOT EXISTS idx_runs_v2_agent ON runs_v2(agent)",
        """
        CREATE TABLE IF NOT EXISTS run_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            run_id TEXT NOT NULL,
            log_line TEXT NOT NULL,
            log_type TEXT NOT NULL DEFAULT 'info',
            timestamp INTEGER NOT NULL,
            FOREIGN KEY (run_id) REFERENCES runs_v2(id) ON DELETE CASCADE
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_run_logs_run_id ON run_logs(run_id)",
        "CREATE INDEX IF NOT EXISTS idx_run_logs_timestamp ON run_logs(timestamp)",
        BACKFILL_RUNS_V2_SQL,
    ),
)

MIGRATIONS: tuple[MigrationStep, ...] = (
    INITIAL_SCHEMA,
    RUN_LOGS_AND_SESSIONS,
)

CURRENT_VERSION = MIGRATIONS[-1].to_version


# =============================================================================
# Engine
# =============================================================================


class MigrationEngine:
    """
    Applies pending migration steps in ascending order.

    Usage:
        engine = MigrationEngine(guard)
        version = engine.migrate(engine.current_version())
    """

    def __init__(
        self,
        guard: ConnectionGuard,
        steps: Sequence[MigrationStep] = MIGRATIONS,
    ) -> None:
        """
        Initialize the engine.

        Args:
            guard: Guard owning the store connection
            steps: Ordered steps; each must start where the previous ended

        Raises:
            ValueError: If the steps don't form a contiguous chain
        """
        ordered = sorted(steps, key=lambda s: s.from_version)
        expected = 0
        for step in ordered:
            if step.from_version != expected or step.to_version != expected + 1:
                msg = (
                    f"Migration {step.name} must go from v{expected} to "
                    f"v{expected + 1}, got v{step.from_version} -> v{step.to_version}"
                )
                raise ValueError(msg)
            expected = step.to_version
        self._guard = guard
        self._steps = tuple(ordered)

    @property
    def latest_version(self) -> int:
        return self._steps[-1].to_version if self._steps else 0

    def current_version(self) -> int:
        """Read the persisted version."""
        with self._guard.locked() as conn:
            return read_version(conn)

    def pending(self, current: int) -> list[MigrationStep]:
        """Steps that migrate(current) would apply, in order."""
        return [s for s in self._steps if s.from_version >= current]

    def migrate(self, current: int) -> int:
        """
        Bring the schema from version current up to the latest version.

        Each step commits together with its version bump. On failure the
        step is rolled back, the version stays at the last completed step,
        and MigrationError is raised.

        Args:
            current: The persisted version

        Returns:
            The version the store is at afterwards

        Raises:
            MigrationError: If a step fails or the store is from a newer build
        """
        if current > self.latest_version:
            raise MigrationError(
                from_version=current,
                to_version=self.latest_version,
                message=(
                    f"Database schema v{current} is newer than this build "
                    f"supports (v{self.latest_version})"
                ),
                suggestion="Upgrade runstore before opening this database",
            )

        version = current
        for step in self.pending(current):
            logger.info(
                "Applying migration %s (v%d -> v%d)",
                step.name,
                step.from_version,
                step.to_version,
            )
            try:
                with self._guard.transaction() as conn:
                    step.apply(conn)
                    write_version(conn, step.to_version)
            except (sqlite3.Error, RunStoreError) as e:
                logger.error("Migration %s failed: %s", step.name, e)
                raise MigrationError(
                    from_version=step.from_version,
                    to_version=step.to_version,
                    underlying_error=str(e),
                ) from e
            version = step.to_version

        if version == current:
            logger.debug("Schema already at v%d", version)
        return version
