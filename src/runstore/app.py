"""
Application lifecycle for runstore.

RunStoreApp wires the pieces together in startup order:
    1. Open the database file behind a ConnectionGuard
    2. Read the schema version and apply pending migrations
    3. Expose the RunStore, the watch registry and the command router

A store that fails to migrate is never exposed: the constructor closes the
connection and re-raises. close() tears down watches, then the database.
"""

import logging
from pathlib import Path
from typing import Any

from runstore.commands import CommandRouter
from runstore.config import StoreConfig
from runstore.store import (
    ConnectionGuard,
    MigrationEngine,
    RunStore,
    SchemaVersionStore,
    open_connection,
)
from runstore.watch import EventChannel, WatchRegistry

logger = logging.getLogger(__name__)


class RunStoreApp:
    """
    Owns the store connection and the active watches for one process.

    Usage:
        with RunStoreApp(db_path="runs.db") as app:
            app.store.add_run(run)
            outcome = app.commands.invoke("get_runs", limit=10)

    Attributes:
        db_path: Path to the SQLite file
        store: Record store (available once migrations completed)
        versions: Schema version store
        watches: Registry of active filesystem watches
        commands: Named-command boundary for the GUI layer
        schema_version: Version after startup migrations
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        config: StoreConfig | None = None,
        channel: EventChannel | None = None,
    ) -> None:
        """
        Open and migrate the store.

        Args:
            db_path: Database file; defaults to config.db_path
            config: Settings (defaults to StoreConfig())
            channel: Event channel for file-change notifications

        Raises:
            StorageConnectionError: If the file can't be opened
            MigrationError: If the schema can't be brought up to date
        """
        self.config = config or StoreConfig()
        self.db_path = Path(db_path) if db_path is not None else self.config.db_path
        self._guard = ConnectionGuard(
            open_connection(self.db_path, busy_timeout_ms=self.config.busy_timeout_ms)
        )
        try:
            self.versions = SchemaVersionStore(self._guard)
            self.migrations = MigrationEngine(self._guard)
            current = self.versions.get_version()
            self.schema_version = self.migrations.migrate(current)
        except BaseException:
            self._guard.close()
            raise
        if self.schema_version != current:
            logger.info(
                "Migrated %s from v%d to v%d",
                self.db_path,
                current,
                self.schema_version,
            )

        self.store = RunStore(self._guard)
        self.watches = WatchRegistry(
            channel or EventChannel(),
            poll_interval=self.config.watch_poll_interval,
        )
        self.commands = CommandRouter(self.store, self.watches)

    def close(self) -> None:
        """Stop all watches and close the database connection."""
        self.watches.close_all()
        self._guard.close()

    def __enter__(self) -> "RunStoreApp":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()
