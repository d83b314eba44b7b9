"""
Storage module for runstore.

This module provides SQLite-based persistence for agent runs and their logs.

Components:
    - ConnectionGuard: lock-guarded owner of the shared connection
    - SchemaVersionStore: persisted schema version marker
    - MigrationEngine: ordered, additive, resumable schema migrations
    - RunStore: typed CRUD and queries over runs and run logs
"""

from runstore.store.db import RunStore
from runstore.store.guard import ConnectionGuard, open_connection
from runstore.store.migrations import (
    CURRENT_VERSION,
    MIGRATIONS,
    MigrationEngine,
    MigrationStep,
)
from runstore.store.version import SchemaVersionStore

__all__ = [
    "CURRENT_VERSION",
    "MIGRATIONS",
    "ConnectionGuard",
    "MigrationEngine",
    "MigrationStep",
    "RunStore",
    "SchemaVersionStore",
    "open_connection",
]
