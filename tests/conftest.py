"""
Pytest configuration and fixtures for runstore tests.

This module provides shared fixtures used across unit and integration tests.
"""

import sqlite3
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest

from runstore.app import RunStoreApp
from runstore.schema import Run
from runstore.store import ConnectionGuard, RunStore, open_connection


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    """Path for a fresh database file."""
    return temp_dir / "runs.db"


@pytest.fixture
def app(db_path: Path) -> Generator[RunStoreApp, None, None]:
    """A migrated application backed by a temporary file."""
    application = RunStoreApp(db_path=db_path)
    yield application
    application.close()


@pytest.fixture
def store(app: RunStoreApp) -> RunStore:
    """The record store of a migrated application."""
    return app.store


@pytest.fixture
def guard(db_path: Path) -> Generator[ConnectionGuard, None, None]:
    """A raw, unmigrated connection guard."""
    g = ConnectionGuard(open_connection(db_path))
    yield g
    g.close()


@pytest.fixture
def make_run() -> Callable[..., Run]:
    """Factory for runs with sensible defaults."""

    def factory(run_id: str = "r1", **overrides) -> Run:
        fields = {
            "id": run_id,
            "session_id": "s1",
            "timestamp": 100,
            "agent": "a",
            "model": "m",
            "input": "hi",
            "output": "",
            "tools_used": "[]",
            "exit_status": 0,
        }
        fields.update(overrides)
        return Run(**fields)

    return factory


LEGACY_RUNS_SQL = """
CREATE TABLE runs (
    id TEXT PRIMARY KEY,
    timestamp TEXT NOT NULL,
    agent_id TEXT NOT NULL,
    agent_name TEXT NOT NULL,
    prompt TEXT NOT NULL,
    output TEXT,
    status TEXT NOT NULL,
    duration_ms INTEGER
);
CREATE TABLE schema_version (key TEXT PRIMARY KEY, value INTEGER);
INSERT INTO schema_version (key, value) VALUES ('version', 1);
"""


@pytest.fixture
def legacy_db(db_path: Path) -> Path:
    """A version-1 database holding two legacy runs."""
    conn = sqlite3.connect(db_path)
    conn.executescript(LEGACY_RUNS_SQL)
    conn.executemany(
        "INSERT INTO runs (id, timestamp, agent_id, agent_name, prompt, output, status, duration_ms)"
        " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        [
            ("old1", "1700000000000", "build", "Build", "fix the tests", "done", "completed", 1200),
            ("old2", "2024-01-01T00:00:00Z", "plan", "Plan", "outline", None, "failed", None),
        ],
    )
    conn.commit()
    conn.close()
    return db_path
