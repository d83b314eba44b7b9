"""
Integration tests for the application lifecycle.

Tests cover:
- Startup migration and reopen
- A full record/log/delete round trip through the command boundary
- Concurrent writers sharing one store
- Startup failure leaving no usable store behind
"""

import sqlite3
import threading
from pathlib import Path
from typing import Callable

import pytest

from runstore.app import RunStoreApp
from runstore.config import StoreConfig
from runstore.errors import LockError, MigrationError
from runstore.schema import Run, RunLog
from runstore.store import CURRENT_VERSION


class TestLifecycle:
    """Tests for opening and closing the application."""

    def test_fresh_database_is_migrated(self, db_path: Path) -> None:
        with RunStoreApp(db_path=db_path) as app:
            assert app.schema_version == CURRENT_VERSION
            assert app.versions.get_version() == CURRENT_VERSION

        assert db_path.exists()

    def test_db_path_from_config(self, temp_dir: Path) -> None:
        config = StoreConfig(data_dir=temp_dir / "data", db_file="agents.db")

        with RunStoreApp(config=config) as app:
            assert app.db_path == temp_dir / "data" / "agents.db"

        assert (temp_dir / "data" / "agents.db").exists()

    def test_data_survives_reopen(self, db_path: Path, make_run: Callable[..., Run]) -> None:
        with RunStoreApp(db_path=db_path) as app:
            app.store.add_run(make_run())
            app.store.add_run_log(RunLog(run_id="r1", log_line="started", timestamp=101))

        with RunStoreApp(db_path=db_path) as app:
            assert app.store.get_run_by_id("r1") == make_run()
            assert [log.log_line for log in app.store.get_run_logs("r1")] == ["started"]

    def test_store_unusable_after_close(self, db_path: Path) -> None:
        app = RunStoreApp(db_path=db_path)
        app.close()

        with pytest.raises(LockError):
            app.store.count_runs()

    def test_close_stops_watches(self, db_path: Path, temp_dir: Path) -> None:
        app = RunStoreApp(db_path=db_path, config=StoreConfig(watch_poll_interval=0.02))
        handle = app.watches.watch(temp_dir)

        app.close()

        assert not handle.active
        assert app.watches.handles == []

    def test_newer_schema_refused(self, db_path: Path) -> None:
        """A store from a newer build is never handed out."""
        conn = sqlite3.connect(db_path)
        conn.execute("CREATE TABLE schema_version (key TEXT PRIMARY KEY, value INTEGER)")
        conn.execute("INSERT INTO schema_version VALUES ('version', 99)")
        conn.commit()
        conn.close()

        with pytest.raises(MigrationError):
            RunStoreApp(db_path=db_path)

        conn = sqlite3.connect(db_path)
        try:
            assert conn.execute("SELECT value FROM schema_version").fetchone() == (99,)
        finally:
            conn.close()


class TestRoundTrip:
    """Record, annotate and delete a run the way the GUI does."""

    def test_record_log_delete(self, app: RunStoreApp) -> None:
        commands = app.commands
        run = {
            "id": "r1",
            "session_id": "s1",
            "timestamp": 100,
            "agent": "a",
            "model": "m",
            "input": "hi",
            "output": "",
            "tools_used": "[]",
            "exit_status": 0,
        }

        assert commands.invoke("add_run", run=run).ok
        assert commands.invoke("get_runs", limit=10).value == [run]

        log_id = commands.invoke(
            "add_run_log",
            log={"run_id": "r1", "log_line": "started", "log_type": "info", "timestamp": 101},
        ).value
        assert commands.invoke("get_run_logs", run_id="r1").value == [
            {"id": log_id, "run_id": "r1", "log_line": "started", "log_type": "info", "timestamp": 101}
        ]

        assert commands.invoke("delete_run", run_id="r1").ok
        assert commands.invoke("get_run_by_id", run_id="r1").value is None
        assert commands.invoke("get_run_logs", run_id="r1").value == []

    def test_legacy_history_visible(self, legacy_db: Path) -> None:
        """Runs recorded before the upgrade show up in listings."""
        with RunStoreApp(db_path=legacy_db) as app:
            ids = {r["id"] for r in app.commands.invoke("get_runs", limit=10).value}

        assert ids == {"old1", "old2"}


class TestConcurrency:
    """Tests for many callers sharing one application."""

    def test_parallel_writers(self, app: RunStoreApp, make_run: Callable[..., Run]) -> None:
        errors: list[BaseException] = []

        def writer(worker: int) -> None:
            try:
                for i in range(25):
                    run_id = f"w{worker}-{i}"
                    app.store.add_run(make_run(run_id, timestamp=worker * 100 + i))
                    app.store.add_run_log(
                        RunLog(run_id=run_id, log_line=f"line {i}", timestamp=i)
                    )
            except BaseException as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(w,)) for w in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert app.store.count_runs() == 200
        assert len(app.store.get_runs(1000)) == 200
        assert len(app.store.get_run_logs("w3-7")) == 1

    def test_readers_and_writers(self, app: RunStoreApp, make_run: Callable[..., Run]) -> None:
        stop = threading.Event()
        failures: list[BaseException] = []

        def reader() -> None:
            while not stop.is_set():
                try:
                    app.commands.invoke("get_runs", limit=5)
                except BaseException as e:  # noqa: BLE001
                    failures.append(e)
                    return

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        try:
            for i in range(50):
                app.store.add_run(make_run(f"r{i}", timestamp=i))
        finally:
            stop.set()
            for t in readers:
                t.join()

        assert failures == []
        assert app.store.count_runs() == 50
