"""
Unit tests for error hierarchy.

Tests cover:
- Base RunStoreError behavior
- Storage, integrity, lock and migration errors with context
- Error serialization
"""

import pytest

from runstore.errors import (
    ERROR_DUPLICATE_KEY,
    ERROR_LOCK,
    ERROR_MIGRATION,
    ERROR_REFERENTIAL_VIOLATION,
    ERROR_STORAGE_CONNECTION,
    ERROR_STORAGE_WRITE,
    ConfigError,
    DuplicateKeyError,
    LockError,
    MigrationError,
    ReferentialViolationError,
    RunStoreError,
    StorageConnectionError,
    StorageError,
    StorageReadError,
    StorageWriteError,
    WatchError,
)


class TestRunStoreError:
    """Tests for base RunStoreError."""

    def test_basic_error(self) -> None:
        err = RunStoreError(message="Something went wrong", code=9999)
        assert err.message == "Something went wrong"
        assert err.code == 9999
        assert err.suggestion is None
        assert err.context == {}

    def test_str_format(self) -> None:
        """String format includes code and message."""
        err = RunStoreError(message="Test error", code=1234)
        assert str(err) == "[E1234] Test error"

    def test_str_with_suggestion(self) -> None:
        err = RunStoreError(message="Failed", code=1, suggestion="Try again")
        assert "Suggestion: Try again" in str(err)

    def test_repr_format(self) -> None:
        err = RunStoreError(message="Test", code=1)
        assert "RunStoreError" in repr(err)
        assert "code=1" in repr(err)

    def test_to_dict(self) -> None:
        err = DuplicateKeyError(operation="add_run", key="r1")
        data = err.to_dict()
        assert data["error_type"] == "DuplicateKeyError"
        assert data["code"] == ERROR_DUPLICATE_KEY
        assert data["context"]["key"] == "r1"
        assert data["context"]["operation"] == "add_run"

    def test_catchable_as_exception(self) -> None:
        with pytest.raises(RunStoreError):
            raise StorageWriteError(operation="add_run", underlying_error="disk full")


class TestStorageErrors:
    """Tests for storage errors."""

    def test_connection_error(self) -> None:
        err = StorageConnectionError(db_path="/nope/runs.db", operation="connect")
        assert err.code == ERROR_STORAGE_CONNECTION
        assert "/nope/runs.db" in err.message
        assert err.suggestion is not None

    def test_write_error(self) -> None:
        err = StorageWriteError(operation="add_run", underlying_error="disk full")
        assert err.code == ERROR_STORAGE_WRITE
        assert "disk full" in str(err)
        assert "add_run" in str(err)

    def test_read_error_is_storage_error(self) -> None:
        err = StorageReadError(operation="get_runs", underlying_error="corrupt")
        assert isinstance(err, StorageError)

    def test_duplicate_key(self) -> None:
        err = DuplicateKeyError(key="r1")
        assert err.code == ERROR_DUPLICATE_KEY
        assert "r1" in err.message

    def test_referential_violation(self) -> None:
        err = ReferentialViolationError(run_id="ghost")
        assert err.code == ERROR_REFERENTIAL_VIOLATION
        assert "ghost" in err.message
        assert err.context["run_id"] == "ghost"


class TestOtherErrors:
    """Tests for lock, migration, watch and config errors."""

    def test_lock_error(self) -> None:
        err = LockError(reason="database is closed")
        assert err.code == ERROR_LOCK
        assert "database is closed" in str(err)

    def test_migration_error(self) -> None:
        err = MigrationError(from_version=1, to_version=2, underlying_error="syntax error")
        assert err.code == ERROR_MIGRATION
        assert "v1 -> v2" in err.message
        assert err.context["to_version"] == 2

    def test_watch_error(self) -> None:
        err = WatchError(path="/missing", underlying_error="path does not exist")
        assert "/missing" in str(err)

    def test_config_error(self) -> None:
        err = ConfigError(path="config.yaml", underlying_error="bad")
        assert "config.yaml" in err.message
        assert err.suggestion is not None
