"""
Exception hierarchy for runstore.

All runstore exceptions inherit from RunStoreError, allowing callers to catch
every store-specific failure with a single except clause.

Exception Categories:
    - StorageError: Underlying SQLite I/O or statement failure
    - DuplicateKeyError: Insert violates uniqueness of a run id
    - ReferentialViolationError: A run log references a run that doesn't exist
    - LockError: The connection guard can't be acquired
    - MigrationError: A schema migration step failed
    - WatchError: A filesystem watch couldn't be registered
    - ConfigError: Configuration file is missing or invalid

Lookups that find nothing are not errors; they return None.

Errors cross the GUI boundary as text, so every error renders a complete
human-readable message through str().
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Storage errors: 50xx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003

# Integrity errors: 51xx
ERROR_DUPLICATE_KEY = 5101
ERROR_REFERENTIAL_VIOLATION = 5102

# Concurrency errors: 52xx
ERROR_LOCK = 5201

# Migration errors: 53xx
ERROR_MIGRATION = 5301

# Watch errors: 6xxx
ERROR_WATCH = 6001

# Config errors: 7xxx
ERROR_CONFIG = 7001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class RunStoreError(Exception):
    """
    Base exception for all runstore errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(RunStoreError):
    """
    Base class for storage/database errors.

    Attributes:
        operation: The operation that failed (e.g., "add_run", "get_runs")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when the database file can't be opened."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed ({self.operation}): {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed ({self.operation}): {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Integrity Errors
# =============================================================================


@dataclass
class DuplicateKeyError(StorageError):
    """Raised when a run is inserted with an id that already exists."""

    key: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Run already exists: {self.key}"
        if self.code == 0:
            self.code = ERROR_DUPLICATE_KEY
        if not self.suggestion:
            self.suggestion = "Generate a fresh run id; existing runs are never overwritten"
        super().__post_init__()
        self.context["key"] = self.key


@dataclass
class ReferentialViolationError(StorageError):
    """Raised when a run log references a run that doesn't exist."""

    run_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot attach log to unknown run: {self.run_id}"
        if self.code == 0:
            self.code = ERROR_REFERENTIAL_VIOLATION
        if not self.suggestion:
            self.suggestion = "Record the run with add_run before adding its logs"
        super().__post_init__()
        self.context["run_id"] = self.run_id


# =============================================================================
# Concurrency Errors
# =============================================================================


@dataclass
class LockError(RunStoreError):
    """
    Raised when the connection guard can't be acquired.

    This happens when a previous holder died mid-operation (the guard is
    poisoned) or when the store has already been closed.

    Attributes:
        reason: Why the guard refused the acquisition
    """

    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database lock unavailable: {self.reason}"
        if self.code == 0:
            self.code = ERROR_LOCK
        if not self.suggestion:
            self.suggestion = "Restart the application to reopen the database"
        self.context["reason"] = self.reason


# =============================================================================
# Migration Errors
# =============================================================================


@dataclass
class MigrationError(RunStoreError):
    """
    Raised when the schema can't be brought up to date.

    Attributes:
        from_version: Version the failing step starts from
        to_version: Version the failing step targets
        underlying_error: The original failure text
    """

    from_version: int = 0
    to_version: int = 0
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Migration v{self.from_version} -> v{self.to_version} failed: "
                f"{self.underlying_error}"
            )
        if self.code == 0:
            self.code = ERROR_MIGRATION
        self.context.update({
            "from_version": self.from_version,
            "to_version": self.to_version,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Watch Errors
# =============================================================================


@dataclass
class WatchError(RunStoreError):
    """Raised when a filesystem path can't be watched."""

    path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot watch {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_WATCH
        self.context.update({
            "path": self.path,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Config Errors
# =============================================================================


@dataclass
class ConfigError(RunStoreError):
    """Raised when the configuration file can't be loaded."""

    path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration in {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG
        if not self.suggestion:
            self.suggestion = "Fix the YAML file or remove it to use defaults"
        self.context.update({
            "path": self.path,
            "underlying_error": self.underlying_error,
        })
