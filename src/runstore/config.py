"""
Configuration for runstore.

Settings come from an optional YAML file, then environment overrides:
    RUNSTORE_DATA_DIR   directory holding the database file
    RUNSTORE_LOG_LEVEL  logging level name (DEBUG, INFO, ...)

Example config.yaml:
    data_dir: ~/.local/share/runstore
    db_file: runstore.db
    watch_poll_interval: 0.5
    log_level: DEBUG
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from runstore.errors import ConfigError

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

DEFAULT_DATA_DIR = Path.home() / ".runstore"

ENV_DATA_DIR = "RUNSTORE_DATA_DIR"
ENV_LOG_LEVEL = "RUNSTORE_LOG_LEVEL"


class StoreConfig(BaseModel):
    """
    Runtime settings.

    Attributes:
        data_dir: Directory holding the database file
        db_file: Database file name inside data_dir
        busy_timeout_ms: How long SQLite waits on a locked file
        watch_poll_interval: Seconds between filesystem polls
        log_level: Logging level name
        default_list_limit: Runs shown when no limit is given
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    data_dir: Path = Field(default=DEFAULT_DATA_DIR, description="Data directory")
    db_file: str = Field(default="runstore.db", description="Database file name", min_length=1)
    busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout", gt=0)
    watch_poll_interval: float = Field(
        default=1.0,
        description="Seconds between filesystem polls",
        gt=0,
    )
    log_level: str = Field(default="INFO", description="Logging level name")
    default_list_limit: int = Field(default=100, description="Default list size", gt=0)

    @field_validator("data_dir")
    @classmethod
    def expand_data_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_file


def load_config(path: Path | str | None = None) -> StoreConfig:
    """
    Load settings from a YAML file and the environment.

    Args:
        path: YAML file; None (or a missing default) means built-in defaults

    Returns:
        Validated StoreConfig

    Raises:
        ConfigError: If the file is unreadable or doesn't match the schema
    """
    data: dict = {}
    if path is not None:
        path = Path(path)
        try:
            with path.open() as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(path=str(path), underlying_error=str(e)) from e
        if not isinstance(data, dict):
            raise ConfigError(path=str(path), underlying_error="top level must be a mapping")

    if os.environ.get(ENV_DATA_DIR):
        data["data_dir"] = os.environ[ENV_DATA_DIR]
    if os.environ.get(ENV_LOG_LEVEL):
        data["log_level"] = os.environ[ENV_LOG_LEVEL]

    try:
        return StoreConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(path=str(path or "<environment>"), underlying_error=str(e)) from e


def configure_logging(level: str = "INFO") -> None:
    """Install a console handler on the root logger unless one exists."""
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    logging.basicConfig(level=level, format=LOG_FORMAT)
