"""
Named-command boundary between the GUI layer and the store.

The GUI calls operations by name with JSON-style arguments and receives a
CommandOutcome: either a JSON-ready value or a human-readable error string.
Errors are flattened to text on purpose; callers treat them as opaque.

Commands:
    add_run(run)                    -> None
    get_runs(limit)                 -> list of run dicts, newest first
    get_run_by_id(run_id)           -> run dict or None
    get_runs_by_session(session_id) -> list of run dicts, oldest first
    delete_run(run_id)              -> None
    add_run_log(log)                -> assigned log id
    get_run_logs(run_id)            -> list of log dicts, oldest first
    watch_agents_file(file_path)    -> None
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from runstore.errors import RunStoreError
from runstore.schema import Run, RunLog
from runstore.store import RunStore
from runstore.watch import WatchRegistry

logger = logging.getLogger(__name__)


@dataclass
class CommandOutcome:
    """
    Result of invoking a command.

    Attributes:
        ok: Whether the command succeeded
        value: JSON-ready result when ok
        error: Human-readable error text when not ok
    """

    ok: bool
    value: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "value": self.value}
        return {"ok": False, "error": self.error}


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value


class CommandRouter:
    """
    Dispatches named commands to the record store and watch registry.

    Usage:
        router = CommandRouter(store, watches)
        outcome = router.invoke("get_runs", limit=20)
        if not outcome.ok:
            show_error(outcome.error)
    """

    def __init__(self, store: RunStore, watches: WatchRegistry) -> None:
        self._store = store
        self._watches = watches
        self._handlers: dict[str, Callable[..., Any]] = {
            "add_run": self._add_run,
            "get_runs": self._store.get_runs,
            "get_run_by_id": self._store.get_run_by_id,
            "get_runs_by_session": self._store.get_runs_by_session,
            "delete_run": self._delete_run,
            "add_run_log": self._add_run_log,
            "get_run_logs": self._store.get_run_logs,
            "watch_agents_file": self._watch_agents_file,
        }

    @property
    def names(self) -> list[str]:
        return sorted(self._handlers)

    def has(self, name: str) -> bool:
        return name in self._handlers

    def invoke(self, name: str, **args: Any) -> CommandOutcome:
        """
        Run a command by name.

        Args:
            name: Command name (see module docstring)
            **args: Command arguments, as plain JSON values or models

        Returns:
            CommandOutcome carrying the value or the error text
        """
        handler = self._handlers.get(name)
        if handler is None:
            return CommandOutcome(ok=False, error=f"Unknown command: {name}")
        try:
            value = handler(**args)
        except RunStoreError as e:
            logger.warning("Command %s failed: %s", name, e.message)
            return CommandOutcome(ok=False, error=str(e))
        except ValidationError as e:
            return CommandOutcome(ok=False, error=f"Invalid arguments for {name}: {e}")
        except TypeError as e:
            return CommandOutcome(ok=False, error=f"Invalid arguments for {name}: {e}")
        except Exception as e:
            logger.exception("Command %s raised unexpectedly", name)
            return CommandOutcome(ok=False, error=f"{name} failed: {e}")
        return CommandOutcome(ok=True, value=_dump(value))

    # =========================================================================
    # Handlers
    # =========================================================================

    def _add_run(self, run: Run | dict[str, Any]) -> None:
        if not isinstance(run, Run):
            run = Run.model_validate(run)
        self._store.add_run(run)

    def _delete_run(self, run_id: str) -> None:
        self._store.delete_run(run_id)

    def _add_run_log(self, log: RunLog | dict[str, Any]) -> int:
        if not isinstance(log, RunLog):
            log = RunLog.model_validate(log)
        return self._store.add_run_log(log)

    def _watch_agents_file(self, file_path: str) -> None:
        self._watches.watch(file_path)
