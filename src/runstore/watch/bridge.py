"""
Filesystem change notifications for the GUI layer.

A watch polls one path (a file, or a directory's direct children) and emits
a FileChangeEvent on the well-known "file-change" channel for every change
it observes. Watches run on daemon threads and never touch the database.

Lifetime:
    Watches are owned by a WatchRegistry, which the application lifecycle
    closes on shutdown. Nothing else stops them. Each watch() call creates an
    independent watch, even for a path that is already watched.

Errors:
    watch() fails with WatchError when the path can't be observed at all.
    Errors that happen later, while polling, are logged and the watch keeps
    running; the original caller has already returned.
"""

import itertools
import logging
import os
import threading
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from runstore.errors import WatchError

logger = logging.getLogger(__name__)

FILE_CHANGE_CHANNEL = "file-change"
DEFAULT_POLL_INTERVAL = 1.0

Snapshot = dict[str, tuple[int, int]]


class ChangeKind(str, Enum):
    """What happened to a watched entry."""

    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"


class FileChangeEvent(BaseModel):
    """One observed change."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Path of the changed entry")
    kind: ChangeKind = Field(..., description="Kind of change")
    description: str = Field(default="", description="Free-form description")


Subscriber = Callable[[FileChangeEvent], None]


class EventChannel:
    """
    Named fan-out channel consumed by the GUI layer.

    Subscribers run on the emitting thread. A failing subscriber is logged
    and does not affect the others.
    """

    def __init__(self, name: str = FILE_CHANGE_CHANNEL) -> None:
        self.name = name
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register callback; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event: FileChangeEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber on %s failed for %s", self.name, event.path)


def take_snapshot(path: Path) -> Snapshot:
    """
    Capture (mtime_ns, size) for a file, or for a directory's direct children.

    A missing path yields an empty snapshot.
    """
    try:
        if path.is_dir():
            snapshot: Snapshot = {}
            with os.scandir(path) as entries:
                for entry in entries:
                    try:
                        stat = entry.stat()
                    except FileNotFoundError:
                        continue
                    snapshot[entry.path] = (stat.st_mtime_ns, stat.st_size)
            return snapshot
        stat = path.stat()
        return {str(path): (stat.st_mtime_ns, stat.st_size)}
    except FileNotFoundError:
        return {}


def diff_snapshots(before: Snapshot, after: Snapshot) -> list[FileChangeEvent]:
    """Events that turn before into after, sorted by path."""
    events = []
    for entry in sorted(set(before) | set(after)):
        if entry not in before:
            kind = ChangeKind.CREATED
        elif entry not in after:
            kind = ChangeKind.REMOVED
        elif before[entry] != after[entry]:
            kind = ChangeKind.MODIFIED
        else:
            continue
        events.append(
            FileChangeEvent(path=entry, kind=kind, description=f"{kind.value}: {entry}")
        )
    return events


class WatchHandle:
    """
    A single non-recursive polling watch.

    check() polls once and emits any changes; start() runs check() on a
    daemon thread every poll_interval seconds until close().
    """

    def __init__(
        self,
        watch_id: int,
        path: Path,
        channel: EventChannel,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.watch_id = watch_id
        self.path = path
        self.channel = channel
        self.poll_interval = poll_interval
        self._snapshot = take_snapshot(path)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def check(self) -> list[FileChangeEvent]:
        """Poll once, emit and return the changes since the last poll."""
        try:
            current = take_snapshot(self.path)
        except OSError as e:
            logger.warning("Watch error on %s: %s", self.path, e)
            return []
        events = diff_snapshots(self._snapshot, current)
        self._snapshot = current
        for event in events:
            self.channel.emit(event)
        return events

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run,
            name=f"runstore-watch-{self.watch_id}",
            daemon=True,
        )
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.poll_interval):
            try:
                self.check()
            except Exception:
                logger.exception("Watch %d on %s failed to poll", self.watch_id, self.path)

    def close(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.poll_interval * 2 + 1)


class WatchRegistry:
    """
    Process-wide set of active watches.

    Usage:
        registry = WatchRegistry(EventChannel())
        registry.channel.subscribe(print)
        registry.watch("~/.config/agents.json")
        ...
        registry.close_all()
    """

    def __init__(
        self,
        channel: EventChannel | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.channel = channel or EventChannel()
        self.poll_interval = poll_interval
        self._handles: dict[int, WatchHandle] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def watch(self, path: str | Path, start: bool = True) -> WatchHandle:
        """
        Begin watching path.

        Args:
            path: File or directory to observe (non-recursive)
            start: Start the polling thread immediately

        Returns:
            The new watch handle

        Raises:
            WatchError: If the path doesn't exist or can't be read
        """
        resolved = Path(path).expanduser()
        if not resolved.exists():
            raise WatchError(path=str(resolved), underlying_error="path does not exist")
        try:
            with self._lock:
                handle = WatchHandle(
                    next(self._ids),
                    resolved,
                    self.channel,
                    self.poll_interval,
                )
                self._handles[handle.watch_id] = handle
        except OSError as e:
            raise WatchError(path=str(resolved), underlying_error=str(e)) from e
        if start:
            handle.start()
        logger.info("Watching %s (watch %d)", resolved, handle.watch_id)
        return handle

    @property
    def handles(self) -> list[WatchHandle]:
        with self._lock:
            return list(self._handles.values())

    def close(self, watch_id: int) -> bool:
        """Stop one watch; returns False if it isn't registered."""
        with self._lock:
            handle = self._handles.pop(watch_id, None)
        if handle is None:
            return False
        handle.close()
        return True

    def close_all(self) -> None:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            handle.close()
        if handles:
            logger.debug("Closed %d watches", len(handles))
