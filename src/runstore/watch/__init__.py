"""
Change notification bridge for runstore.

Watches filesystem paths and forwards change events to the GUI layer on the
"file-change" channel. Independent of the database.
"""

from runstore.watch.bridge import (
    FILE_CHANGE_CHANNEL,
    ChangeKind,
    EventChannel,
    FileChangeEvent,
    WatchHandle,
    WatchRegistry,
)

__all__ = [
    "FILE_CHANGE_CHANNEL",
    "ChangeKind",
    "EventChannel",
    "FileChangeEvent",
    "WatchHandle",
    "WatchRegistry",
]
