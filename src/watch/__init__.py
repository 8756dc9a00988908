"""Watch mode: keep the index current while files change."""

from watch.observer import BatchingEventHandler, ChangeBatch, start_observer
from watch.session import (
    WatchLock,
    WatchSession,
    inspect_lock,
    process_running,
    stop_watcher,
)

__all__ = [
    "BatchingEventHandler",
    "ChangeBatch",
    "WatchLock",
    "WatchSession",
    "inspect_lock",
    "process_running",
    "start_observer",
    "stop_watcher",
]
