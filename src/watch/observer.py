"""Watchdog event handling: debounce file-system events into change batches."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.5


@dataclass(frozen=True)
class ChangeBatch:
    """Absolute file or directory paths reported within one debounce window."""

    modified: tuple[str, ...] = ()
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.modified or self.added or self.removed)

    def __len__(self) -> int:
        return len(self.modified) + len(self.added) + len(self.removed)


class BatchingEventHandler(FileSystemEventHandler):
    """Collect file events and deliver them as one ChangeBatch per quiet period.

    Each event restarts the debounce timer; when it fires, the pending paths
    are handed to ``on_batch``. File paths are checked with ``accept`` and
    directory paths with ``accept_dir``. A directory that is created, deleted
    or moved is reported as the directory path itself, because a move into or
    out of the tree produces no events for the files inside it. Directory
    modifications carry no information and are ignored.
    """

    def __init__(
        self,
        on_batch: Callable[[ChangeBatch], None],
        *,
        accept: Callable[[str], bool] | None = None,
        accept_dir: Callable[[str], bool] | None = None,
        debounce: float = DEFAULT_DEBOUNCE,
    ) -> None:
        super().__init__()
        self.on_batch = on_batch
        self.accept = accept
        self.accept_dir = accept_dir
        self.debounce = debounce
        self._lock = threading.Lock()
        self._modified: set[str] = set()
        self._added: set[str] = set()
        self._removed: set[str] = set()
        self._timer: threading.Timer | None = None

    def _record(
        self, bucket: set[str], raw_path: bytes | str, *, is_directory: bool = False
    ) -> None:
        path = os.fsdecode(raw_path)
        accept = self.accept_dir if is_directory else self.accept
        if accept is not None and not accept(path):
            return
        with self._lock:
            bucket.add(path)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> None:
        """Deliver pending changes now, if there are any."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            batch = ChangeBatch(
                modified=tuple(sorted(self._modified)),
                added=tuple(sorted(self._added)),
                removed=tuple(sorted(self._removed)),
            )
            self._modified.clear()
            self._added.clear()
            self._removed.clear()

        if batch:
            logger.debug("Delivering change batch of %d paths", len(batch))
            self.on_batch(batch)

    def cancel(self) -> None:
        """Drop pending changes and stop the debounce timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._modified.clear()
            self._added.clear()
            self._removed.clear()

    def on_created(self, event: FileSystemEvent) -> None:
        self._record(self._added, event.src_path, is_directory=event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._record(self._modified, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._record(self._removed, event.src_path, is_directory=event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        is_directory = event.is_directory
        self._record(self._removed, event.src_path, is_directory=is_directory)
        self._record(self._added, event.dest_path, is_directory=is_directory)


def start_observer(root: Path, handler: FileSystemEventHandler) -> BaseObserver:
    """Schedule ``handler`` recursively on ``root`` and start observing."""
    observer = Observer()
    observer.schedule(handler, str(root), recursive=True)
    observer.start()
    logger.info("Watching %s", root)
    return observer


def stop_observer(observer: BaseObserver, timeout: float = 2.0) -> None:
    observer.stop()
    observer.join(timeout=timeout)
    logger.info("Stopped watching")


__all__ = [
    "BatchingEventHandler",
    "ChangeBatch",
    "start_observer",
    "stop_observer",
]
