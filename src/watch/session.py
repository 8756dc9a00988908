"""Long-running watch sessions that keep the index in sync with the tree."""

from __future__ import annotations

import contextlib
import logging
import os
import queue
import threading
from typing import TYPE_CHECKING, Literal

import psutil

from index.errors import SymbolIndexError, WatchSessionActiveError
from utils import to_relative_posix
from watch.observer import (
    BatchingEventHandler,
    ChangeBatch,
    start_observer,
    stop_observer,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path
    from types import TracebackType

    from index.engine import SymbolIndexEngine, UpdateResult

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.2
STOP_GRACE_SECONDS = 5.0

StopOutcome = Literal["not_running", "stale", "stopped", "killed"]


def process_running(pid: int) -> bool:
    """Return True when a process with ``pid`` exists."""
    return pid > 0 and psutil.pid_exists(pid)


def read_lock_pid(lock_path: Path) -> int | None:
    try:
        text = lock_path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def _remove_lock(lock_path: Path) -> None:
    with contextlib.suppress(FileNotFoundError):
        lock_path.unlink()


def inspect_lock(lock_path: Path) -> int | None:
    """Return the PID of a live watcher, removing the lock if it is stale."""
    if not lock_path.exists():
        return None
    pid = read_lock_pid(lock_path)
    if pid is not None and process_running(pid):
        return pid
    logger.info("Removing stale watch lock %s", lock_path)
    _remove_lock(lock_path)
    return None


class WatchLock:
    """Exclusive, PID-stamped lock file marking the single index writer."""

    def __init__(self, lock_path: Path) -> None:
        self.lock_path = lock_path
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Create the lock file or fail if a live session owns it.

        Raises:
            WatchSessionActiveError: Another live process holds the lock.
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        for _attempt in range(2):
            try:
                fd = os.open(
                    self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644
                )
            except FileExistsError:
                pid = read_lock_pid(self.lock_path)
                if pid is not None and process_running(pid):
                    raise WatchSessionActiveError(pid) from None
                logger.info("Replacing stale watch lock (PID: %s)", pid)
                _remove_lock(self.lock_path)
                continue
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(str(os.getpid()))
            self._held = True
            return
        raise WatchSessionActiveError(read_lock_pid(self.lock_path))

    def release(self) -> None:
        if self._held:
            _remove_lock(self.lock_path)
            self._held = False

    def __enter__(self) -> WatchLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def stop_watcher(lock_path: Path, *, grace: float = STOP_GRACE_SECONDS) -> StopOutcome:
    """Stop the watcher recorded in ``lock_path``.

    Sends SIGTERM, waits up to ``grace`` seconds, then sends SIGKILL. The
    lock file is removed in every case.
    """
    if not lock_path.exists():
        return "not_running"

    pid = read_lock_pid(lock_path)
    if pid is None or not process_running(pid):
        _remove_lock(lock_path)
        return "stale"

    try:
        process = psutil.Process(pid)
        process.terminate()
        try:
            process.wait(timeout=grace)
        except psutil.TimeoutExpired:
            logger.warning("Watcher %d did not exit, sending SIGKILL", pid)
            process.kill()
        else:
            return "stopped"
    except psutil.NoSuchProcess:
        return "stopped"
    finally:
        _remove_lock(lock_path)
    return "killed"


class WatchSession:
    """Feed change batches from a watcher through the incremental update path.

    Batches arrive on ``channel``; ``run()`` blocks on it with a short poll
    timeout and returns once ``cancel`` is set. The in-flight batch always
    completes before the loop exits, and the observer and watch lock are
    released on every exit path.
    """

    def __init__(
        self,
        engine: SymbolIndexEngine,
        *,
        channel: queue.Queue[ChangeBatch] | None = None,
        cancel: threading.Event | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        debounce: float | None = None,
        observer_factory: Callable[..., object] = start_observer,
    ) -> None:
        self.engine = engine
        self.channel: queue.Queue[ChangeBatch] = channel or queue.Queue()
        self.cancel = cancel or threading.Event()
        self.ready = threading.Event()
        self.poll_interval = poll_interval
        self.debounce = (
            engine.config.watch_debounce if debounce is None else debounce
        )
        self.observer_factory = observer_factory
        self.lock = WatchLock(engine.store.lock_path)
        self.batches_processed = 0

    def submit(self, batch: ChangeBatch) -> None:
        self.channel.put(batch)

    def stop(self) -> None:
        self.cancel.set()

    def _accepts(self, path: str) -> bool:
        relative_path = to_relative_posix(path, self.engine.root)
        return relative_path is not None and (
            self.engine.source_filter.matches_relative(relative_path)
        )

    def _accepts_dir(self, path: str) -> bool:
        relative_path = to_relative_posix(path, self.engine.root)
        return relative_path is not None and (
            self.engine.source_filter.matches_directory(relative_path)
        )

    def run(self) -> None:
        """Hold the watch lock and process batches until cancelled.

        Raises:
            WatchSessionActiveError: Another live session owns the index.
        """
        with self.lock:
            if self.engine.store.exists():
                self.engine.update()
            else:
                logger.info("No index found, building before watching")
                self.engine.build()

            handler = BatchingEventHandler(
                self.submit,
                accept=self._accepts,
                accept_dir=self._accepts_dir,
                debounce=self.debounce,
            )
            observer = self.observer_factory(self.engine.root, handler)
            try:
                self.ready.set()
                while not self.cancel.is_set():
                    try:
                        batch = self.channel.get(timeout=self.poll_interval)
                    except queue.Empty:
                        continue
                    self.handle_batch(batch)
            finally:
                handler.cancel()
                stop_observer(observer)  # type: ignore[arg-type]
                self.ready.clear()

    def handle_batch(self, batch: ChangeBatch) -> UpdateResult | None:
        """Apply one batch; a failed batch is logged and the session goes on."""
        logger.info(
            "Change batch: %d modified, %d added, %d removed",
            len(batch.modified),
            len(batch.added),
            len(batch.removed),
        )
        try:
            result = self.engine.apply_changes(
                modified=batch.modified, added=batch.added, removed=batch.removed
            )
        except SymbolIndexError as exc:
            logger.error("Failed to apply change batch: %s", exc)
            return None

        self.batches_processed += 1
        if result.updated:
            logger.info(
                "Re-indexed %d files, removed %d",
                result.files_processed,
                len(result.changes.deleted),
            )
        return result


__all__ = [
    "ChangeBatch",
    "WatchLock",
    "WatchSession",
    "inspect_lock",
    "process_running",
    "read_lock_pid",
    "stop_watcher",
]
