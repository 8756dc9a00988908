"""Concurrent build pipeline: fan files out to extraction workers and back."""

from __future__ import annotations

import concurrent.futures
import logging
import os
import threading
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, TypeVar

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

if TYPE_CHECKING:
    from pathlib import Path

    from index.cache import CacheEntry, ExtractionCache
    from index.models import FileMetadata, SymbolRecord

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_CAPACITY = 100
DEFAULT_TASK_TIMEOUT = 30.0
MIN_WORKERS = 2
MAX_WORKERS = 8

FailureReason = Literal["syntax", "timeout", "error"]

T = TypeVar("T")


def default_worker_count() -> int:
    return max(MIN_WORKERS, min(os.cpu_count() or 4, MAX_WORKERS))


class CallerRunsExecutor:
    """Thread pool with bounded capacity and a caller-runs overflow policy.

    At most ``max_workers + queue_capacity`` tasks are in flight. When that
    capacity is exhausted, ``submit`` runs the task in the submitting thread
    and returns an already-completed future, so work is never dropped and the
    producer slows down to the pace of the workers.
    """

    def __init__(self, max_workers: int, queue_capacity: int) -> None:
        self.max_workers = max_workers
        self.queue_capacity = queue_capacity
        self.caller_runs = 0
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="symindex-extract"
        )
        self._slots = threading.BoundedSemaphore(max_workers + queue_capacity)

    def submit(self, fn: Callable[..., T], *args: Any) -> Future[T]:
        if not self._slots.acquire(blocking=False):
            self.caller_runs += 1
            future: Future[T] = Future()
            try:
                result = fn(*args)
            except Exception as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)
            return future

        try:
            future = self._pool.submit(fn, *args)
        except BaseException:
            self._slots.release()
            raise
        future.add_done_callback(self._release_slot)
        return future

    def _release_slot(self, _future: Future[Any]) -> None:
        self._slots.release()

    def shutdown(self, *, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=True)


@dataclass(frozen=True)
class FileFailure:
    """A file that contributed no symbols to a build."""

    path: str
    reason: FailureReason
    message: str


@dataclass
class PipelineResult:
    records: list[SymbolRecord] = field(default_factory=list)
    file_metadata: dict[str, FileMetadata] = field(default_factory=dict)
    failures: list[FileFailure] = field(default_factory=list)

    def records_by_file(self) -> dict[str, list[SymbolRecord]]:
        grouped: dict[str, list[SymbolRecord]] = {}
        for record in self.records:
            grouped.setdefault(record.file, []).append(record)
        return grouped


class BuildPipeline:
    """Extract symbols for many files concurrently through an ExtractionCache."""

    def __init__(
        self,
        cache: ExtractionCache,
        *,
        max_workers: int | None = None,
        queue_capacity: int = DEFAULT_QUEUE_CAPACITY,
        task_timeout: float = DEFAULT_TASK_TIMEOUT,
        show_progress: bool = False,
    ) -> None:
        self.cache = cache
        self.task_timeout = task_timeout
        self.show_progress = show_progress
        workers = max(MIN_WORKERS, max_workers or default_worker_count())
        self.executor = CallerRunsExecutor(workers, queue_capacity)
        self.timed_out = 0

    @property
    def worker_count(self) -> int:
        return self.executor.max_workers

    def _extract_one(self, path: Path, relative_path: str) -> CacheEntry:
        return self.cache.get_or_extract(path, relative_path)

    def process(self, files: Sequence[tuple[Path, str]]) -> PipelineResult:
        """Extract every ``(absolute_path, relative_path)`` pair.

        Results are collected in submission order. A file that times out or
        cannot be read contributes no symbols or metadata; the rest of
        the batch is unaffected.
        """
        result = PipelineResult()
        if not files:
            return result

        logger.debug(
            "Extracting %d files with %d workers", len(files), self.worker_count
        )
        futures = [
            (
                relative_path,
                self.executor.submit(self._extract_one, path, relative_path),
            )
            for path, relative_path in files
        ]

        with self._progress(len(futures)) as advance:
            for relative_path, future in futures:
                try:
                    entry = future.result(timeout=self.task_timeout)
                except concurrent.futures.TimeoutError:
                    future.cancel()
                    self.timed_out += 1
                    message = f"extraction exceeded {self.task_timeout:g}s"
                    logger.warning("Skipping %s: %s", relative_path, message)
                    result.failures.append(
                        FileFailure(relative_path, "timeout", message)
                    )
                except Exception as exc:
                    logger.warning("Failed to process %s: %s", relative_path, exc)
                    result.failures.append(
                        FileFailure(relative_path, "error", str(exc))
                    )
                else:
                    result.file_metadata[relative_path] = entry.metadata
                    if entry.error is not None:
                        logger.warning(
                            "Syntax error in %s, no symbols indexed",
                            entry.error.location(),
                        )
                        result.failures.append(
                            FileFailure(relative_path, "syntax", entry.error.message)
                        )
                    result.records.extend(entry.records)
                finally:
                    advance()

        return result

    @contextmanager
    def _progress(self, total: int) -> Iterator[Callable[[], None]]:
        if not self.show_progress:
            yield lambda: None
            return

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=Console(stderr=True),
            transient=True,
        ) as progress:
            task_id = progress.add_task("Parsing", total=total)
            yield lambda: progress.advance(task_id)

    def shutdown(self) -> None:
        """Stop the workers.

        A running extraction cannot be interrupted, so once any task has
        timed out the pool is released without waiting for it; its thread
        finishes on its own and its result is discarded.
        """
        self.executor.shutdown(wait=not self.timed_out)


__all__ = [
    "BuildPipeline",
    "CallerRunsExecutor",
    "FileFailure",
    "PipelineResult",
    "default_worker_count",
]
