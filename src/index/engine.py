"""
Symbol index engine: full builds, incremental updates and watch batches.

One engine instance owns its extraction cache, worker pool, change detector
and store handle. Nothing is shared through module globals, so several
engines can run side by side.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from index.cache import ExtractionCache
from index.differ import ChangeDetector, FileChanges
from index.pipeline import BuildPipeline, FileFailure
from index.store import IndexStore
from scan.files import SourceFilter, iter_filtered
from settings.config import SymIndexConfig, load_config, resolve_index_dir
from utils import to_relative_posix

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildResult:
    files_processed: int
    symbols_extracted: int
    failures: tuple[FileFailure, ...] = ()


@dataclass(frozen=True)
class UpdateResult:
    updated: bool
    changes: FileChanges = FileChanges()
    files_processed: int = 0
    symbols_extracted: int = 0
    failures: tuple[FileFailure, ...] = ()


class SymbolIndexEngine:
    """Build and incrementally maintain the symbol index of one root."""

    def __init__(
        self,
        root: Path,
        config: SymIndexConfig | None = None,
        *,
        show_progress: bool = False,
    ) -> None:
        self.root = root.resolve()
        self.config = config if config is not None else load_config(self.root)
        self.index_dir = resolve_index_dir(self.root, self.config.index_dir)
        self.store = IndexStore(self.index_dir)
        self.cache = ExtractionCache()
        self.detector = ChangeDetector(self.root)
        self.pipeline = BuildPipeline(
            self.cache,
            max_workers=self.config.max_workers,
            queue_capacity=self.config.queue_capacity,
            task_timeout=self.config.task_timeout,
            show_progress=show_progress,
        )
        self.source_filter = SourceFilter(
            self.root,
            extension=self.config.extension,
            index_dir=self.index_dir.relative_to(self.root).parts[0],
            ignore_prefixes=self.config.ignore_prefixes,
            exclude_patterns=self.config.exclude,
            respect_gitignore=self.config.respect_gitignore,
        )

    def __enter__(self) -> SymbolIndexEngine:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Stop the worker pool and drop cached extraction results."""
        self.pipeline.shutdown()
        self.cache.clear()

    def discover_files(self, directory: Path | None = None) -> list[tuple[Path, str]]:
        """Walk the root, return (abs_path, rel_path) for indexable files.

        ``directory`` narrows the walk to one directory under the root; the
        relative paths stay relative to the root.
        """
        base = self.root if directory is None else directory
        return [
            (path, path.relative_to(self.root).as_posix())
            for path in iter_filtered(base, self.source_filter)
        ]

    def build(self) -> BuildResult:
        """Full rebuild: extract every file and overwrite the snapshot."""
        t0 = time.perf_counter()
        files = self.discover_files()
        logger.info("Building index for %d files under %s", len(files), self.root)

        result = self.pipeline.process(files)
        self.store.save(files, result.records, result.file_metadata)

        logger.info(
            "Indexed %d symbols from %d files in %.2fs",
            len(result.records),
            len(files),
            time.perf_counter() - t0,
        )
        return BuildResult(
            files_processed=len(files),
            symbols_extracted=len(result.records),
            failures=tuple(result.failures),
        )

    def pending_changes(self) -> FileChanges:
        """Diff the file system against the stored file table without writing."""
        current = [rel for _, rel in self.discover_files()]
        return self.detector.diff(current, self.store.load_file_table())

    def update(self) -> UpdateResult:
        """Re-index only changed/new files and drop deleted ones.

        Without an existing index this performs a full build. When no file
        needs re-extraction the payload is not written; only fingerprints of
        touched files are refreshed in the file table.
        """
        if not self.store.exists():
            logger.info("No index found, performing a full build")
            files = self.discover_files()
            build = self.build()
            return UpdateResult(
                updated=True,
                changes=FileChanges(new=tuple(rel for _, rel in files)),
                files_processed=build.files_processed,
                symbols_extracted=build.symbols_extracted,
                failures=build.failures,
            )

        changes = self.pending_changes()
        if changes.is_empty:
            logger.info("Index is up to date")
            self._refresh(changes)
            return UpdateResult(updated=False)

        return self._apply(changes)

    def apply_changes(
        self,
        modified: Iterable[str | Path] = (),
        added: Iterable[str | Path] = (),
        removed: Iterable[str | Path] = (),
    ) -> UpdateResult:
        """Apply one batch of file-system changes reported by a watcher.

        Only the paths in the batch are examined. A reported path that no
        longer exists counts as removed and a "removed" path that exists
        again counts as modified; the change detector then classifies the
        survivors against the stored file table. A directory path stands for
        every indexed file under it plus every indexable file it now holds,
        since watchers report a directory moved in or out as one event.
        """
        if not self.store.exists():
            build = self.build()
            return UpdateResult(
                updated=True,
                files_processed=build.files_processed,
                symbols_extracted=build.symbols_extracted,
                failures=build.failures,
            )

        stored = self.store.load_file_table()
        candidates: set[str] = set()
        for raw_path in (*modified, *added, *removed):
            relative_path = to_relative_posix(raw_path, self.root)
            if relative_path is None:
                continue
            path = self.root / relative_path
            if path.is_dir():
                candidates.update(rel for _, rel in self.discover_files(path))
            if not path.is_file():
                prefix = f"{relative_path}/"
                candidates.update(p for p in stored if p.startswith(prefix))
            if self.source_filter.matches_relative(relative_path):
                candidates.add(relative_path)

        present: set[str] = set()
        gone: set[str] = set()
        for relative_path in candidates:
            path = self.root / relative_path
            if path.exists():
                if self.source_filter.accepts(path):
                    present.add(relative_path)
            else:
                gone.add(relative_path)

        if not present and not gone:
            return UpdateResult(updated=False)

        batch_stored = {
            path: stored[path] for path in present | gone if path in stored
        }
        changes = self.detector.diff(present, batch_stored)
        if changes.is_empty:
            self._refresh(changes)
            return UpdateResult(updated=False)

        return self._apply(changes)

    def _refresh(self, changes: FileChanges) -> None:
        if changes.touched:
            self.store.refresh_file_metadata(changes.touched)

    def _apply(self, changes: FileChanges) -> UpdateResult:
        t0 = time.perf_counter()
        logger.info(
            "Updating index: %d changed, %d new, %d deleted",
            len(changes.changed),
            len(changes.new),
            len(changes.deleted),
        )

        files = [(self.root / rel, rel) for rel in changes.to_update]
        result = self.pipeline.process(files)
        self.store.merge(
            changes.deleted,
            changes.to_update,
            result.records_by_file(),
            result.file_metadata,
            refreshed=changes.touched,
        )

        logger.info("Index updated in %.2fs", time.perf_counter() - t0)
        return UpdateResult(
            updated=True,
            changes=changes,
            files_processed=len(files),
            symbols_extracted=len(result.records),
            failures=tuple(result.failures),
        )


__all__ = ["BuildResult", "SymbolIndexEngine", "UpdateResult"]
