"""On-disk symbol index: snapshot persistence and incremental merge."""

from __future__ import annotations

import logging
import platform
from collections.abc import Collection, Iterable, Mapping, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from contract.artifacts import (
    FILES_JSON,
    INDEX_FORMAT_VERSION,
    INDEX_JSON,
    META_JSON,
    TOOL_NAME,
    WATCH_LOCK,
)
from index.errors import IndexCorruptError, IndexIOError, IndexMissingError
from index.models import (
    BuildMeta,
    FileMetadata,
    SymbolIndex,
    SymbolRecord,
    group_by_name,
)
from index.utils import package_version, write_json_atomic

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_FILE_TABLE = TypeAdapter(dict[str, FileMetadata])


def _now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


def _remove_file_symbols(
    symbols: dict[str, list[SymbolRecord]], files: Collection[str]
) -> dict[str, list[SymbolRecord]]:
    """Drop every record of ``files`` and every bucket left empty."""
    if not files:
        return symbols
    kept: dict[str, list[SymbolRecord]] = {}
    for name, records in symbols.items():
        remaining = [record for record in records if record.file not in files]
        if remaining:
            kept[name] = remaining
    return kept


class IndexStore:
    """Read and write the persisted snapshot under one index directory.

    The snapshot is three JSON files: the symbol payload, the file table used
    for change detection, and build metadata. Each file is replaced
    atomically. The payload is written before the file table, so an
    interrupted write leaves the file table older than the payload and the
    next update re-processes the affected files.
    """

    def __init__(self, index_dir: Path) -> None:
        self.index_dir = index_dir

    @property
    def index_path(self) -> Path:
        return self.index_dir / INDEX_JSON

    @property
    def files_path(self) -> Path:
        return self.index_dir / FILES_JSON

    @property
    def meta_path(self) -> Path:
        return self.index_dir / META_JSON

    @property
    def lock_path(self) -> Path:
        return self.index_dir / WATCH_LOCK

    def exists(self) -> bool:
        return self.index_path.is_file() and self.files_path.is_file()

    # ── Reading ──

    def _read_bytes(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise IndexMissingError(path) from exc
        except OSError as exc:
            msg = f"Cannot read {path}: {exc}"
            raise IndexIOError(msg) from exc

    def load(self) -> SymbolIndex:
        """Load the symbol payload.

        Raises:
            IndexMissingError: No index has been built yet.
            IndexCorruptError: The payload is not a valid snapshot.
        """
        data = self._read_bytes(self.index_path)
        try:
            index = SymbolIndex.model_validate_json(data)
        except ValidationError as exc:
            msg = f"Invalid index snapshot {self.index_path}: {exc}"
            raise IndexCorruptError(msg) from exc

        if index.version != INDEX_FORMAT_VERSION:
            msg = (
                f"Index format version {index.version} is not supported "
                f"(expected {INDEX_FORMAT_VERSION}); run 'rebuild'"
            )
            raise IndexCorruptError(msg)
        return index

    def load_file_table(self) -> dict[str, FileMetadata]:
        data = self._read_bytes(self.files_path)
        try:
            return _FILE_TABLE.validate_json(data)
        except ValidationError as exc:
            msg = f"Invalid file table {self.files_path}: {exc}"
            raise IndexCorruptError(msg) from exc

    def load_meta(self) -> BuildMeta | None:
        if not self.meta_path.is_file():
            return None
        data = self._read_bytes(self.meta_path)
        try:
            return BuildMeta.model_validate_json(data)
        except ValidationError as exc:
            msg = f"Invalid build metadata {self.meta_path}: {exc}"
            raise IndexCorruptError(msg) from exc

    # ── Writing ──

    def _write(self, path: Path, obj: object) -> None:
        try:
            write_json_atomic(path, obj)
        except OSError as exc:
            msg = f"Cannot write {path}: {exc}"
            raise IndexIOError(msg) from exc

    def _write_snapshot(
        self, index: SymbolIndex, file_table: Mapping[str, FileMetadata]
    ) -> None:
        self._write(self.index_path, index)
        self._write(self.files_path, dict(sorted(file_table.items())))
        self._write(self.meta_path, self._build_meta(index.built_at))

    def _build_meta(self, built_at: str) -> BuildMeta:
        return BuildMeta(
            last_built=built_at,
            tool_version=package_version(TOOL_NAME),
            tree_sitter_version=package_version("tree-sitter"),
            grammar_version=package_version("tree-sitter-ruby"),
            python_version=platform.python_version(),
        )

    def save(
        self,
        files: Sequence[Any],
        records: Iterable[SymbolRecord],
        file_metadata: Mapping[str, FileMetadata],
    ) -> SymbolIndex:
        """Overwrite the snapshot with a full build."""
        records = list(records)
        index = SymbolIndex(
            built_at=_now(),
            total_files=len(files),
            total_symbols=len(records),
            symbols=group_by_name(records),
        )
        self._write_snapshot(index, file_metadata)
        logger.info(
            "Saved index: %d files, %d symbols", index.total_files, index.total_symbols
        )
        return index

    def merge(
        self,
        deleted_files: Iterable[str],
        changed_or_new_files: Iterable[str],
        new_records_by_file: Mapping[str, Sequence[SymbolRecord]],
        file_metadata: Mapping[str, FileMetadata],
        refreshed: Iterable[FileMetadata] = (),
    ) -> SymbolIndex:
        """Replace the records of changed files and drop deleted files.

        Every record of a deleted, changed or new file is removed before the
        fresh records are inserted, so no record with a stale line survives.
        Changed files without fresh metadata (their extraction failed) leave
        the file table and are retried by the next update. ``refreshed``
        entries replace the fingerprints of files whose records still hold.
        """
        deleted = set(deleted_files)
        updated = set(changed_or_new_files)

        index = self.load()
        file_table = self.load_file_table()

        symbols = _remove_file_symbols(index.symbols, deleted | updated)
        for path in sorted(updated):
            for record in new_records_by_file.get(path, ()):
                symbols.setdefault(record.name, []).append(record)

        for path in deleted:
            file_table.pop(path, None)
        for path in updated:
            metadata = file_metadata.get(path)
            if metadata is None:
                file_table.pop(path, None)
            else:
                file_table[path] = metadata
        for metadata in refreshed:
            if metadata.path in file_table:
                file_table[metadata.path] = metadata

        merged = SymbolIndex(
            built_at=_now(),
            total_files=len(file_table),
            total_symbols=sum(len(records) for records in symbols.values()),
            symbols=symbols,
        )
        self._write_snapshot(merged, file_table)
        logger.info(
            "Merged index: %d removed, %d re-indexed, %d symbols total",
            len(deleted),
            len(updated),
            merged.total_symbols,
        )
        return merged


    def refresh_file_metadata(self, entries: Iterable[FileMetadata]) -> int:
        """Rewrite fingerprints in the file table only; the payload is untouched.

        Returns the number of entries written. Paths missing from the table
        are ignored.
        """
        file_table = self.load_file_table()
        count = 0
        for metadata in entries:
            if metadata.path in file_table:
                file_table[metadata.path] = metadata
                count += 1
        if count:
            self._write(self.files_path, dict(sorted(file_table.items())))
            logger.debug("Refreshed %d file fingerprints", count)
        return count


__all__ = ["IndexStore"]
