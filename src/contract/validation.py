"""Validation helpers for a persisted index directory."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import orjson
from pydantic import TypeAdapter, ValidationError

from contract.artifacts import INDEX_FORMAT_VERSION, SNAPSHOT_FILE_SPECS
from contract.models import BuildMeta, FileMetadata, SymbolIndex

if TYPE_CHECKING:
    from pathlib import Path

_FILE_TABLE = TypeAdapter(dict[str, FileMetadata])


@dataclass(frozen=True)
class ValidationMessage:
    snapshot: str
    path: Path
    message: str
    key: str | None = None

    def location(self) -> str:
        if self.key is None:
            return str(self.path)
        return f"{self.path}[{self.key}]"

    def to_dict(self) -> dict[str, object]:
        return {
            "snapshot": self.snapshot,
            "path": str(self.path),
            "key": self.key,
            "message": self.message,
        }


@dataclass
class ValidationResult:
    errors: list[ValidationMessage] = field(default_factory=list)
    warnings: list[ValidationMessage] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def error(
        self, snapshot: str, path: Path, message: str, key: str | None = None
    ) -> None:
        self.errors.append(ValidationMessage(snapshot, path, message, key))

    def warn(
        self, snapshot: str, path: Path, message: str, key: str | None = None
    ) -> None:
        self.warnings.append(ValidationMessage(snapshot, path, message, key))


def validate_index_dir(index_dir: Path) -> ValidationResult:
    """Check every snapshot file under ``index_dir`` against its model.

    Beyond per-file schema checks, the payload is cross-checked against the
    file table: bucket names must match record names, totals must match the
    records, and every record must belong to a file in the table.
    """
    result = ValidationResult()

    if not index_dir.exists():
        result.error("index_dir", index_dir, "Index directory does not exist.")
        return result

    if not index_dir.is_dir():
        result.error("index_dir", index_dir, "Index path is not a directory.")
        return result

    index_spec = SNAPSHOT_FILE_SPECS["index"]
    files_spec = SNAPSHOT_FILE_SPECS["files"]
    meta_spec = SNAPSHOT_FILE_SPECS["meta"]

    index = _validate_index(index_dir / index_spec.filename, result)
    file_table = _validate_file_table(index_dir / files_spec.filename, result)
    _validate_meta(index_dir / meta_spec.filename, result)

    if index is not None and file_table is not None:
        _cross_check(index, file_table, index_dir / index_spec.filename, result)

    return result


def _read_json(snapshot: str, path: Path, result: ValidationResult) -> Any:
    if not path.exists():
        result.error(snapshot, path, "Required snapshot file is missing.")
        return None
    try:
        return orjson.loads(path.read_bytes())
    except OSError as exc:
        result.error(snapshot, path, f"Failed to read file: {exc}.")
    except orjson.JSONDecodeError as exc:
        result.error(snapshot, path, f"Invalid JSON: {exc}.")
    return None


def _validate_index(path: Path, result: ValidationResult) -> SymbolIndex | None:
    raw = _read_json("index", path, result)
    if raw is None:
        return None

    try:
        index = SymbolIndex.model_validate(raw)
    except ValidationError as exc:
        result.error("index", path, f"Schema validation failed: {exc}.")
        return None

    if index.version != INDEX_FORMAT_VERSION:
        result.error(
            "index",
            path,
            "Format version mismatch: "
            f"expected {INDEX_FORMAT_VERSION}, got {index.version}.",
        )
    return index


def _validate_file_table(
    path: Path, result: ValidationResult
) -> dict[str, FileMetadata] | None:
    raw = _read_json("files", path, result)
    if raw is None:
        return None

    try:
        table = _FILE_TABLE.validate_python(raw)
    except ValidationError as exc:
        result.error("files", path, f"Schema validation failed: {exc}.")
        return None

    for key, metadata in table.items():
        if metadata.path != key:
            result.error(
                "files",
                path,
                f"Entry path {metadata.path!r} does not match its key.",
                key=key,
            )
    return table


def _validate_meta(path: Path, result: ValidationResult) -> None:
    if not path.exists():
        result.warn("meta", path, "Build metadata is missing.")
        return

    raw = _read_json("meta", path, result)
    if raw is None:
        return
    try:
        BuildMeta.model_validate(raw)
    except ValidationError as exc:
        result.error("meta", path, f"Schema validation failed: {exc}.")


def _cross_check(
    index: SymbolIndex,
    file_table: dict[str, FileMetadata],
    path: Path,
    result: ValidationResult,
) -> None:
    orphaned: set[str] = set()
    for name, records in index.symbols.items():
        if not records:
            result.error("index", path, "Empty symbol bucket.", key=name)
        for record in records:
            if record.name != name:
                result.error(
                    "index",
                    path,
                    f"Record {record.name!r} is filed under the wrong name.",
                    key=name,
                )
            if record.file not in file_table:
                orphaned.add(record.file)

    for file in sorted(orphaned):
        result.error(
            "index",
            path,
            "Records reference a file missing from the file table.",
            key=file,
        )

    counted = index.count_records()
    if index.total_symbols != counted:
        result.error(
            "index",
            path,
            f"total_symbols is {index.total_symbols} but {counted} records "
            "are stored.",
        )

    if index.total_files != len(file_table):
        result.warn(
            "index",
            path,
            f"total_files is {index.total_files} but the file table has "
            f"{len(file_table)} entries.",
        )


__all__ = [
    "ValidationMessage",
    "ValidationResult",
    "validate_index_dir",
]
