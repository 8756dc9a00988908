"""Freshness verification for a persisted symbol index."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from parse.treesitter_symbols import extract_symbols

if TYPE_CHECKING:
    from collections.abc import Iterable

    from index.engine import SymbolIndexEngine
    from index.models import SymbolIndex, SymbolRecord

_RecordKey = tuple[str, str, int, str, bool]


@dataclass(frozen=True)
class FreshnessResult:
    ok: bool
    stale: tuple[str, ...] = field(default_factory=tuple)
    missing: tuple[str, ...] = field(default_factory=tuple)
    extra: tuple[str, ...] = field(default_factory=tuple)


def _record_keys(records: Iterable[SymbolRecord]) -> list[_RecordKey]:
    return sorted(
        (
            record.kind,
            record.name,
            record.line,
            record.enclosing_name or "",
            record.is_class_level,
        )
        for record in records
    )


def _records_by_file(index: SymbolIndex) -> dict[str, list[SymbolRecord]]:
    grouped: dict[str, list[SymbolRecord]] = {}
    for records in index.symbols.values():
        for record in records:
            grouped.setdefault(record.file, []).append(record)
    return grouped


def verify_freshness(engine: SymbolIndexEngine) -> FreshnessResult:
    """Verify that the persisted index matches the source tree.

    Re-extracts every indexed file in memory and compares the result with
    the persisted records of that file. Nothing is written. File set
    comparisons use paths relative to the root.

    Args:
        engine: Engine bound to the root and index directory to check.

    Returns:
        FreshnessResult with ok status and the stale, missing (indexed but
        gone from disk) and extra (on disk but not indexed) relative paths.

    Raises:
        IndexMissingError: No index has been built yet.
        IndexCorruptError: The snapshot cannot be decoded.
    """
    index = engine.store.load()
    file_table = engine.store.load_file_table()
    persisted = _records_by_file(index)

    current = {rel: path for path, rel in engine.discover_files()}
    indexed = set(file_table) | set(persisted)

    missing = sorted(indexed - set(current))
    extra = sorted(set(current) - indexed)

    stale: list[str] = []
    for relative_path in sorted(indexed & set(current)):
        try:
            data = current[relative_path].read_bytes()
        except FileNotFoundError:
            missing.append(relative_path)
            continue
        fresh = extract_symbols(data, relative_path)
        if _record_keys(fresh.records) != _record_keys(
            persisted.get(relative_path, ())
        ):
            stale.append(relative_path)

    missing.sort()
    ok = not stale and not missing and not extra
    return FreshnessResult(
        ok=ok,
        stale=tuple(stale),
        missing=tuple(missing),
        extra=tuple(extra),
    )


__all__ = ["FreshnessResult", "verify_freshness"]
