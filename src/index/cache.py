"""In-memory extraction cache keyed by a cheap file fingerprint."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from index.models import FileMetadata, SymbolRecord
from index.utils import hash_bytes
from parse.treesitter_symbols import ExtractError, ExtractResult, extract_symbols

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

# (relative path, st_mtime_ns, st_size)
Fingerprint = tuple[str, int, int]


@dataclass(frozen=True)
class CacheEntry:
    """Extraction output for one file at one fingerprint."""

    records: tuple[SymbolRecord, ...]
    metadata: FileMetadata
    error: ExtractError | None = None


class ExtractionCache:
    """Memoize extraction results so unchanged files are never re-parsed.

    Entries live for the lifetime of the cache. A changed file gets a new
    fingerprint and therefore a new entry; old entries are only dropped by
    ``clear()``.
    """

    def __init__(
        self, extractor: Callable[[bytes, str], ExtractResult] | None = None
    ) -> None:
        self._extractor = extractor or extract_symbols
        self._entries: dict[Fingerprint, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_or_extract(self, path: Path, relative_path: str) -> CacheEntry:
        """Return the entry for ``path``, extracting it on a fingerprint miss.

        Metadata is built from the same read that feeds the extractor. When
        the file changes while being read the entry is returned but not
        cached.
        """
        before = path.stat()
        key: Fingerprint = (relative_path, before.st_mtime_ns, before.st_size)

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self.hits += 1
                return entry
            self.misses += 1

        data = path.read_bytes()
        result = self._extractor(data, relative_path)
        entry = CacheEntry(
            records=tuple(result.records),
            metadata=FileMetadata(
                path=relative_path,
                mtime=before.st_mtime,
                size=len(data),
                content_hash=hash_bytes(data),
            ),
            error=result.error,
        )

        after = path.stat()
        if (after.st_mtime_ns, after.st_size) == (before.st_mtime_ns, before.st_size):
            with self._lock:
                self._entries[key] = entry
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0


__all__ = ["CacheEntry", "ExtractionCache", "Fingerprint"]
