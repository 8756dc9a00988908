"""Exceptions raised by the symbol index engine."""

from __future__ import annotations


class SymbolIndexError(Exception):
    """Base class for symbol index failures."""


class IndexMissingError(SymbolIndexError):
    """Raised when an index is read before any build has written it."""

    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(f"No symbol index found at {path}; run 'rebuild' first")


class IndexIOError(SymbolIndexError):
    """Raised when index files cannot be read or written."""


class IndexCorruptError(SymbolIndexError):
    """Raised when a persisted snapshot cannot be decoded or validated."""


class WatchSessionActiveError(SymbolIndexError):
    """Raised when another live watch session already owns the index."""

    def __init__(self, pid: int | None) -> None:
        self.pid = pid
        detail = f" (PID: {pid})" if pid is not None else ""
        super().__init__(f"A watch session is already running{detail}")


__all__ = [
    "IndexCorruptError",
    "IndexIOError",
    "IndexMissingError",
    "SymbolIndexError",
    "WatchSessionActiveError",
]
