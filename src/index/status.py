"""Read-only status report for an index directory."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from watch.session import inspect_lock

if TYPE_CHECKING:
    from pathlib import Path

    from index.engine import SymbolIndexEngine


@dataclass(frozen=True)
class IndexStatus:
    index_dir: Path
    exists: bool
    built_at: str | None = None
    total_files: int = 0
    total_symbols: int = 0
    tool_version: str | None = None
    tree_sitter_version: str | None = None
    grammar_version: str | None = None
    python_version: str | None = None
    watcher_pid: int | None = None
    pending_changes: int = 0

    @property
    def watching(self) -> bool:
        return self.watcher_pid is not None

    @property
    def up_to_date(self) -> bool:
        return self.exists and self.pending_changes == 0


def collect_status(engine: SymbolIndexEngine) -> IndexStatus:
    """Summarize the index without writing it.

    The only side effect is removing a watch lock left by a dead process.
    """
    store = engine.store
    watcher_pid = inspect_lock(store.lock_path)
    if not store.exists():
        return IndexStatus(
            index_dir=store.index_dir, exists=False, watcher_pid=watcher_pid
        )

    index = store.load()
    meta = store.load_meta()
    pending = engine.pending_changes()
    return IndexStatus(
        index_dir=store.index_dir,
        exists=True,
        built_at=index.built_at,
        total_files=index.total_files,
        total_symbols=index.total_symbols,
        tool_version=meta.tool_version if meta else None,
        tree_sitter_version=meta.tree_sitter_version if meta else None,
        grammar_version=meta.grammar_version if meta else None,
        python_version=meta.python_version if meta else None,
        watcher_pid=watcher_pid,
        pending_changes=pending.total,
    )


__all__ = ["IndexStatus", "collect_status"]
