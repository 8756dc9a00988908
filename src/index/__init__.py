"""Symbol index engine entry points."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from index.engine import BuildResult, UpdateResult
    from settings.config import SymIndexConfig


def build_index(
    *, root: Path, config: SymIndexConfig | None = None, show_progress: bool = False
) -> BuildResult:
    """Run a full build via lazy import to avoid package import cycles."""
    from index.engine import SymbolIndexEngine

    with SymbolIndexEngine(root, config, show_progress=show_progress) as engine:
        return engine.build()


def update_index(
    *, root: Path, config: SymIndexConfig | None = None, show_progress: bool = False
) -> UpdateResult:
    """Run an incremental update via lazy import to avoid package import cycles."""
    from index.engine import SymbolIndexEngine

    with SymbolIndexEngine(root, config, show_progress=show_progress) as engine:
        return engine.update()


__all__ = ["build_index", "update_index"]
