"""File scanning utilities for the symbol index."""

from __future__ import annotations

from fnmatch import fnmatch
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, cast

from gitignore_parser import parse_gitignore  # type: ignore[import-untyped]

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence
    from pathlib import Path

DEFAULT_EXTENSION = ".rb"
DEFAULT_IGNORE_PREFIXES = ("vendor/", "tmp/")


def _is_within_root(path: Path, root: Path) -> bool:
    """Return True when the resolved path stays within the resolved root."""
    try:
        root_resolved = root.resolve()
        path_resolved = path.resolve()
    except OSError:
        return False

    try:
        path_resolved.relative_to(root_resolved)
    except ValueError:
        return False

    return True


def _build_gitignore_matcher(root: Path) -> Callable[[str], bool] | None:
    gitignore_path = root / ".gitignore"
    if gitignore_path.is_file():
        return cast("Callable[[str], bool]", parse_gitignore(gitignore_path))
    return None


class SourceFilter:
    """Decide which files under a root belong to the indexed corpus.

    Relative-path rules (extension, hidden components, ignore prefixes,
    exclude patterns) are usable for paths that no longer exist, which the
    watch path needs for deletions.
    """

    def __init__(
        self,
        directory: Path,
        *,
        extension: str = DEFAULT_EXTENSION,
        index_dir: str = "",
        ignore_prefixes: Sequence[str] = DEFAULT_IGNORE_PREFIXES,
        exclude_patterns: Sequence[str] | None = None,
        respect_gitignore: bool = False,
    ) -> None:
        self.directory = directory
        self.extension = extension.lower()
        self.index_dir = index_dir
        self.ignore_prefixes = tuple(prefix.lower() for prefix in ignore_prefixes)
        self.exclude_patterns = list(exclude_patterns or [])
        self._gitignore_matches = (
            _build_gitignore_matcher(directory) if respect_gitignore else None
        )

    def matches_relative(self, rel_path: str) -> bool:
        """Apply the path-only rules to a POSIX path relative to the root."""
        parts = PurePosixPath(rel_path).parts
        if not parts or not rel_path.lower().endswith(self.extension):
            return False

        if any(part.startswith(".") for part in parts):
            return False

        if self.index_dir and parts[0] == self.index_dir:
            return False

        lowered = rel_path.lower()
        if any(lowered.startswith(prefix) for prefix in self.ignore_prefixes):
            return False

        return not any(fnmatch(rel_path, pat) for pat in self.exclude_patterns)

    def matches_directory(self, rel_path: str) -> bool:
        """Check whether a directory may hold indexed files.

        Applies the hidden-component, index-dir and ignore-prefix rules.
        """
        parts = PurePosixPath(rel_path).parts
        if not parts or any(part.startswith(".") for part in parts):
            return False

        if self.index_dir and parts[0] == self.index_dir:
            return False

        lowered = f"{rel_path.lower()}/"
        return not any(lowered.startswith(prefix) for prefix in self.ignore_prefixes)

    def accepts(self, path: Path) -> bool:
        """Check if an existing file should be indexed."""
        if not path.is_file() or path.is_symlink():
            return False

        if not _is_within_root(path, self.directory):
            return False

        try:
            rel_path = path.relative_to(self.directory)
        except ValueError:
            return False

        if not self.matches_relative(rel_path.as_posix()):
            return False

        if self._gitignore_matches is not None and self._gitignore_matches(str(path)):
            return False

        return True


def find_source_files(
    directory: Path,
    *,
    extension: str = DEFAULT_EXTENSION,
    index_dir: str = "",
    ignore_prefixes: Sequence[str] = DEFAULT_IGNORE_PREFIXES,
    exclude_patterns: Sequence[str] | None = None,
    respect_gitignore: bool = False,
) -> Iterator[Path]:
    """Find all source files in a directory.

    Args:
        directory: Directory to search
        extension: File extension to index (default ".rb")
        index_dir: Directory name holding the index, always skipped
        ignore_prefixes: Case-insensitive relative path prefixes to skip
        exclude_patterns: Optional fnmatch patterns; matching files are skipped
        respect_gitignore: Also skip files matched by the root .gitignore

    Yields:
        Path objects for each source file found, sorted lexicographically
        by relative path for deterministic ordering.
    """
    source_filter = SourceFilter(
        directory,
        extension=extension,
        index_dir=index_dir,
        ignore_prefixes=ignore_prefixes,
        exclude_patterns=exclude_patterns,
        respect_gitignore=respect_gitignore,
    )
    yield from iter_filtered(directory, source_filter)


def iter_filtered(directory: Path, source_filter: SourceFilter) -> Iterator[Path]:
    matched_files = [
        path
        for path in directory.rglob(f"*{source_filter.extension}")
        if source_filter.accepts(path)
    ]

    matched_files.sort(key=lambda p: p.relative_to(directory).as_posix())

    yield from matched_files


__all__ = ["SourceFilter", "find_source_files", "iter_filtered"]
