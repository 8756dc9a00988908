"""
Change detection between the file system and the persisted file table.

Compares current files against stored fingerprints to find what changed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from index.utils import compute_file_hash

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

    from index.models import FileMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileChanges:
    """Files that differ from the stored file table, by category.

    ``touched`` holds refreshed metadata for files whose modification time
    or size moved while their content hash did not. They need no
    re-extraction, only a file table update.
    """

    changed: tuple[str, ...] = ()
    new: tuple[str, ...] = ()
    deleted: tuple[str, ...] = ()
    touched: tuple[FileMetadata, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.changed or self.new or self.deleted)

    @property
    def to_update(self) -> tuple[str, ...]:
        return self.changed + self.new

    @property
    def total(self) -> int:
        return len(self.changed) + len(self.new) + len(self.deleted)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "changed": list(self.changed),
            "new": list(self.new),
            "deleted": list(self.deleted),
        }


class ChangeDetector:
    """Detect file changes since the last persisted snapshot."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def compare(
        self, relative_path: str, stored: FileMetadata
    ) -> tuple[bool, FileMetadata | None]:
        """Compare one file against its stored fingerprint.

        Size and modification time are a cheap gate: when both match the file
        is unchanged and is not hashed. Otherwise the content hash decides.

        Returns:
            ``(changed, refreshed)``. ``refreshed`` is the stored metadata
            with the current mtime and size when only those moved, else None.

        Raises:
            FileNotFoundError: The file disappeared.
        """
        path = self.root / relative_path
        stat = path.stat()
        if stat.st_mtime == stored.mtime and stat.st_size == stored.size:
            return False, None
        if compute_file_hash(path) != stored.content_hash:
            return True, None
        refreshed = stored.model_copy(
            update={"mtime": stat.st_mtime, "size": stat.st_size}
        )
        return False, refreshed

    def has_changed(self, relative_path: str, stored: FileMetadata) -> bool:
        return self.compare(relative_path, stored)[0]

    def diff(
        self,
        current_files: Iterable[str],
        stored_metadata: Mapping[str, FileMetadata],
    ) -> FileChanges:
        """Partition files into changed, new and deleted.

        Every file lands in at most one category; files absent from all three
        are unchanged. Unchanged files whose stat moved are reported in
        ``touched`` so the caller can refresh their fingerprint.
        """
        current = set(current_files)
        changed: list[str] = []
        new: list[str] = []
        deleted: list[str] = []
        touched: list[FileMetadata] = []

        for relative_path in sorted(current):
            stored = stored_metadata.get(relative_path)
            if stored is None:
                new.append(relative_path)
                continue
            try:
                is_changed, refreshed = self.compare(relative_path, stored)
            except FileNotFoundError:
                logger.debug("%s vanished during diff", relative_path)
                deleted.append(relative_path)
                continue
            if is_changed:
                changed.append(relative_path)
            elif refreshed is not None:
                touched.append(refreshed)

        deleted.extend(path for path in stored_metadata if path not in current)

        return FileChanges(
            changed=tuple(changed),
            new=tuple(new),
            deleted=tuple(sorted(deleted)),
            touched=tuple(touched),
        )


__all__ = ["ChangeDetector", "FileChanges"]
