"""Persisted index contract definitions.

This module defines the stable on-disk layout of a symbol index directory.
"""

from __future__ import annotations

from dataclasses import dataclass

# Index format version. Snapshots written with a different version must be
# rebuilt rather than merged into.
INDEX_FORMAT_VERSION = 1

TOOL_NAME = "symindex"

DEFAULT_INDEX_DIR = ".symindex"

# Snapshot filename constants (stable contract identifiers).
INDEX_JSON = "index.json"
FILES_JSON = "files.json"
META_JSON = "meta.json"
WATCH_LOCK = "watch.lock"


@dataclass(frozen=True)
class SnapshotFileSpec:
    """Specification for one file of the persisted index snapshot."""

    filename: str
    format: str
    required_fields_note: str


SNAPSHOT_FILE_SPECS: dict[str, SnapshotFileSpec] = {
    "index": SnapshotFileSpec(
        filename=INDEX_JSON,
        format="json",
        required_fields_note="SymbolIndex fields: version, built_at, totals, symbols.",
    ),
    "files": SnapshotFileSpec(
        filename=FILES_JSON,
        format="json",
        required_fields_note="Mapping of relative path -> FileMetadata.",
    ),
    "meta": SnapshotFileSpec(
        filename=META_JSON,
        format="json",
        required_fields_note="BuildMeta fields: last_built and version strings.",
    ),
}
