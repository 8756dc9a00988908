"""Stable contract surface for the persisted symbol index.

Filenames and the format version are the authoritative boundary between
writers (build/update/watch) and readers (search/status/validate).
"""

from contract.artifacts import (
    DEFAULT_INDEX_DIR,
    FILES_JSON,
    INDEX_FORMAT_VERSION,
    INDEX_JSON,
    META_JSON,
    SNAPSHOT_FILE_SPECS,
    TOOL_NAME,
    WATCH_LOCK,
    SnapshotFileSpec,
)

__all__ = [
    "DEFAULT_INDEX_DIR",
    "FILES_JSON",
    "INDEX_FORMAT_VERSION",
    "INDEX_JSON",
    "META_JSON",
    "SNAPSHOT_FILE_SPECS",
    "TOOL_NAME",
    "WATCH_LOCK",
    "SnapshotFileSpec",
]
