"""Symbol index models.

This module contains the records extracted from Ruby sources, the per-file
fingerprints used for change detection, and the persisted index snapshot.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal, get_args

from pydantic import BaseModel, ConfigDict, Field

from contract.artifacts import INDEX_FORMAT_VERSION

SymbolKind = Literal["class", "module", "method", "constant", "scope"]

SYMBOL_KINDS: tuple[str, ...] = get_args(SymbolKind)


class SymbolRecord(BaseModel):
    """A single definition site extracted from a Ruby source file."""

    model_config = ConfigDict(frozen=True)

    kind: SymbolKind
    name: str
    file: str
    line: int = Field(ge=1)
    enclosing_name: str | None = Field(
        default=None,
        description="Innermost class/module lexically containing the definition",
    )
    is_class_level: bool = Field(
        default=False,
        description="True for methods bound to the type rather than instances",
    )

    @property
    def location(self) -> tuple[str, int]:
        return (self.file, self.line)


class FileMetadata(BaseModel):
    """Fingerprint of one indexed file at the time it was extracted."""

    model_config = ConfigDict(frozen=True)

    path: str
    mtime: float = Field(description="Modification time, epoch seconds")
    size: int = Field(ge=0)
    content_hash: str = Field(description="SHA-256 hex digest of the file bytes")


class SymbolIndex(BaseModel):
    """Persisted symbol index: symbol name -> definition records."""

    version: int = Field(default=INDEX_FORMAT_VERSION)
    built_at: str
    total_files: int = Field(default=0, ge=0)
    total_symbols: int = Field(default=0, ge=0)
    symbols: dict[str, list[SymbolRecord]] = Field(default_factory=dict)

    def count_records(self) -> int:
        return sum(len(records) for records in self.symbols.values())


class BuildMeta(BaseModel):
    """Build provenance written alongside every snapshot."""

    last_built: str
    tool_version: str
    tree_sitter_version: str
    grammar_version: str
    python_version: str


def group_by_name(records: Iterable[SymbolRecord]) -> dict[str, list[SymbolRecord]]:
    """Group records into name buckets."""
    symbols: dict[str, list[SymbolRecord]] = {}
    for record in records:
        symbols.setdefault(record.name, []).append(record)
    return symbols


__all__ = [
    "SYMBOL_KINDS",
    "BuildMeta",
    "FileMetadata",
    "SymbolIndex",
    "SymbolKind",
    "SymbolRecord",
    "group_by_name",
]
