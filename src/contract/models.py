"""Index models exposed at the persisted-snapshot boundary."""

from index.models import BuildMeta, FileMetadata, SymbolIndex, SymbolRecord

__all__ = ["BuildMeta", "FileMetadata", "SymbolIndex", "SymbolRecord"]
