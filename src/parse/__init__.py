"""Parsing utilities for Ruby sources."""

from parse.treesitter_symbols import (
    ExtractError,
    ExtractResult,
    extract_symbols,
    extract_symbols_from_file,
)

__all__ = [
    "ExtractError",
    "ExtractResult",
    "extract_symbols",
    "extract_symbols_from_file",
]
