"""Symbol lookup against the persisted index."""

from query.engine import MatchKind, QueryEngine, classify_match
from query.format import format_location, format_results, format_signature

__all__ = [
    "MatchKind",
    "QueryEngine",
    "classify_match",
    "format_location",
    "format_results",
    "format_signature",
]
