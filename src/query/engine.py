"""Exact and prefix lookup over a persisted symbol index."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from index.errors import IndexMissingError

if TYPE_CHECKING:
    from index.models import SymbolIndex, SymbolKind, SymbolRecord
    from index.store import IndexStore

logger = logging.getLogger(__name__)

MatchKind = Literal["exact", "prefix"]


def classify_match(name: str, query: str) -> MatchKind | None:
    """Tag how ``name`` matched ``query``.

    Examples:
        >>> classify_match("User", "User")
        'exact'
        >>> classify_match("UserMailer", "User")
        'prefix'
        >>> classify_match("Account", "User") is None
        True
    """
    if name == query:
        return "exact"
    if name.startswith(query):
        return "prefix"
    return None


class QueryEngine:
    """Answer name queries against one index store.

    The snapshot is loaded once per engine; call ``invalidate()`` after the
    store has been rewritten to pick up the new state.
    """

    def __init__(self, store: IndexStore) -> None:
        self.store = store
        self._index: SymbolIndex | None = None

    def index_exists(self) -> bool:
        return self.store.exists()

    def invalidate(self) -> None:
        self._index = None

    def _load(self) -> SymbolIndex:
        if self._index is None:
            self._index = self.store.load()
        return self._index

    def search(
        self, query: str, kind: SymbolKind | None = None
    ) -> list[SymbolRecord]:
        """Return records whose name equals or starts with ``query``.

        Exact matches are collected first, then prefix matches; duplicates
        at the same ``(file, line)`` keep their first occurrence and the
        result is ordered by file, then line.
        """
        try:
            index = self._load()
        except IndexMissingError as exc:
            logger.warning("%s", exc)
            return []

        symbols = index.symbols
        candidates: list[SymbolRecord] = list(symbols.get(query, ()))
        for name, records in symbols.items():
            if name != query and name.startswith(query):
                candidates.extend(records)

        if kind is not None:
            candidates = [record for record in candidates if record.kind == kind]

        seen: set[tuple[str, int]] = set()
        results: list[SymbolRecord] = []
        for record in candidates:
            if record.location in seen:
                continue
            seen.add(record.location)
            results.append(record)

        results.sort(key=lambda record: record.location)
        return results


__all__ = ["MatchKind", "QueryEngine", "classify_match"]
