"""Human-readable rendering of search results."""

from __future__ import annotations

from typing import TYPE_CHECKING

from query.engine import classify_match

if TYPE_CHECKING:
    from collections.abc import Sequence

    from index.models import SymbolRecord


def format_signature(record: SymbolRecord) -> str:
    if record.kind == "method":
        if record.enclosing_name is None:
            return f"{record.name}(...)"
        separator = "." if record.is_class_level else "#"
        return f"{record.enclosing_name}{separator}{record.name}(...)"
    if record.kind == "class":
        return f"class {record.name}"
    if record.kind == "module":
        return f"module {record.name}"
    if record.kind == "constant":
        return f"{record.name} = ..."
    if record.kind == "scope":
        return f"scope :{record.name}"
    return record.name


def format_location(record: SymbolRecord, query: str) -> str:
    """``file:line (Enclosing) [exact]`` for one result."""
    text = f"{record.file}:{record.line}"
    if record.enclosing_name is not None:
        text += f" ({record.enclosing_name})"
    match = classify_match(record.name, query)
    if match is not None:
        text += f" [{match}]"
    return text


def format_results(query: str, results: Sequence[SymbolRecord]) -> list[str]:
    """Render numbered result blocks, one location and one signature line each."""
    if not results:
        return [f'No matches for "{query}"']

    lines = [f'{len(results)} result(s) for "{query}":', ""]
    for number, record in enumerate(results, 1):
        lines.append(f"{number}) {format_location(record, query)}")
        lines.append(f"   {format_signature(record)} [{record.kind}]")
        lines.append("")
    return lines


__all__ = ["format_location", "format_results", "format_signature"]
