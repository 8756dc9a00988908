"""Tree-sitter based symbol extraction for Ruby sources."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tree_sitter import Language, Node, Parser
from tree_sitter_ruby import language as get_ruby_language

from index.models import SymbolKind, SymbolRecord

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

_LANGUAGE: Language | None = None
_LOCAL = threading.local()

# Closure literals accepted as the body of a named scope.
_CLOSURE_CALLS = frozenset({"lambda", "proc"})


def _get_language() -> Language:
    global _LANGUAGE
    if _LANGUAGE is None:
        _LANGUAGE = Language(get_ruby_language())
    return _LANGUAGE


def _get_parser() -> Parser:
    """Return this thread's Tree-sitter parser for Ruby.

    Parser instances must not be shared between threads, so every worker
    thread lazily creates its own.
    """
    parser: Parser | None = getattr(_LOCAL, "parser", None)
    if parser is None:
        parser = Parser(_get_language())
        _LOCAL.parser = parser
    return parser


@dataclass(frozen=True)
class ExtractError:
    """A recoverable extraction failure for one file."""

    path: str
    message: str
    line: int | None = None

    def location(self) -> str:
        if self.line is None:
            return self.path
        return f"{self.path}:{self.line}"


@dataclass
class ExtractResult:
    """Output of extracting one file."""

    records: list[SymbolRecord] = field(default_factory=list)
    error: ExtractError | None = None


@dataclass(frozen=True)
class _Context:
    """Lexical context handed to each visited node.

    A new value is created when entering a class, module or ``class << self``
    body; the caller's value is never modified.
    """

    enclosing_name: str | None = None
    singleton: bool = False

    def enter(self, name: str) -> _Context:
        return _Context(enclosing_name=name)

    def enter_singleton(self) -> _Context:
        return _Context(enclosing_name=self.enclosing_name, singleton=True)


_Visit = list[tuple[Node, _Context]]


def _text(node: Node | None) -> str | None:
    if node is None or node.text is None:
        return None
    return node.text.decode("utf8", errors="replace")


def _line(node: Node) -> int:
    return node.start_point[0] + 1


def _bare_constant_name(node: Node | None) -> str | None:
    """Return ``Bar`` for both ``Bar`` and ``Foo::Bar``."""
    if node is None:
        return None
    if node.type == "constant":
        return _text(node)
    if node.type == "scope_resolution":
        name_node = node.child_by_field_name("name")
        if name_node is not None and name_node.type == "constant":
            return _text(name_node)
    return None


def _symbol_literal(node: Node) -> str | None:
    """Return the name of a literal symbol such as ``:active`` or ``:"active"``."""
    if node.type == "simple_symbol":
        text = _text(node)
        return text[1:] if text and text.startswith(":") else None
    if node.type == "delimited_symbol":
        parts = node.named_children
        if parts and all(part.type == "string_content" for part in parts):
            return "".join(_text(part) or "" for part in parts)
    return None


def _is_closure(node: Node) -> bool:
    if node.type == "lambda":
        return True
    if node.type != "call" or node.child_by_field_name("block") is None:
        return False
    method = _text(node.child_by_field_name("method"))
    receiver = node.child_by_field_name("receiver")
    if receiver is None:
        return method in _CLOSURE_CALLS
    return _text(receiver) == "Proc" and method == "new"


def _scope_name(node: Node) -> str | None:
    """Return the scope name if ``node`` is ``scope :name, -> { ... }``.

    The receiver must be implicit or ``self``, the first argument a literal
    symbol, and a closure must be passed either as an argument or as the
    call's own block.
    """
    receiver = node.child_by_field_name("receiver")
    if receiver is not None and receiver.type != "self":
        return None
    if _text(node.child_by_field_name("method")) != "scope":
        return None

    arguments = node.child_by_field_name("arguments")
    if arguments is None:
        return None
    args = [child for child in arguments.named_children if child.type != "comment"]
    if not args:
        return None

    name = _symbol_literal(args[0])
    if name is None:
        return None

    if node.child_by_field_name("block") is not None:
        return name
    if any(_is_closure(arg) for arg in args[1:]):
        return name
    return None


def _constant_targets(left: Node | None) -> list[Node]:
    """Return the constant nodes assigned by an assignment's left side."""
    if left is None:
        return []
    if left.type in ("constant", "scope_resolution"):
        return [left] if _bare_constant_name(left) else []
    if left.type == "left_assignment_list":
        targets: list[Node] = []
        for child in left.named_children:
            if child.type == "rest_assignment":
                splatted = child.named_children
                targets.extend(_constant_targets(splatted[0] if splatted else None))
            else:
                targets.extend(_constant_targets(child))
        return targets
    return []


class _SymbolVisitor:
    """Emit symbol records for one syntax tree.

    Each ``visit_*`` arm appends the records for its node and returns the
    children still to visit, paired with the context they are visited in.
    Node kinds without an arm are walked without emitting anything.
    """

    def __init__(self, relative_path: str) -> None:
        self.relative_path = relative_path
        self.records: list[SymbolRecord] = []
        self._arms: dict[str, Callable[[Node, _Context], _Visit]] = {
            "class": self.visit_class,
            "module": self.visit_module,
            "method": self.visit_method,
            "singleton_method": self.visit_singleton_method,
            "singleton_class": self.visit_singleton_class,
            "assignment": self.visit_assignment,
            "operator_assignment": self.visit_assignment,
            "call": self.visit_call,
        }

    def walk(self, root: Node) -> list[SymbolRecord]:
        stack: _Visit = [(root, _Context())]
        while stack:
            node, ctx = stack.pop()
            arm = self._arms.get(node.type, self.visit_default)
            stack.extend(reversed(arm(node, ctx)))
        return self.records

    def _emit(
        self,
        node: Node,
        kind: SymbolKind,
        name: str,
        ctx: _Context,
        *,
        class_level: bool = False,
    ) -> None:
        self.records.append(
            SymbolRecord(
                kind=kind,
                name=name,
                file=self.relative_path,
                line=_line(node),
                enclosing_name=ctx.enclosing_name,
                is_class_level=class_level,
            )
        )

    def visit_default(self, node: Node, ctx: _Context) -> _Visit:
        return [(child, ctx) for child in node.children]

    def _visit_namespace(self, node: Node, ctx: _Context, kind: SymbolKind) -> _Visit:
        name_node = node.child_by_field_name("name")
        name = _bare_constant_name(name_node)
        if name is None:
            return self.visit_default(node, ctx)

        self._emit(node, kind, name, ctx)

        # The name and superclass expressions belong to the outer scope.
        outer = [name_node, node.child_by_field_name("superclass")]
        inner = ctx.enter(name)
        return [
            (child, ctx if any(child == o for o in outer if o is not None) else inner)
            for child in node.children
        ]

    def visit_class(self, node: Node, ctx: _Context) -> _Visit:
        return self._visit_namespace(node, ctx, "class")

    def visit_module(self, node: Node, ctx: _Context) -> _Visit:
        return self._visit_namespace(node, ctx, "module")

    def visit_method(self, node: Node, ctx: _Context) -> _Visit:
        name = _text(node.child_by_field_name("name"))
        if name:
            self._emit(node, "method", name, ctx, class_level=ctx.singleton)
        return self.visit_default(node, ctx)

    def visit_singleton_method(self, node: Node, ctx: _Context) -> _Visit:
        name = _text(node.child_by_field_name("name"))
        if name:
            self._emit(node, "method", name, ctx, class_level=True)
        return self.visit_default(node, ctx)

    def visit_singleton_class(self, node: Node, ctx: _Context) -> _Visit:
        value = node.child_by_field_name("value")
        if value is None or value.type != "self":
            return self.visit_default(node, ctx)
        return self.visit_default(node, ctx.enter_singleton())

    def visit_assignment(self, node: Node, ctx: _Context) -> _Visit:
        for target in _constant_targets(node.child_by_field_name("left")):
            name = _bare_constant_name(target)
            if name:
                self._emit(target, "constant", name, ctx)
        return self.visit_default(node, ctx)

    def visit_call(self, node: Node, ctx: _Context) -> _Visit:
        name = _scope_name(node)
        if name is not None:
            self._emit(node, "scope", name, ctx)
        return self.visit_default(node, ctx)


def _first_error(root: Node) -> Node | None:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node
        if node.has_error:
            stack.extend(reversed(node.children))
    return None


def extract_symbols(source: bytes | str, relative_path: str) -> ExtractResult:
    """Extract symbol records from Ruby source.

    Args:
        source: File contents
        relative_path: Path relative to the indexed root (for output)

    Returns:
        ExtractResult with every definition found, or no records and an
        ExtractError when the source does not parse.
    """
    source_bytes = source.encode("utf8") if isinstance(source, str) else source
    tree = _get_parser().parse(source_bytes)
    root_node = tree.root_node

    if root_node.has_error:
        error_node = _first_error(root_node)
        line = _line(error_node) if error_node is not None else None
        return ExtractResult(
            error=ExtractError(path=relative_path, message="syntax error", line=line)
        )

    return ExtractResult(records=_SymbolVisitor(relative_path).walk(root_node))


def extract_symbols_from_file(file_path: Path, relative_path: str) -> ExtractResult:
    """Read ``file_path`` and extract its symbols."""
    try:
        source_bytes = file_path.read_bytes()
    except OSError as exc:
        return ExtractResult(
            error=ExtractError(path=relative_path, message=f"unreadable: {exc}")
        )
    return extract_symbols(source_bytes, relative_path)


__all__ = [
    "ExtractError",
    "ExtractResult",
    "extract_symbols",
    "extract_symbols_from_file",
]
