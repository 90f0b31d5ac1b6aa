"""
Syntax layer: tree-sitter parsing of Rust into SourceUnits.

The detectors only rely on the small ``SyntaxNode`` surface below
(kind, span, children, fields, text, attribute lookup), so the parser
binding stays an isolated collaborator.

Parsers are not thread-safe; each worker thread gets its own.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from dataclasses import dataclass

import tree_sitter
import tree_sitter_rust

from crabscore.core.models.findings import LineSpan

logger = logging.getLogger(__name__)

RUST_LANGUAGE = tree_sitter.Language(tree_sitter_rust.language())

_local = threading.local()


def _parser() -> tree_sitter.Parser:
    parser = getattr(_local, "parser", None)
    if parser is None:
        parser = tree_sitter.Parser(RUST_LANGUAGE)
        _local.parser = parser
    return parser


class SyntaxNode:
    """Thin read-only view over a tree-sitter node.

    Nodes of a re-parsed macro fragment carry an ``origin``: the (row,
    column) of the fragment's first byte in the enclosing file, so spans
    always point into the real source.
    """

    __slots__ = ("_node", "_origin")

    def __init__(self, node: tree_sitter.Node, origin: tuple[int, int] = (0, 0)) -> None:
        self._node = node
        self._origin = origin

    def __repr__(self) -> str:
        return f"SyntaxNode({self.kind} @ {self.span})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SyntaxNode) and self._node == other._node and self._origin == other._origin

    def __hash__(self) -> int:
        return hash((self._node.start_byte, self._node.end_byte, self._node.type, self._origin))

    def _wrap(self, node: tree_sitter.Node) -> SyntaxNode:
        return SyntaxNode(node, self._origin)

    def _absolute(self, point: tuple[int, int]) -> tuple[int, int]:
        row, col = point
        origin_row, origin_col = self._origin
        return row + origin_row, (col + origin_col if row == 0 else col)

    @property
    def kind(self) -> str:
        return self._node.type

    @property
    def is_named(self) -> bool:
        return self._node.is_named

    @property
    def span(self) -> LineSpan:
        start_row, start_col = self._absolute(self._node.start_point)
        end_row, end_col = self._absolute(self._node.end_point)
        return LineSpan(
            start_line=start_row + 1,
            start_col=start_col,
            end_line=end_row + 1,
            end_col=end_col,
        )

    @property
    def text(self) -> str:
        raw = self._node.text
        return raw.decode("utf-8", errors="replace") if raw is not None else ""

    @property
    def children(self) -> list[SyntaxNode]:
        return [self._wrap(c) for c in self._node.children]

    @property
    def named_children(self) -> list[SyntaxNode]:
        return [self._wrap(c) for c in self._node.named_children]

    @property
    def parent(self) -> SyntaxNode | None:
        parent = self._node.parent
        return self._wrap(parent) if parent is not None else None

    @property
    def has_error(self) -> bool:
        return self._node.has_error

    @property
    def is_error(self) -> bool:
        return self._node.is_error or self._node.is_missing

    def field(self, name: str) -> SyntaxNode | None:
        child = self._node.child_by_field_name(name)
        return self._wrap(child) if child is not None else None

    def child_kinds(self) -> list[str]:
        """Kinds of all children, anonymous tokens included."""
        return [c.type for c in self._node.children]

    def first_child(self, *kinds: str) -> SyntaxNode | None:
        for child in self._node.children:
            if child.type in kinds:
                return self._wrap(child)
        return None

    def attributes(self) -> list[str]:
        """Text of the ``#[...]`` attributes directly preceding this item.

        tree-sitter places outer attributes as siblings before the item
        they decorate; comments between them are skipped.
        """
        attrs: list[str] = []
        sibling = self._node.prev_named_sibling
        while sibling is not None and sibling.type in ("attribute_item", "line_comment", "block_comment"):
            if sibling.type == "attribute_item":
                raw = sibling.text.decode("utf-8", errors="replace") if sibling.text else ""
                attrs.append(_attribute_body(raw))
            sibling = sibling.prev_named_sibling
        attrs.reverse()
        return attrs

    def walk(self) -> Iterator[SyntaxNode]:
        """Pre-order traversal without recursion."""
        stack = [self._node]
        while stack:
            node = stack.pop()
            yield self._wrap(node)
            stack.extend(reversed(node.children))

    def first_error(self) -> SyntaxNode | None:
        """First ERROR or MISSING node in source order."""
        for node in self.walk():
            if node.is_error:
                return node
        return None


def _attribute_body(raw: str) -> str:
    """``#[cfg(test)]`` → ``cfg(test)``; whitespace removed."""
    body = raw.strip()
    if body.startswith("#!"):
        body = body[2:]
    elif body.startswith("#"):
        body = body[1:]
    body = body.strip()
    if body.startswith("[") and body.endswith("]"):
        body = body[1:-1]
    return "".join(body.split())


# ── Macro arguments ─────────────────────────────────────────────────
#
# tree-sitter leaves a macro call's arguments as an opaque token_tree.
# Most macros take plain expressions, so the arguments are re-parsed
# inside a throwaway function: first as a tuple (println!, assert_eq!,
# format!, vec![a, b]), then as a block (vec![x; n], statement-like
# bodies). Anything that still does not parse is a custom DSL.

# (prefix, suffix, is_tuple). The suffix starts on a new line so a
# trailing line comment cannot swallow it.
_FRAGMENT_FORMS: tuple[tuple[bytes, bytes, bool], ...] = (
    (b"fn __macro_args() { (", b"\n,); }", True),
    (b"fn __macro_args() { ", b"\n}", False),
)


def parse_macro_arguments(token_tree: SyntaxNode) -> list[SyntaxNode] | None:
    """Re-parse a macro's ``token_tree`` as Rust code.

    Returns the statements of the parsed fragment, with spans mapped
    back onto the enclosing file, or None when the arguments are not
    ordinary Rust expressions.
    """
    raw = token_tree._node.text or b""
    inner = raw[1:-1]
    if not inner.strip():
        return []

    row, col = token_tree._absolute(token_tree._node.start_point)
    for prefix, suffix, is_tuple in _FRAGMENT_FORMS:
        body = inner.rstrip()
        if is_tuple and body.endswith(b","):
            body = body[:-1]
        fragment = _parser().parse(prefix + body + suffix)
        root = fragment.root_node
        if root.has_error:
            continue
        block = root.named_children[0].child_by_field_name("body")
        if block is None:
            continue
        # Only fragment line 0 is shifted by the prefix; later lines are verbatim
        origin = (row, col + 1 - len(prefix))
        return [SyntaxNode(child, origin) for child in block.named_children]
    return None


# ═══════════════════════════════════════════════════════════════════
#  Source units
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SourceUnit:
    """One parsed file.

    ``tree`` is None when the file could not be decoded or parsed
    cleanly; ``error`` then says why and ``error_line`` points at the
    first problem.
    """

    path: str
    content: str
    tree: SyntaxNode | None
    line_count: int
    error: str | None = None
    error_line: int = 1

    @property
    def parsed(self) -> bool:
        return self.tree is not None


def count_lines(content: str) -> int:
    if not content:
        return 0
    return content.count("\n") + (0 if content.endswith("\n") else 1)


def parse_source(path: str, data: bytes) -> SourceUnit:
    """Decode and parse one file's bytes.

    Never raises for bad input; undecodable or syntactically invalid
    content produces a unit without a tree.
    """
    try:
        content = data.decode("utf-8")
    except UnicodeDecodeError as e:
        line = data[: e.start].count(b"\n") + 1
        logger.info("Cannot decode %s as UTF-8 (line %d)", path, line)
        return SourceUnit(path, "", None, 0, error=f"not valid UTF-8: {e.reason}", error_line=line)

    tree = _parser().parse(data)
    root = SyntaxNode(tree.root_node)
    lines = count_lines(content)

    if root.has_error:
        bad = root.first_error()
        line = bad.span.start_line if bad is not None else 1
        what = f"unexpected '{bad.text[:40]}'" if bad is not None and bad.text else "missing token"
        logger.info("Syntax error in %s at line %d", path, line)
        return SourceUnit(path, content, None, lines, error=f"syntax error: {what}", error_line=line)

    return SourceUnit(path, content, root, lines)
