"""
Finding detectors: turn one SourceUnit into a list of SafetyFindings.

A single iterative pre-order walk visits every node once, carrying a
small context (inside test code, inside an error-handling branch) that
adjusts panic severities. Nothing here looks at types or data flow.

Macro arguments are re-parsed and walked like ordinary code; arguments
that are not Rust expressions fall back to a token scan. The same walk
counts functions and branches for the average cyclomatic complexity.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace

from crabscore.core.models.findings import FindingKind, LineSpan, SafetyFinding, Severity
from crabscore.core.services.analysis.catalog import DEFAULT_CATALOG, PatternCatalog
from crabscore.core.services.analysis.syntax import SourceUnit, SyntaxNode, parse_macro_arguments

logger = logging.getLogger(__name__)

_STRING_KINDS = frozenset({"string_literal", "raw_string_literal"})

_TEST_ATTRIBUTES = frozenset({
    "test", "tokio::test", "async_std::test", "rstest", "test_case", "bench", "cfg(test)",
})

_ERROR_PATTERN = re.compile(r"^(?:[A-Za-z_]\w*::)*(?:Err|None)\b")
_GENERIC_ARGS = re.compile(r"<[^<>]*>")
_RAW_STRING = re.compile(r'^[bc]?r(#*)"(.*)"\1$', re.DOTALL)
_INT_LITERAL = re.compile(r"^(0x[0-9a-fA-F_]+|0o[0-7_]+|0b[01_]+|[0-9][0-9_]*)(?:[iu](?:8|16|32|64|128|size))?$")
_SIMPLE_BINDING = re.compile(r"^(?:ref\s+)?(?:mut\s+)?([A-Za-z_]\w*)$")

# McCabe decision points; each function adds one more
_BRANCH_KINDS = frozenset({"if_expression", "match_expression", "for_expression", "while_expression"})


@dataclass(frozen=True)
class _Context:
    in_test: bool = False
    in_error_handler: bool = False
    in_function: bool = False


@dataclass(frozen=True)
class FileScan:
    """Findings plus the control-flow counts of one file."""

    findings: list[SafetyFinding]
    function_count: int = 0
    branch_count: int = 0


def is_test_attribute(attribute: str) -> bool:
    """Whether an attribute body marks test-only code."""
    return attribute in _TEST_ATTRIBUTES or attribute.startswith(("tokio::test(", "test_case("))


def parse_error_finding(unit: SourceUnit) -> SafetyFinding:
    line = max(unit.error_line, 1)
    return SafetyFinding(
        kind=FindingKind.PARSE_ERROR,
        file=unit.path,
        span=LineSpan(start_line=line, end_line=line),
        severity=Severity.LOW,
        rule="parse-error",
        message=unit.error or "file could not be parsed",
    )


def detect_findings(unit: SourceUnit, catalog: PatternCatalog = DEFAULT_CATALOG) -> list[SafetyFinding]:
    """All findings for one file, in walk order.

    A unit without a tree yields exactly one ParseError finding.
    """
    return scan_unit(unit, catalog).findings


def scan_unit(unit: SourceUnit, catalog: PatternCatalog = DEFAULT_CATALOG) -> FileScan:
    """Findings and function/branch counts for one file.

    An unparsed file contributes no functions.
    """
    if unit.tree is None:
        return FileScan([parse_error_finding(unit)])
    detector = _FileDetector(unit.path, catalog)
    findings = detector.run(unit.tree)
    return FileScan(findings, detector.function_count, detector.branch_count)


# ═══════════════════════════════════════════════════════════════════
#  Walk
# ═══════════════════════════════════════════════════════════════════


class _FileDetector:
    def __init__(self, path: str, catalog: PatternCatalog) -> None:
        self.path = path
        self.catalog = catalog
        self.findings: list[SafetyFinding] = []
        self.function_count = 0
        self.branch_count = 0

    def run(self, root: SyntaxNode) -> list[SafetyFinding]:
        stack: list[tuple[SyntaxNode, _Context]] = [(root, _Context())]
        while stack:
            node, ctx = stack.pop()
            ctx = self._enter(node, ctx)
            self._inspect(node, ctx)

            children = node.children
            if node.kind == "macro_invocation":
                children = self._expand(children)

            handlers = self._error_handler_children(node)
            for child in reversed(children):
                child_ctx = ctx
                if child in handlers and not ctx.in_error_handler:
                    child_ctx = replace(ctx, in_error_handler=True)
                stack.append((child, child_ctx))
        return self.findings

    @staticmethod
    def _expand(children: list[SyntaxNode]) -> list[SyntaxNode]:
        """Swap a macro's token_tree for its re-parsed arguments when possible."""
        expanded: list[SyntaxNode] = []
        for child in children:
            parsed = parse_macro_arguments(child) if child.kind == "token_tree" else None
            if parsed is None:
                expanded.append(child)
            else:
                expanded.extend(parsed)
        return expanded

    # ── Context ────────────────────────────────────────────────────

    def _enter(self, node: SyntaxNode, ctx: _Context) -> _Context:
        kind = node.kind
        if kind == "function_item":
            self.function_count += 1
            ctx = replace(ctx, in_function=True)
        elif kind in _BRANCH_KINDS and ctx.in_function:
            self.branch_count += 1
        if not ctx.in_test and kind in ("function_item", "mod_item", "impl_item"):
            if any(is_test_attribute(a) for a in node.attributes()):
                return replace(ctx, in_test=True)
        if kind == "match_arm" and not ctx.in_error_handler:
            pattern = node.field("pattern")
            if pattern is not None and _ERROR_PATTERN.match(pattern.text.strip()):
                return replace(ctx, in_error_handler=True)
        return ctx

    def _error_handler_children(self, node: SyntaxNode) -> set[SyntaxNode]:
        """Children of ``node`` that only run on an error or absent value."""
        kind = node.kind
        if kind == "if_expression":
            condition = node.field("condition")
            alternative = node.field("alternative")
            if condition is not None and alternative is not None and condition.kind in ("let_condition", "let_chain"):
                return {alternative}
        elif kind == "let_declaration":
            alternative = node.field("alternative")
            if alternative is not None:
                return {alternative}
        elif kind == "call_expression":
            function = node.field("function")
            arguments = node.field("arguments")
            if function is not None and arguments is not None and function.kind == "field_expression":
                method = function.field("field")
                if method is not None and method.text in self.catalog.error_handler_methods:
                    return {node.field("arguments")}
        return set()

    # ── Dispatch ───────────────────────────────────────────────────

    def _inspect(self, node: SyntaxNode, ctx: _Context) -> None:
        kind = node.kind
        if kind == "unsafe_block":
            self._add(FindingKind.UNSAFE_BLOCK, node, Severity.HIGH, "unsafe-block", "unsafe block")
        elif kind in ("function_item", "function_signature_item"):
            modifiers = node.first_child("function_modifiers")
            if modifiers is not None and "unsafe" in modifiers.child_kinds():
                self._add(FindingKind.UNSAFE_BLOCK, node, Severity.HIGH, "unsafe-fn", "unsafe fn")
        elif kind in ("impl_item", "trait_item"):
            if "unsafe" in node.child_kinds():
                noun = "impl" if kind == "impl_item" else "trait"
                self._add(FindingKind.UNSAFE_BLOCK, node, Severity.HIGH, f"unsafe-{noun}", f"unsafe {noun}")
        elif kind == "call_expression":
            self._inspect_call(node, ctx)
        elif kind == "macro_invocation":
            self._inspect_macro(node, ctx)
        elif kind == "token_tree":
            self._scan_tokens(node, ctx)
        elif kind == "index_expression":
            self._add(FindingKind.PANIC_POINT, node, self._panic_severity(Severity.LOW, ctx),
                      "index", "indexing can panic when out of bounds")
        elif kind in ("binary_expression", "compound_assignment_expr"):
            self._inspect_arithmetic(node, ctx)
        elif kind in _STRING_KINDS:
            self._inspect_literal(node)
        elif kind == "let_declaration":
            self._inspect_binding(node, node.field("pattern"), node.field("value"))
        elif kind in ("const_item", "static_item"):
            self._inspect_binding(node, node.field("name"), node.field("value"))

    # ── Calls ──────────────────────────────────────────────────────

    def _inspect_call(self, node: SyntaxNode, ctx: _Context) -> None:
        function = node.field("function")
        if function is None:
            return
        if function.kind == "generic_function":
            function = function.field("function") or function

        if function.kind == "field_expression":
            method = function.field("field")
            if method is not None and method.text in self.catalog.unwrap_methods:
                self._add_unwrap(node, method.text, ctx)
            return

        if function.kind not in ("identifier", "scoped_identifier"):
            return
        segments = call_path(function.text)
        if not segments:
            return

        if (
            len(segments) >= 2
            and segments[-1] in self.catalog.unwrap_methods
            and segments[-2] in self.catalog.unwrap_types
        ):
            self._add_unwrap(node, segments[-1], ctx)
            return

        for rule in self.catalog.abort_calls:
            if rule.matches(segments):
                self._add(FindingKind.PANIC_POINT, node, self._panic_severity(rule.severity, ctx),
                          rule.rule, rule.message)
                return

        for rule in self.catalog.unchecked_calls:
            if rule.matches(segments):
                self._add(FindingKind.VULNERABILITY_PATTERN, node, rule.severity, rule.rule, rule.message)
                return

        for constructor in self.catalog.command_constructors:
            n = len(constructor)
            if segments[-n:] == constructor:
                self._inspect_command(node)
                return

    def _add_unwrap(self, node: SyntaxNode, method: str, ctx: _Context, span: LineSpan | None = None) -> None:
        severity = Severity.LOW if ctx.in_test else Severity.MEDIUM
        self._add(FindingKind.FALLIBLE_UNWRAP, node, severity, method,
                  f".{method}() aborts on a missing or error value", span)

    def _inspect_command(self, node: SyntaxNode) -> None:
        arguments = node.field("arguments")
        program = _first_argument(arguments) if arguments is not None else None
        if program is None:
            return
        if program.kind in _STRING_KINDS:
            value = literal_value(program)
            name = value.replace("\\", "/").rsplit("/", 1)[-1].lower()
            if name in self.catalog.shell_programs:
                self._add(FindingKind.VULNERABILITY_PATTERN, node, Severity.MEDIUM, "shell-command",
                          f"command runs through shell '{value}'")
            return
        self._add(FindingKind.VULNERABILITY_PATTERN, node, Severity.MEDIUM, "command-from-input",
                  f"command program built from '{program.text[:60]}'")

    # ── Macros ─────────────────────────────────────────────────────

    def _inspect_macro(self, node: SyntaxNode, ctx: _Context) -> None:
        macro = node.field("macro")
        if macro is None:
            return
        name = macro.text.rsplit("::", 1)[-1].strip()
        base = self.catalog.panic_macros.get(name)
        if base is None:
            return
        self._add(FindingKind.PANIC_POINT, node, self._panic_severity(base, ctx), name, f"{name}! can panic")

    def _scan_tokens(self, node: SyntaxNode, ctx: _Context) -> None:
        """Token-level detection inside macro arguments that did not parse.

        Only direct children are scanned; nested token_trees are visited
        by the walk itself.
        """
        tokens = node.children
        for i, token in enumerate(tokens[:-2]):
            name, group = tokens[i + 1], tokens[i + 2]
            if group.kind != "token_tree":
                continue
            if not token.is_named and token.text.endswith(".") and name.kind == "identifier":
                if name.text in self.catalog.unwrap_methods and group.text.startswith("("):
                    self._add_unwrap(name, name.text, ctx, _joined(name, group))
            elif token.kind == "identifier" and name.text == "!":
                base = self.catalog.panic_macros.get(token.text)
                if base is not None:
                    self._add(FindingKind.PANIC_POINT, token, self._panic_severity(base, ctx),
                              token.text, f"{token.text}! can panic", _joined(token, group))
        for token, group in zip(tokens, tokens[1:]):
            if token.text == "unsafe" and group.kind == "token_tree" and group.text.startswith("{"):
                self._add(FindingKind.UNSAFE_BLOCK, token, Severity.HIGH, "unsafe-block", "unsafe block",
                          _joined(token, group))

    # ── Arithmetic ─────────────────────────────────────────────────

    def _inspect_arithmetic(self, node: SyntaxNode, ctx: _Context) -> None:
        operator = node.field("operator")
        if operator is None or operator.text not in ("/", "%", "/=", "%="):
            return
        if is_nonzero_integer(node.field("right")):
            return
        rule = "division" if operator.text.startswith("/") else "remainder"
        self._add(FindingKind.PANIC_POINT, node, self._panic_severity(Severity.LOW, ctx),
                  rule, f"'{operator.text}' can panic on a zero divisor")

    # ── Credentials ────────────────────────────────────────────────

    def _credential_match(self, text: str):
        for pattern in self.catalog.credential_patterns:
            if pattern.regex.search(text):
                return pattern
        return None

    def _inspect_literal(self, node: SyntaxNode) -> None:
        pattern = self._credential_match(node.text)
        if pattern is not None:
            self._add(FindingKind.VULNERABILITY_PATTERN, node, Severity.HIGH, pattern.rule, pattern.message)

    def _inspect_binding(self, node: SyntaxNode, name: SyntaxNode | None, value: SyntaxNode | None) -> None:
        if name is None or value is None or value.kind not in _STRING_KINDS:
            return
        m = _SIMPLE_BINDING.match(name.text.strip())
        if not m or not self.catalog.credential_name.search(m.group(1)):
            return
        if len(literal_value(value)) < self.catalog.min_credential_length:
            return
        if self._credential_match(value.text) is not None:
            return  # the literal itself is reported when visited
        self._add(FindingKind.VULNERABILITY_PATTERN, value, Severity.HIGH, "hardcoded-credential",
                  f"'{m.group(1)}' is bound to a string literal")

    # ── Helpers ────────────────────────────────────────────────────

    @staticmethod
    def _panic_severity(base: Severity, ctx: _Context) -> Severity:
        if ctx.in_test:
            return Severity.LOW
        if ctx.in_error_handler:
            return base.lowered()
        return base

    def _add(
        self,
        kind: FindingKind,
        node: SyntaxNode,
        severity: Severity,
        rule: str,
        message: str,
        span: LineSpan | None = None,
    ) -> None:
        self.findings.append(SafetyFinding(
            kind=kind,
            file=self.path,
            span=span or node.span,
            severity=severity,
            rule=rule,
            message=message,
        ))


# ═══════════════════════════════════════════════════════════════════
#  Syntax helpers
# ═══════════════════════════════════════════════════════════════════


def call_path(text: str) -> tuple[str, ...]:
    """``std::mem::transmute::<A, B>`` → ("std", "mem", "transmute")."""
    previous = None
    while previous != text:
        previous, text = text, _GENERIC_ARGS.sub("", text)
    text = "".join(text.split())
    return tuple(s for s in text.split("::") if s)


def literal_value(node: SyntaxNode) -> str:
    """Content of a string literal without quotes or raw-string hashes."""
    text = node.text
    m = _RAW_STRING.match(text)
    if m:
        return m.group(2)
    if text[:1] in ("b", "c") and text[1:2] == '"':
        text = text[1:]
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        return text[1:-1]
    return text


def is_nonzero_integer(node: SyntaxNode | None) -> bool:
    """Whether ``node`` is an integer literal that is not zero."""
    if node is None:
        return False
    while node.kind == "parenthesized_expression" and node.named_children:
        node = node.named_children[0]
    if node.kind != "integer_literal":
        return False
    m = _INT_LITERAL.match(node.text.strip())
    if not m:
        return False
    digits = m.group(1).replace("_", "").lower()
    try:
        if digits.startswith(("0x", "0o", "0b")):
            return int(digits, 0) != 0
        return int(digits, 10) != 0
    except ValueError:
        return False


def _joined(first: SyntaxNode, last: SyntaxNode) -> LineSpan:
    start, end = first.span, last.span
    return LineSpan(start_line=start.start_line, start_col=start.start_col,
                    end_line=end.end_line, end_col=end.end_col)


def _first_argument(arguments: SyntaxNode) -> SyntaxNode | None:
    for child in arguments.named_children:
        if child.kind not in ("line_comment", "block_comment", "attribute_item"):
            return child
    return None
