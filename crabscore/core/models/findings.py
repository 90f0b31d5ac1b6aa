"""
Safety findings: the output vocabulary of the static analyzer.

A finding is one detected occurrence of a safety-relevant syntactic
pattern. Findings are immutable values keyed by (file, span) so two
analyses of the same source produce the same list in the same order.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class FindingKind(StrEnum):
    """What kind of pattern a finding reports."""

    UNSAFE_BLOCK = "unsafe_block"
    FALLIBLE_UNWRAP = "fallible_unwrap"
    PANIC_POINT = "panic_point"
    VULNERABILITY_PATTERN = "vulnerability_pattern"
    PARSE_ERROR = "parse_error"


class Severity(StrEnum):
    """Heuristic severity attached to every finding."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def lowered(self) -> Severity:
        """One level down, bottoming out at LOW."""
        if self is Severity.HIGH:
            return Severity.MEDIUM
        return Severity.LOW


# Ordering used when sorting findings of the same span
KIND_ORDER: tuple[FindingKind, ...] = tuple(FindingKind)


class LineSpan(BaseModel):
    """1-based line and 0-based column range in a source file."""

    model_config = ConfigDict(frozen=True)

    start_line: int
    start_col: int = 0
    end_line: int
    end_col: int = 0

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.start_line}:{self.start_col}"
        return f"{self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


class SafetyFinding(BaseModel):
    """One finding in one file.

    ``file`` is always the POSIX path relative to the analyzed root,
    so findings are stable across checkouts in different directories.
    """

    model_config = ConfigDict(frozen=True)

    kind: FindingKind
    file: str
    span: LineSpan
    severity: Severity = Severity.MEDIUM
    rule: str = ""          # catalog rule id, e.g. "unwrap" or "transmute"
    message: str = ""

    def sort_key(self) -> tuple:
        """Total order over findings: location first, then kind and rule."""
        return (
            self.file,
            self.span.start_line,
            self.span.start_col,
            self.span.end_line,
            self.span.end_col,
            KIND_ORDER.index(self.kind),
            self.rule,
            self.severity.value,
            self.message,
        )

    def __str__(self) -> str:
        return f"{self.file}:{self.span} [{self.severity}] {self.kind}: {self.message or self.rule}"
