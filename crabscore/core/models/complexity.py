"""
Project complexity: size and hygiene statistics for one run.

Computed once from the walker pass and consumed by the bonus rules
and the fallback estimators.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

# Lines per complexity unit, and the factor ceiling
_LINES_PER_FACTOR = 1000.0
_MAX_FACTOR = 10.0


class ProjectComplexity(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_count: int = 0
    total_lines: int = 0
    function_count: int = 0
    module_count: int = 0
    test_count: int = 0
    doc_lines: int = 0
    dependency_count: int = 0

    @property
    def doc_coverage(self) -> float:
        """Doc-comment lines over all lines (0 for an empty project)."""
        if self.total_lines <= 0:
            return 0.0
        return self.doc_lines / self.total_lines

    @property
    def test_ratio(self) -> float:
        """Tests per function (0 when there are no functions)."""
        if self.function_count <= 0:
            return 0.0
        return self.test_count / self.function_count

    @property
    def complexity_factor(self) -> float:
        return min(self.total_lines / _LINES_PER_FACTOR, _MAX_FACTOR)

    def metric(self, name: str) -> float:
        """Look up a field or derived ratio by name (used by bonus tiers)."""
        if name not in METRIC_NAMES:
            raise KeyError(name)
        return float(getattr(self, name))

    def to_dict(self) -> dict:
        data = self.model_dump()
        data["doc_coverage"] = self.doc_coverage
        data["test_ratio"] = self.test_ratio
        data["complexity_factor"] = self.complexity_factor
        return data


METRIC_NAMES = frozenset({
    "file_count",
    "total_lines",
    "function_count",
    "module_count",
    "test_count",
    "doc_lines",
    "dependency_count",
    "doc_coverage",
    "test_ratio",
    "complexity_factor",
})
