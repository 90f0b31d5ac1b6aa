"""
Metric categories: the four inputs of the scoring engine.

Providers hand the engine one ``CategoryMetrics`` per category. The
engine reads only ``score`` (0-100); everything else is carried for
reporting. ``SafetyMetrics`` is the one category the core computes
itself, from the analyzer's findings.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from crabscore.core.models.findings import FindingKind, SafetyFinding, Severity


class Category(StrEnum):
    """Metric categories, in scoring order."""

    PERFORMANCE = "performance"
    ENERGY = "energy"
    COST = "cost"
    SAFETY = "safety"

    @property
    def dynamic(self) -> bool:
        """Whether the category needs a runtime measurement."""
        return self is not Category.SAFETY


class CategoryMetrics(BaseModel):
    """Common shape of every category result.

    ``estimated`` is True when the value came from a fallback estimate
    instead of a real provider.
    """

    model_config = ConfigDict(frozen=True)

    category: Category
    score: float
    source: str = ""
    estimated: bool = False
    details: dict[str, Any] = Field(default_factory=dict)


class PerformanceMetrics(CategoryMetrics):
    category: Category = Category.PERFORMANCE


class EnergyMetrics(CategoryMetrics):
    category: Category = Category.ENERGY


class CostMetrics(CategoryMetrics):
    category: Category = Category.COST


# ═══════════════════════════════════════════════════════════════════
#  Raw measurements (provider side, interpreted by category.py)
# ═══════════════════════════════════════════════════════════════════


class LatencyMeasurement(BaseModel):
    """Latency percentiles in milliseconds."""

    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    cold_start_ms: float = 0.0
    ttfb_ms: float = 0.0


class PerformanceMeasurement(BaseModel):
    latency: LatencyMeasurement = Field(default_factory=LatencyMeasurement)
    requests_per_second: float = 0.0
    mb_per_second: float = 0.0
    cpu_efficiency: float = 0.0         # useful work per CPU cycle, 0..1
    cache_hit_ratio: float = 0.0
    memory_mb: float = 0.0


class EnergyMeasurement(BaseModel):
    average_watts: float = 0.0
    peak_watts: float = 0.0
    idle_watts: float = 0.0
    joules_per_operation: float = 0.0
    renewable_share: float = 0.0        # 0..1
    carbon_intensity_g_per_kwh: float = 0.0


class CostMeasurement(BaseModel):
    """Monthly USD figures plus an operational overhead ratio."""

    cloud_compute_usd: float = 0.0
    storage_usd: float = 0.0
    network_egress_usd: float = 0.0
    licensing_usd: float = 0.0
    overhead_percentage: float = 0.0    # 0.1 == 10 % on top of compute
    incident_response_hours: float = 0.0
    mttr_minutes: float = 0.0
    developer_hours: float = 0.0


# ═══════════════════════════════════════════════════════════════════
#  Safety
# ═══════════════════════════════════════════════════════════════════

# Weight of one finding in the safety density.
FINDING_WEIGHTS: dict[tuple[FindingKind, Severity | None], float] = {
    (FindingKind.UNSAFE_BLOCK, None): 5.0,
    (FindingKind.VULNERABILITY_PATTERN, None): 4.0,
    (FindingKind.PANIC_POINT, Severity.HIGH): 3.0,
    (FindingKind.PANIC_POINT, Severity.MEDIUM): 1.5,
    (FindingKind.PANIC_POINT, Severity.LOW): 0.5,
    (FindingKind.FALLIBLE_UNWRAP, None): 1.0,
    (FindingKind.PARSE_ERROR, None): 0.0,
}

# Density (weighted findings per 100 lines) at which the score halves
_HALF_SCORE_DENSITY = 10.0


def finding_weight(finding: SafetyFinding) -> float:
    """Density weight of one finding."""
    weight = FINDING_WEIGHTS.get((finding.kind, finding.severity))
    if weight is None:
        weight = FINDING_WEIGHTS.get((finding.kind, None), 0.0)
    return weight


def safety_score(findings: tuple[SafetyFinding, ...], total_lines: int) -> float:
    """Sub-score from weighted finding density; 100 with no findings."""
    weighted = sum(finding_weight(f) for f in findings)
    density = 100.0 * weighted / max(total_lines, 1)
    return 100.0 / (1.0 + density / _HALF_SCORE_DENSITY)


class SafetyMetrics(CategoryMetrics):
    """Aggregated analyzer output.

    Build with ``from_findings`` and combine with ``merge``. The merge is
    commutative and associative and ``empty()`` is its identity, so any
    reduction order over per-file results gives the same value.
    """

    category: Category = Category.SAFETY
    score: float = 100.0
    files_scanned: int = 0
    total_lines: int = 0
    function_count: int = 0
    branch_count: int = 0
    findings: tuple[SafetyFinding, ...] = ()
    catalog_version: str = ""

    @classmethod
    def from_findings(
        cls,
        findings: list[SafetyFinding] | tuple[SafetyFinding, ...],
        *,
        files_scanned: int,
        total_lines: int,
        function_count: int = 0,
        branch_count: int = 0,
        catalog_version: str = "",
        source: str = "static-analyzer",
    ) -> SafetyMetrics:
        ordered = tuple(sorted(findings, key=SafetyFinding.sort_key))
        return cls(
            score=safety_score(ordered, total_lines),
            files_scanned=files_scanned,
            total_lines=total_lines,
            function_count=function_count,
            branch_count=branch_count,
            findings=ordered,
            catalog_version=catalog_version,
            source=source,
        )

    @classmethod
    def empty(cls, catalog_version: str = "") -> SafetyMetrics:
        return cls.from_findings((), files_scanned=0, total_lines=0, catalog_version=catalog_version)

    def merge(self, other: SafetyMetrics) -> SafetyMetrics:
        """Combine two partial results."""
        versions = {v for v in (self.catalog_version, other.catalog_version) if v}
        if len(versions) > 1:
            raise ValueError(f"Cannot merge findings from catalogs {sorted(versions)}")
        return SafetyMetrics.from_findings(
            self.findings + other.findings,
            files_scanned=self.files_scanned + other.files_scanned,
            total_lines=self.total_lines + other.total_lines,
            function_count=self.function_count + other.function_count,
            branch_count=self.branch_count + other.branch_count,
            catalog_version=versions.pop() if versions else "",
            source=min((s for s in (self.source, other.source) if s), default=""),
        )

    # ── Counts ─────────────────────────────────────────────────────

    def count(self, kind: FindingKind, severity: Severity | None = None) -> int:
        return sum(
            1 for f in self.findings
            if f.kind == kind and (severity is None or f.severity == severity)
        )

    @property
    def counts(self) -> dict[str, int]:
        """Findings per kind, every kind present."""
        return {kind.value: self.count(kind) for kind in FindingKind}

    @property
    def unsafe_blocks(self) -> int:
        return self.count(FindingKind.UNSAFE_BLOCK)

    @property
    def fallible_unwraps(self) -> int:
        return self.count(FindingKind.FALLIBLE_UNWRAP)

    @property
    def panic_points(self) -> int:
        return self.count(FindingKind.PANIC_POINT)

    @property
    def vulnerability_patterns(self) -> int:
        return self.count(FindingKind.VULNERABILITY_PATTERN)

    @property
    def parse_errors(self) -> int:
        return self.count(FindingKind.PARSE_ERROR)

    @property
    def avg_cyclomatic(self) -> float:
        """Mean McCabe complexity per function: (branches + functions) / functions.

        1.0 when no function was seen.
        """
        if not self.function_count:
            return 1.0
        return (self.branch_count + self.function_count) / self.function_count

    def metric(self, name: str) -> float:
        """Look up a derived safety metric by name (used by profile tiers)."""
        if name not in SAFETY_METRIC_NAMES:
            raise KeyError(name)
        return float(getattr(self, name))


SAFETY_METRIC_NAMES = frozenset({"avg_cyclomatic"})
