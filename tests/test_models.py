"""
Tests for domain models: findings, safety metrics, complexity, profiles.
"""

import pytest
from pydantic import ValidationError

from crabscore.core.models import (
    BonusRule,
    BonusTier,
    Category,
    CategoryWeights,
    Certification,
    CertificationBand,
    FindingKind,
    LineSpan,
    ProjectComplexity,
    RunConfig,
    SafetyFinding,
    SafetyMetrics,
    Severity,
)
from crabscore.core.models.profile import ladder_problems


def _finding(file="src/lib.rs", line=1, kind=FindingKind.UNSAFE_BLOCK, severity=Severity.HIGH, rule="r"):
    return SafetyFinding(
        kind=kind,
        file=file,
        span=LineSpan(start_line=line, end_line=line),
        severity=severity,
        rule=rule,
    )


def _metrics(findings, lines=100):
    return SafetyMetrics.from_findings(findings, files_scanned=1, total_lines=lines, catalog_version="v1")


# ── Findings ─────────────────────────────────────────────────────────


class TestFindings:
    def test_frozen(self):
        f = _finding()
        with pytest.raises(ValidationError):
            f.file = "other.rs"

    def test_sort_key_orders_by_location(self):
        a = _finding(file="a.rs", line=5)
        b = _finding(file="a.rs", line=2)
        c = _finding(file="b.rs", line=1)
        assert sorted([a, c, b], key=SafetyFinding.sort_key) == [b, a, c]

    def test_severity_lowered(self):
        assert Severity.HIGH.lowered() == Severity.MEDIUM
        assert Severity.MEDIUM.lowered() == Severity.LOW
        assert Severity.LOW.lowered() == Severity.LOW

    def test_span_str(self):
        assert str(LineSpan(start_line=3, start_col=4, end_line=3, end_col=9)) == "3:4"


# ── Safety metrics ───────────────────────────────────────────────────


class TestSafetyMetrics:
    def test_empty_scores_100(self):
        assert SafetyMetrics.empty().score == 100.0

    def test_counts(self):
        m = _metrics([
            _finding(line=1),
            _finding(line=2, kind=FindingKind.FALLIBLE_UNWRAP, severity=Severity.MEDIUM),
            _finding(line=3, kind=FindingKind.PANIC_POINT, severity=Severity.LOW),
        ])
        assert m.unsafe_blocks == 1
        assert m.fallible_unwraps == 1
        assert m.panic_points == 1
        assert m.count(FindingKind.PANIC_POINT, Severity.HIGH) == 0
        assert m.counts["vulnerability_pattern"] == 0

    def test_merge_commutative(self):
        a = _metrics([_finding(file="a.rs")], lines=10)
        b = _metrics([_finding(file="b.rs", kind=FindingKind.FALLIBLE_UNWRAP)], lines=20)
        assert a.merge(b) == b.merge(a)

    def test_merge_associative(self):
        a = _metrics([_finding(file="a.rs")], lines=10)
        b = _metrics([_finding(file="b.rs")], lines=20)
        c = _metrics([_finding(file="c.rs")], lines=30)
        assert a.merge(b).merge(c) == a.merge(b.merge(c))

    def test_empty_is_identity(self):
        a = _metrics([_finding()], lines=10)
        assert a.merge(SafetyMetrics.empty()) == a
        assert SafetyMetrics.empty("v1").merge(a) == a

    def test_merge_sums(self):
        merged = _metrics([_finding(file="a.rs")], lines=10).merge(_metrics([], lines=5))
        assert merged.files_scanned == 2
        assert merged.total_lines == 15
        assert len(merged.findings) == 1

    def test_merge_sums_control_flow_counts(self):
        a = SafetyMetrics.from_findings([], files_scanned=1, total_lines=10, function_count=2, branch_count=6)
        b = SafetyMetrics.from_findings([], files_scanned=1, total_lines=10, function_count=1, branch_count=0)
        merged = a.merge(b)
        assert (merged.function_count, merged.branch_count) == (3, 6)
        assert merged.avg_cyclomatic == pytest.approx(3.0)
        assert merged == b.merge(a)

    def test_avg_cyclomatic_without_functions(self):
        assert SafetyMetrics.empty().avg_cyclomatic == 1.0

    def test_metric_lookup(self):
        m = SafetyMetrics.from_findings([], files_scanned=1, total_lines=10, function_count=4, branch_count=2)
        assert m.metric("avg_cyclomatic") == pytest.approx(1.5)
        with pytest.raises(KeyError):
            m.metric("total_lines")

    def test_merge_rejects_mixed_catalogs(self):
        a = SafetyMetrics.from_findings([], files_scanned=1, total_lines=1, catalog_version="v1")
        b = SafetyMetrics.from_findings([], files_scanned=1, total_lines=1, catalog_version="v2")
        with pytest.raises(ValueError):
            a.merge(b)

    def test_more_unsafe_never_scores_higher(self):
        base = [_finding(line=i, kind=FindingKind.FALLIBLE_UNWRAP) for i in range(3)]
        before = _metrics(base, lines=50)
        after = _metrics(base + [_finding(line=40)], lines=50)
        assert after.score < before.score

    def test_score_bounded_for_huge_counts(self):
        findings = [_finding(line=i) for i in range(5000)]
        m = _metrics(findings, lines=1)
        assert 0.0 <= m.score <= 100.0

    def test_parse_errors_do_not_lower_score(self):
        m = _metrics([_finding(kind=FindingKind.PARSE_ERROR, severity=Severity.LOW)], lines=0)
        assert m.score == 100.0


# ── Complexity ───────────────────────────────────────────────────────


class TestProjectComplexity:
    def test_empty_project_ratios_zero(self):
        c = ProjectComplexity()
        assert c.doc_coverage == 0.0
        assert c.test_ratio == 0.0
        assert c.complexity_factor == 0.0

    def test_ratios(self):
        c = ProjectComplexity(total_lines=200, doc_lines=50, function_count=10, test_count=4)
        assert c.doc_coverage == 0.25
        assert c.test_ratio == 0.4
        assert c.complexity_factor == pytest.approx(0.2)

    def test_factor_capped(self):
        assert ProjectComplexity(total_lines=10_000_000).complexity_factor == 10.0

    def test_metric_lookup(self):
        c = ProjectComplexity(dependency_count=3)
        assert c.metric("dependency_count") == 3.0
        with pytest.raises(KeyError):
            c.metric("nonsense")


# ── Profile models ───────────────────────────────────────────────────


class TestProfileModels:
    def test_weights_balanced(self):
        w = CategoryWeights(performance=0.35, energy=0.25, cost=0.25, safety=0.15)
        assert w.balanced

    def test_weights_unbalanced(self):
        w = CategoryWeights(performance=0.5, energy=0.5, cost=0.5, safety=0.0)
        assert not w.balanced

    def test_weights_within_epsilon(self):
        w = CategoryWeights(performance=0.25, energy=0.25, cost=0.25, safety=0.25 + 5e-5)
        assert w.balanced

    def test_bonus_tier_matches(self):
        tier = BonusTier(metric="total_lines", op="lt", threshold=100, points=2, label="small")
        assert tier.matches(99)
        assert not tier.matches(100)

    def test_bonus_tier_unknown_metric(self):
        with pytest.raises(ValidationError):
            BonusTier(metric="stars", op="gt", threshold=1, points=1, label="x")

    def test_tier_accepts_safety_metric(self):
        tier = BonusTier(metric="avg_cyclomatic", op="gt", threshold=10, points=1, label="complex")
        assert tier.matches(10.5)

    def test_bonus_rule_requires_descending_tiers(self):
        with pytest.raises(ValidationError):
            BonusRule(dimension="size", tiers=(
                BonusTier(metric="total_lines", op="lt", threshold=500, points=1, label="compact"),
                BonusTier(metric="total_lines", op="lt", threshold=100, points=2, label="small"),
            ))

    def test_ladder_must_descend(self):
        ladder = (
            CertificationBand(tier=Certification.VERIFIED, min_score=70),
            CertificationBand(tier=Certification.CERTIFIED, min_score=85),
            CertificationBand(tier=Certification.NONE, min_score=0),
        )
        assert ladder_problems(ladder)

    def test_ladder_must_end_at_zero(self):
        ladder = (CertificationBand(tier=Certification.VERIFIED, min_score=70),)
        assert any("0" in p for p in ladder_problems(ladder))


# ── Run config ───────────────────────────────────────────────────────


class TestRunConfig:
    def test_defaults(self):
        c = RunConfig()
        assert c.profile is None
        assert c.min_score == 0.0
        assert "target" in c.exclude_patterns
        assert c.worker_count >= 1

    def test_user_excludes_added_to_defaults(self):
        c = RunConfig(exclude_patterns=["benches"])
        assert c.exclude_patterns[-1] == "benches"
        assert ".git" in c.exclude_patterns

    def test_min_score_range(self):
        with pytest.raises(ValidationError):
            RunConfig(min_score=101)

    def test_timeout_for(self):
        c = RunConfig(provider_timeout=10, timeouts={"energy": 2})
        assert c.timeout_for("energy") == 2
        assert c.timeout_for("cost") == 10

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValidationError):
            RunConfig(timeouts={"energy": 0})

    def test_unknown_timeout_category_rejected(self):
        with pytest.raises(ValidationError, match="energi"):
            RunConfig(timeouts={"energi": 5})

    def test_timeout_for_accepts_category(self):
        c = RunConfig(provider_timeout=10, timeouts={"safety": 3})
        assert c.timeout_for(Category.SAFETY) == 3
        assert c.timeout_for(Category.PERFORMANCE) == 10
