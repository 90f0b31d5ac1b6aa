"""
Scoring engine: four category metrics + complexity + profile → ScoreBreakdown.

A synchronous, side-effect-free reduction. No I/O, no shared mutable
state; the same inputs always give an equal breakdown.

    base     = Σ weight_i · subscore_i
    bonus    = one tier per dimension, capped by the bonus table
    penalty  = Σ weight_k · count_k / lines · 100 + threshold tiers, capped by the penalty table
    overall  = clamp(base + bonus − penalty, 0, 100)
"""

from __future__ import annotations

import logging
import math

from crabscore.core.config.loader import ConfigError
from crabscore.core.models.complexity import ProjectComplexity
from crabscore.core.models.metrics import SAFETY_METRIC_NAMES, Category, CategoryMetrics, SafetyMetrics
from crabscore.core.models.profile import (
    BonusRule,
    BonusTable,
    BonusTier,
    Certification,
    CertificationBand,
    IndustryProfile,
    PenaltyTable,
)
from crabscore.core.models.score import AuditEntry, AuditKind, ScoreBreakdown
from crabscore.core.services.scoring.category import clamp

logger = logging.getLogger(__name__)

# Decimal places kept in the breakdown
_PRECISION = 6


class InvariantViolation(RuntimeError):
    """A sub-score or the overall score left [0, 100]. Always a defect upstream."""


# ═══════════════════════════════════════════════════════════════════
#  Steps
# ═══════════════════════════════════════════════════════════════════


def check_sub_score(metrics: CategoryMetrics) -> float:
    """Return the sub-score, or raise if it is not a finite value in [0, 100]."""
    value = metrics.score
    if not isinstance(value, (int, float)) or not math.isfinite(value) or not 0.0 <= value <= 100.0:
        raise InvariantViolation(
            f"{metrics.category} sub-score {value!r} from '{metrics.source or 'unknown'}' is outside [0, 100]"
        )
    return float(value)


def metric_value(
    name: str,
    complexity: ProjectComplexity | None,
    safety: SafetyMetrics | None,
) -> float | None:
    """Value of a tier metric, or None when it is not measured.

    ``avg_cyclomatic`` only exists when the analyzer saw at least one
    function; an estimated safety category never has it.
    """
    if name in SAFETY_METRIC_NAMES:
        if safety is None or safety.function_count == 0:
            return None
        return safety.metric(name)
    if complexity is None:
        return None
    return complexity.metric(name)


def _matching_tiers(
    rules: tuple[BonusRule, ...],
    complexity: ProjectComplexity | None,
    safety: SafetyMetrics | None,
) -> list[tuple[BonusRule, BonusTier, float]]:
    """First matching tier of every rule, with the value it matched on."""
    matched = []
    for rule in rules:
        for tier in rule.tiers:
            value = metric_value(tier.metric, complexity, safety)
            if value is not None and tier.matches(value):
                matched.append((rule, tier, value))
                break
    return matched


def evaluate_bonuses(
    complexity: ProjectComplexity,
    table: BonusTable,
    safety: SafetyMetrics | None = None,
) -> tuple[float, list[AuditEntry]]:
    """Apply the first matching tier of every dimension, then the cap."""
    entries: list[AuditEntry] = []
    total = 0.0
    for rule, tier, value in _matching_tiers(table.rules, complexity, safety):
        total += tier.points
        entries.append(AuditEntry(
            kind=AuditKind.BONUS,
            subject=rule.dimension,
            label=tier.label,
            points=tier.points,
            detail=f"{tier.metric}={_fmt(value)} {tier.op} {_fmt(tier.threshold)}",
        ))
    if total > table.cap:
        entries.append(AuditEntry(
            kind=AuditKind.CAP,
            subject="bonus",
            label=f"Bonus capped at {_fmt(table.cap)}",
            points=table.cap - total,
            detail=f"uncapped bonus {_fmt(total)}",
        ))
        total = table.cap
    return total, entries


def evaluate_penalties(
    safety: SafetyMetrics,
    table: PenaltyTable,
    complexity: ProjectComplexity | None = None,
) -> tuple[float, list[AuditEntry]]:
    """Weighted finding density per 100 lines (each term floored at 0),
    plus the table's threshold rules, then the cap."""
    entries: list[AuditEntry] = []
    total = 0.0
    lines = max(safety.total_lines, 1)
    for weight in table.weights:
        count = safety.count(weight.kind, weight.severity)
        if count == 0:
            continue
        contribution = max(0.0, weight.weight * count / lines * 100.0)
        total += contribution
        entries.append(AuditEntry(
            kind=AuditKind.PENALTY,
            subject=weight.key,
            label=weight.label or weight.key,
            points=-round(contribution, _PRECISION),
            detail=f"{count} finding(s) in {safety.total_lines} lines x {_fmt(weight.weight)}",
        ))
    for rule, tier, value in _matching_tiers(table.rules, complexity, safety):
        total += tier.points
        entries.append(AuditEntry(
            kind=AuditKind.PENALTY,
            subject=rule.dimension,
            label=tier.label,
            points=-tier.points,
            detail=f"{tier.metric}={_fmt(value)} {tier.op} {_fmt(tier.threshold)}",
        ))
    if total > table.cap:
        entries.append(AuditEntry(
            kind=AuditKind.CAP,
            subject="penalty",
            label=f"Penalty capped at {_fmt(table.cap)}",
            points=total - table.cap,
            detail=f"uncapped penalty {_fmt(total)}",
        ))
        total = table.cap
    return total, entries


def certify(overall: float, ladder: tuple[CertificationBand, ...]) -> Certification:
    """First band, scanning from the highest threshold, that ``overall`` reaches."""
    for band in ladder:
        if overall >= band.min_score:
            return band.tier
    return Certification.NONE


# ═══════════════════════════════════════════════════════════════════
#  Entry point
# ═══════════════════════════════════════════════════════════════════


def score(
    performance: CategoryMetrics,
    energy: CategoryMetrics,
    cost: CategoryMetrics,
    safety: SafetyMetrics,
    complexity: ProjectComplexity,
    profile: IndustryProfile,
) -> ScoreBreakdown:
    """Reduce the four categories into one audited breakdown.

    Raises:
        ConfigError: If the profile is unusable (checked before anything else).
        InvariantViolation: If any sub-score is outside [0, 100] or not finite.
    """
    problems = profile.problems()
    if problems:
        raise ConfigError(f"Profile '{profile.name}' is invalid: {'; '.join(problems)}")

    categories = {
        Category.PERFORMANCE: performance,
        Category.ENERGY: energy,
        Category.COST: cost,
        Category.SAFETY: safety,
    }
    for category, metrics in categories.items():
        if metrics.category != category:
            raise InvariantViolation(f"{metrics.category} metrics passed as {category}")
    sub = {category: check_sub_score(m) for category, m in categories.items()}

    # ── Base ───────────────────────────────────────────────────────
    weights = profile.weights.as_dict()
    base = sum(weights[c.value] * sub[c] for c in Category)

    # ── Degraded categories ────────────────────────────────────────
    audit: list[AuditEntry] = []
    degraded: list[str] = []
    for category, metrics in categories.items():
        if metrics.estimated:
            degraded.append(category.value)
            audit.append(AuditEntry(
                kind=AuditKind.FALLBACK,
                subject=category.value,
                label=f"{category.value.capitalize()} estimated",
                points=0.0,
                detail=_fallback_detail(metrics, sub[category]),
            ))

    # ── Bonuses and penalties ──────────────────────────────────────
    bonus, bonus_entries = evaluate_bonuses(complexity, profile.bonus_table, safety)
    penalty, penalty_entries = evaluate_penalties(safety, profile.penalty_table, complexity)
    audit.extend(bonus_entries)
    audit.extend(penalty_entries)

    # ── Overall ────────────────────────────────────────────────────
    raw = base + bonus - penalty
    if not math.isfinite(raw):
        raise InvariantViolation(f"overall score is not finite (base={base}, bonus={bonus}, penalty={penalty})")
    # Certify the same rounded value the breakdown reports
    clamped = clamp(raw)
    overall = round(clamped, _PRECISION)
    if clamped != raw:
        audit.append(AuditEntry(
            kind=AuditKind.CLAMP,
            subject="overall",
            label=f"Overall clamped to {_fmt(overall)}",
            points=clamped - raw,
            detail=f"unclamped overall {_fmt(raw)}",
        ))

    breakdown = ScoreBreakdown(
        profile=profile.name,
        performance=round(sub[Category.PERFORMANCE], _PRECISION),
        energy=round(sub[Category.ENERGY], _PRECISION),
        cost=round(sub[Category.COST], _PRECISION),
        safety=round(sub[Category.SAFETY], _PRECISION),
        weights=weights,
        base_score=round(base, _PRECISION),
        bonus_total=round(bonus, _PRECISION),
        penalty_total=round(penalty, _PRECISION),
        overall=overall,
        certification=certify(overall, profile.certification),
        degraded_categories=tuple(degraded),
        audit_trail=tuple(audit),
    )
    logger.debug(
        "Scored with %s: base=%.2f bonus=%.2f penalty=%.2f overall=%.2f (%s)",
        profile.name, base, bonus, penalty, overall, breakdown.certification,
    )
    return breakdown


def _fmt(value: float) -> str:
    return f"{value:.4g}"


def _fallback_detail(metrics: CategoryMetrics, value: float) -> str:
    detail = f"sub-score {_fmt(value)} from fallback estimate"
    reason = metrics.details.get("fallback_reason")
    return f"{detail} ({reason})" if reason else detail
