"""
Industry profiles: weights, bonus tables, penalty tables and the
certification ladder.

All of these are loaded once by the profile registry and shared
read-only by every scoring call, hence frozen.
"""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crabscore.core.models.complexity import METRIC_NAMES
from crabscore.core.models.findings import FindingKind, Severity
from crabscore.core.models.metrics import SAFETY_METRIC_NAMES

# Tolerance for "weights sum to 1.0"
WEIGHT_EPSILON = 1e-4


class Certification(StrEnum):
    NONE = "none"
    VERIFIED = "verified"
    CERTIFIED = "certified"
    ELITE = "elite"
    PIONEER = "pioneer"


class CategoryWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    performance: float = Field(ge=0.0, le=1.0)
    energy: float = Field(ge=0.0, le=1.0)
    cost: float = Field(ge=0.0, le=1.0)
    safety: float = Field(ge=0.0, le=1.0)

    @property
    def total(self) -> float:
        return self.performance + self.energy + self.cost + self.safety

    @property
    def balanced(self) -> bool:
        """Whether the weights sum to 1.0 within ``WEIGHT_EPSILON``."""
        return math.isfinite(self.total) and abs(self.total - 1.0) <= WEIGHT_EPSILON

    def as_dict(self) -> dict[str, float]:
        return {
            "performance": self.performance,
            "energy": self.energy,
            "cost": self.cost,
            "safety": self.safety,
        }


# ── Bonuses ───────────────────────────────────────────────────────

Comparison = Literal["lt", "le", "gt", "ge", "eq"]

_COMPARE = {
    "lt": lambda value, threshold: value < threshold,
    "le": lambda value, threshold: value <= threshold,
    "gt": lambda value, threshold: value > threshold,
    "ge": lambda value, threshold: value >= threshold,
    "eq": lambda value, threshold: value == threshold,
}


class BonusTier(BaseModel):
    """``metric <op> threshold`` earns ``points``.

    ``metric`` names a project complexity metric or a safety metric
    (``avg_cyclomatic``).
    """

    model_config = ConfigDict(frozen=True)

    metric: str
    op: Comparison
    threshold: float
    points: float = Field(ge=0.0)
    label: str

    @field_validator("metric")
    @classmethod
    def _known_metric(cls, v: str) -> str:
        if v not in METRIC_NAMES and v not in SAFETY_METRIC_NAMES:
            raise ValueError(f"unknown metric '{v}'")
        return v

    def matches(self, value: float) -> bool:
        return _COMPARE[self.op](value, self.threshold)


class BonusRule(BaseModel):
    """One dimension; tiers are listed most generous first."""

    model_config = ConfigDict(frozen=True)

    dimension: str
    tiers: tuple[BonusTier, ...] = Field(min_length=1)

    @field_validator("tiers")
    @classmethod
    def _descending_points(cls, v: tuple[BonusTier, ...]) -> tuple[BonusTier, ...]:
        points = [t.points for t in v]
        if points != sorted(points, reverse=True):
            raise ValueError("tiers must be ordered from most to least generous")
        return v


class BonusTable(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    cap: float = Field(default=10.0, ge=0.0)
    rules: tuple[BonusRule, ...] = ()

    @field_validator("rules")
    @classmethod
    def _unique_dimensions(cls, v: tuple[BonusRule, ...]) -> tuple[BonusRule, ...]:
        dims = [r.dimension for r in v]
        if len(dims) != len(set(dims)):
            raise ValueError(f"duplicate bonus dimension in {dims}")
        return v


# ── Penalties ─────────────────────────────────────────────────────


class PenaltyWeight(BaseModel):
    """Points per finding per 100 scanned lines.

    ``severity`` narrows the weight to one severity; None matches all.
    """

    model_config = ConfigDict(frozen=True)

    kind: FindingKind
    severity: Severity | None = None
    weight: float = Field(ge=0.0)
    label: str = ""

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.severity}" if self.severity else self.kind


class PenaltyTable(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    cap: float = Field(default=20.0, ge=0.0)
    weights: tuple[PenaltyWeight, ...] = ()
    # Same shape as bonus rules; a matching tier's points are deducted
    rules: tuple[BonusRule, ...] = ()

    @field_validator("rules")
    @classmethod
    def _unique_dimensions(cls, v: tuple[BonusRule, ...]) -> tuple[BonusRule, ...]:
        dims = [r.dimension for r in v]
        if len(dims) != len(set(dims)):
            raise ValueError(f"duplicate penalty dimension in {dims}")
        return v


# ── Certification ladder ──────────────────────────────────────────


class CertificationBand(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: Certification
    min_score: float


def ladder_problems(ladder: tuple[CertificationBand, ...]) -> list[str]:
    """Describe what is wrong with a certification ladder (empty = valid).

    A valid ladder is non-empty, strictly descending, within [0, 100]
    and ends with a band at 0 so every score maps to a tier.
    """
    problems: list[str] = []
    if not ladder:
        return ["certification ladder is empty"]
    previous = math.inf
    for band in ladder:
        if not 0.0 <= band.min_score <= 100.0:
            problems.append(f"band {band.tier} threshold {band.min_score} outside [0, 100]")
        if band.min_score >= previous:
            problems.append(f"band {band.tier} threshold {band.min_score} is not below {previous}")
        previous = band.min_score
    if ladder[-1].min_score != 0.0:
        problems.append("lowest certification band must start at 0")
    return problems


class IndustryProfile(BaseModel):
    """A named weighting configuration with its resolved tables."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    weights: CategoryWeights
    bonus_table: BonusTable
    penalty_table: PenaltyTable
    certification: tuple[CertificationBand, ...]

    def problems(self) -> list[str]:
        """Everything that makes this profile unusable for scoring."""
        problems = []
        if not self.weights.balanced:
            problems.append(
                f"weights sum to {self.weights.total:.6f}, expected 1.0 ± {WEIGHT_EPSILON}"
            )
        problems.extend(ladder_problems(self.certification))
        return problems
