"""
Score breakdown: the single, immutable result of a scoring run.

Handed to report consumers as-is. Contains no timestamps or other
run-varying data so the JSON form is byte-identical for identical input.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict

from crabscore.core.models.profile import Certification


class AuditKind(StrEnum):
    FALLBACK = "fallback"
    BONUS = "bonus"
    PENALTY = "penalty"
    CAP = "cap"
    CLAMP = "clamp"


class AuditEntry(BaseModel):
    """One contribution to the final score, or one degraded input."""

    model_config = ConfigDict(frozen=True)

    kind: AuditKind
    subject: str            # category, bonus dimension or finding kind
    label: str
    points: float = 0.0
    detail: str = ""


class ScoreBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    profile: str
    performance: float
    energy: float
    cost: float
    safety: float
    weights: dict[str, float]
    base_score: float
    bonus_total: float
    penalty_total: float
    overall: float
    certification: Certification
    degraded_categories: tuple[str, ...] = ()
    audit_trail: tuple[AuditEntry, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_categories)

    @property
    def static_analysis_only(self) -> bool:
        """True when any runtime-measured category fell back to an estimate."""
        return any(c in ("performance", "energy", "cost") for c in self.degraded_categories)

    @property
    def sub_scores(self) -> dict[str, float]:
        return {
            "performance": self.performance,
            "energy": self.energy,
            "cost": self.cost,
            "safety": self.safety,
        }

    def entries(self, kind: AuditKind) -> list[AuditEntry]:
        return [e for e in self.audit_trail if e.kind == kind]

    def passes_gate(self, min_score: float) -> bool:
        return self.overall >= min_score

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["static_analysis_only"] = self.static_analysis_only
        return data

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)
