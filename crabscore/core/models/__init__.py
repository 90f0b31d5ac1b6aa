"""
Domain models: Pydantic types for findings, metrics, profiles and scores.

All models are re-exported here for convenient access:

    from crabscore.core.models import SafetyFinding, SafetyMetrics, ScoreBreakdown
"""

from crabscore.core.models.complexity import ProjectComplexity
from crabscore.core.models.findings import FindingKind, LineSpan, SafetyFinding, Severity
from crabscore.core.models.metrics import (
    Category,
    CategoryMetrics,
    CostMeasurement,
    CostMetrics,
    EnergyMeasurement,
    EnergyMetrics,
    LatencyMeasurement,
    PerformanceMeasurement,
    PerformanceMetrics,
    SafetyMetrics,
)
from crabscore.core.models.profile import (
    BonusRule,
    BonusTable,
    BonusTier,
    CategoryWeights,
    Certification,
    CertificationBand,
    IndustryProfile,
    PenaltyTable,
    PenaltyWeight,
)
from crabscore.core.models.run import RunConfig
from crabscore.core.models.score import AuditEntry, AuditKind, ScoreBreakdown

__all__ = [
    "AuditEntry",
    "AuditKind",
    "BonusRule",
    "BonusTable",
    "BonusTier",
    "Category",
    "CategoryMetrics",
    "CategoryWeights",
    "Certification",
    "CertificationBand",
    "CostMeasurement",
    "CostMetrics",
    "EnergyMeasurement",
    "EnergyMetrics",
    "FindingKind",
    "IndustryProfile",
    "LatencyMeasurement",
    "LineSpan",
    "PenaltyTable",
    "PenaltyWeight",
    "PerformanceMeasurement",
    "PerformanceMetrics",
    "ProjectComplexity",
    "RunConfig",
    "SafetyFinding",
    "SafetyMetrics",
    "ScoreBreakdown",
    "Severity",
]
