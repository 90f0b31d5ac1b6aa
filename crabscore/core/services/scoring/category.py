"""
Category sub-scores: raw measurements → 0-100 values.

Providers use these to fill the ``score`` field of the metrics they
return. Every curve is of the form ``100 / (1 + x / scale)`` or a
ratio, so scores fall smoothly and never leave [0, 100].
"""

from __future__ import annotations

import math

from crabscore.core.models.metrics import (
    CostMeasurement,
    CostMetrics,
    EnergyMeasurement,
    EnergyMetrics,
    PerformanceMeasurement,
    PerformanceMetrics,
)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


def _inverse(value: float, scale: float) -> float:
    """100 at 0, 50 at ``scale``, approaching 0 as value grows."""
    return 100.0 / (1.0 + max(value, 0.0) / scale)


# ── Performance ───────────────────────────────────────────────────


def performance_score(m: PerformanceMeasurement) -> float:
    """Mean of latency, throughput and resource-efficiency scores."""
    latency = _inverse(max(m.latency.p95_ms, 1.0), 100.0)
    rps = max(m.requests_per_second, 0.0)
    throughput = rps / (rps + 1000.0) * 100.0
    resource = 100.0 * clamp(m.cpu_efficiency, 0.0, 1.0)
    return clamp(_mean([latency, throughput, resource]))


def performance_metrics(m: PerformanceMeasurement, source: str, estimated: bool = False) -> PerformanceMetrics:
    return PerformanceMetrics(
        score=performance_score(m),
        source=source,
        estimated=estimated,
        details=m.model_dump(),
    )


# ── Energy ────────────────────────────────────────────────────────


def energy_score(m: EnergyMeasurement) -> float:
    """Mean of the power-draw score and the renewable share."""
    power = _inverse(max(m.average_watts, 1.0), 100.0)
    renewable = 100.0 * clamp(m.renewable_share, 0.0, 1.0)
    return clamp(_mean([power, renewable]))


def energy_metrics(m: EnergyMeasurement, source: str, estimated: bool = False) -> EnergyMetrics:
    return EnergyMetrics(
        score=energy_score(m),
        source=source,
        estimated=estimated,
        details=m.model_dump(),
    )


# ── Cost ──────────────────────────────────────────────────────────


def cost_score(m: CostMeasurement) -> float:
    """Mean of infrastructure and operational-overhead scores."""
    infrastructure = _inverse(m.cloud_compute_usd, 1000.0)
    operations = _inverse(m.overhead_percentage, 1.0)
    return clamp(_mean([infrastructure, operations]))


def cost_metrics(m: CostMeasurement, source: str, estimated: bool = False) -> CostMetrics:
    return CostMetrics(
        score=cost_score(m),
        source=source,
        estimated=estimated,
        details=m.model_dump(),
    )
