"""
Fallback estimates: deterministic stand-ins for missing categories.

Used when a provider is absent, fails or times out. Every estimate is
a pure function of ProjectComplexity and is marked ``estimated=True``
so the engine can flag the category as degraded.
"""

from __future__ import annotations

from crabscore.core.models.complexity import ProjectComplexity
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
from crabscore.core.services.scoring.category import (
    clamp,
    cost_metrics,
    energy_metrics,
    performance_metrics,
)

ESTIMATE_SOURCE = "estimate"


def estimate_performance(c: ProjectComplexity) -> PerformanceMetrics:
    f = c.complexity_factor
    base_latency = 10.0 + 5.0 * f
    measurement = PerformanceMeasurement(
        latency=LatencyMeasurement(
            p50_ms=base_latency,
            p95_ms=base_latency * 1.5,
            p99_ms=base_latency * 2.0,
            cold_start_ms=base_latency * 3.0,
            ttfb_ms=base_latency * 0.3,
        ),
        requests_per_second=1000.0 / base_latency,
        mb_per_second=100.0 / max(f, 1.0),
        cpu_efficiency=0.8 - min(f * 0.05, 0.5),
        cache_hit_ratio=0.9 - min(f * 0.02, 0.3),
        memory_mb=10.0 + 10.0 * f,
    )
    return performance_metrics(measurement, ESTIMATE_SOURCE, estimated=True)


def estimate_energy(c: ProjectComplexity) -> EnergyMetrics:
    f = c.complexity_factor
    measurement = EnergyMeasurement(
        average_watts=5.0 + 2.0 * f,
        peak_watts=10.0 + 5.0 * f,
        idle_watts=2.0 + 0.5 * f,
        joules_per_operation=0.001 * (1.0 + f * 0.1),
        renewable_share=0.3,
        carbon_intensity_g_per_kwh=400.0,
    )
    return energy_metrics(measurement, ESTIMATE_SOURCE, estimated=True)


def estimate_cost(c: ProjectComplexity) -> CostMetrics:
    f = c.complexity_factor
    measurement = CostMeasurement(
        cloud_compute_usd=10.0 + 20.0 * f,
        storage_usd=1.0 + 2.0 * f,
        network_egress_usd=5.0 + 5.0 * f,
        overhead_percentage=0.1 + min(f * 0.02, 0.3),
        incident_response_hours=2.0 + f,
        mttr_minutes=30.0 + 10.0 * (c.function_count / 10.0),
        developer_hours=10.0 + 5.0 * f,
    )
    return cost_metrics(measurement, ESTIMATE_SOURCE, estimated=True)


def estimate_safety(c: ProjectComplexity) -> SafetyMetrics:
    """No findings can be guessed; score decays gently with size."""
    return SafetyMetrics(
        score=clamp(max(50.0, 90.0 - 5.0 * c.complexity_factor)),
        source=ESTIMATE_SOURCE,
        estimated=True,
        files_scanned=c.file_count,
        total_lines=c.total_lines,
    )


_ESTIMATORS = {
    Category.PERFORMANCE: estimate_performance,
    Category.ENERGY: estimate_energy,
    Category.COST: estimate_cost,
    Category.SAFETY: estimate_safety,
}


def estimate(category: Category, complexity: ProjectComplexity) -> CategoryMetrics:
    """Fallback metrics for one category."""
    return _ESTIMATORS[category](complexity)
