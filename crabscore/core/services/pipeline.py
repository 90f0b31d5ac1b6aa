"""
Scoring pipeline: project path in, ScoreBreakdown out.

    1. resolve the profile          (ConfigError, before anything runs)
    2. walk the sources             (SourceRootError)
    3. measure complexity
    4. collect every category concurrently, each under its own deadline
    5. substitute estimates for categories without real metrics
    6. score

Cancelling ``score_project`` cancels the analyzer and every provider
and produces no result.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from crabscore.core.config.loader import ConfigError
from crabscore.core.config.profiles import ProfileRegistry, default_registry
from crabscore.core.models.complexity import ProjectComplexity
from crabscore.core.models.metrics import Category, CategoryMetrics, SafetyMetrics
from crabscore.core.models.run import RunConfig
from crabscore.core.models.score import ScoreBreakdown
from crabscore.core.services.analysis.analyzer import SafetyAnalyzer
from crabscore.core.services.analysis.cache import FindingCache
from crabscore.core.services.analysis.catalog import CATALOG_VERSION
from crabscore.core.services.analysis.complexity import measure_complexity
from crabscore.core.services.analysis.walker import walk_sources
from crabscore.core.services.scoring.engine import InvariantViolation, score
from crabscore.core.services.scoring.estimation import estimate
from crabscore.providers.cost import StaticCostProvider
from crabscore.providers.registry import CollectionOutcome, ProviderRegistry
from crabscore.providers.safety import SafetyProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    """Everything one run produced."""

    breakdown: ScoreBreakdown
    complexity: ProjectComplexity
    safety: SafetyMetrics
    outcomes: dict[Category, CollectionOutcome] = field(default_factory=dict)
    min_score: float = 0.0

    @property
    def gate_passed(self) -> bool:
        return self.breakdown.passes_gate(self.min_score)

    def to_dict(self) -> dict:
        return {
            "breakdown": self.breakdown.to_dict(),
            "complexity": self.complexity.to_dict(),
            "findings": self.safety.counts,
            "providers": {c.value: o.to_dict() for c, o in self.outcomes.items()},
            "min_score": self.min_score,
            "gate_passed": self.gate_passed,
        }


def build_default_providers(config: RunConfig) -> ProviderRegistry:
    """Providers the core can run on its own: safety, plus cost if a table was given."""
    cache = None
    if config.cache_path is not None:
        cache = FindingCache.load(config.cache_path, CATALOG_VERSION)

    registry = ProviderRegistry()
    registry.register(SafetyProvider(
        SafetyAnalyzer(workers=config.worker_count, cache=cache),
        exclude_patterns=config.exclude_patterns,
    ))
    if config.cost_table is not None:
        registry.register(StaticCostProvider(config.cost_table))
    return registry


async def score_project(
    project_path: Path | str,
    config: RunConfig | None = None,
    providers: ProviderRegistry | None = None,
    profiles: ProfileRegistry | None = None,
) -> RunResult:
    """Score one project.

    Args:
        project_path: Project root directory or a single ``.rs`` file.
        config: Run configuration (defaults apply when None).
        providers: Provider registry; defaults to ``build_default_providers``.
        profiles: Profile registry; defaults to the built-in profiles.

    Raises:
        ConfigError: Unknown or invalid profile, unusable project root.
    """
    config = config or RunConfig()
    root = Path(project_path)

    # ── Resolve profile ──────────────────────────────────────────
    profile = (profiles or default_registry()).get_profile(config.profile)
    problems = profile.problems()
    if problems:
        raise ConfigError(f"Profile '{profile.name}' is invalid: {'; '.join(problems)}")

    # ── Walk sources and measure complexity ──────────────────────
    files = await asyncio.to_thread(walk_sources, root, config.exclude_patterns)
    complexity = await asyncio.to_thread(measure_complexity, files, root)

    # ── Collect metrics ──────────────────────────────────────────
    if providers is None:
        providers = build_default_providers(config)
    timeouts = {category.value: config.timeout_for(category) for category in Category}
    outcomes = await providers.collect_all(root, timeouts, config.provider_timeout)

    # ── Substitute fallbacks ─────────────────────────────────────
    metrics: dict[Category, CategoryMetrics] = {}
    for category, outcome in outcomes.items():
        if outcome.ok and outcome.metrics is not None:
            metrics[category] = outcome.metrics
            continue
        fallback = estimate(category, complexity)
        reason = f"{outcome.status.value}: {outcome.error}" if outcome.error else outcome.status.value
        metrics[category] = fallback.model_copy(
            update={"details": {**fallback.details, "fallback_reason": reason}}
        )
        logger.warning("Using estimated %s metrics (%s)", category.value, reason)

    safety = metrics[Category.SAFETY]
    if not isinstance(safety, SafetyMetrics):
        raise InvariantViolation(
            f"safety category produced {type(safety).__name__}, expected SafetyMetrics"
        )

    # ── Score ────────────────────────────────────────────────────
    breakdown = score(
        metrics[Category.PERFORMANCE],
        metrics[Category.ENERGY],
        metrics[Category.COST],
        safety,
        complexity,
        profile,
    )
    result = RunResult(
        breakdown=breakdown,
        complexity=complexity,
        safety=safety,
        outcomes=outcomes,
        min_score=config.min_score,
    )
    logger.info(
        "Scored %s with profile %s: %.1f (%s)%s",
        root, profile.name, breakdown.overall, breakdown.certification,
        f", degraded: {', '.join(breakdown.degraded_categories)}" if breakdown.degraded else "",
    )
    return result


def run_score(
    project_path: Path | str,
    config: RunConfig | None = None,
    providers: ProviderRegistry | None = None,
    profiles: ProfileRegistry | None = None,
) -> RunResult:
    """Synchronous wrapper around ``score_project`` for non-async hosts."""
    return asyncio.run(score_project(project_path, config, providers, profiles))
