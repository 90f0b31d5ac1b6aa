"""
Provider registry: concurrent, deadline-bound metric collection.

Each registered provider runs as its own task under its own timeout.
A slow or failing provider affects only its own category; the others
finish independently. The registry never raises for provider problems,
it returns one CollectionOutcome per category instead. Only
cancellation of the caller propagates, after cancelling every task.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from crabscore.core.models.metrics import Category, CategoryMetrics, SafetyMetrics
from crabscore.providers.base import MetricProvider, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class OutcomeStatus(StrEnum):
    OK = "ok"
    FAILED = "failed"
    TIMEOUT = "timeout"
    MISSING = "missing"


@dataclass(frozen=True)
class CollectionOutcome:
    """What happened when collecting one category."""

    category: Category
    status: OutcomeStatus
    provider: str | None = None
    metrics: CategoryMetrics | None = None
    error: str | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "status": self.status.value,
            "provider": self.provider,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


class ProviderRegistry:
    """Holds at most one provider per category and collects from all of them."""

    def __init__(self) -> None:
        self._providers: dict[Category, MetricProvider] = {}

    def register(self, provider: MetricProvider) -> None:
        """Register a provider, replacing any provider of the same category."""
        existing = self._providers.get(provider.category)
        if existing is not None:
            logger.warning(
                "Replacing %s provider '%s' with '%s'",
                provider.category, existing.name, provider.name,
            )
        self._providers[provider.category] = provider
        logger.debug("Registered provider: %s (%s)", provider.name, provider.category)

    def unregister(self, category: Category) -> None:
        self._providers.pop(category, None)

    def get(self, category: Category) -> MetricProvider | None:
        return self._providers.get(category)

    def list_providers(self) -> dict[str, str]:
        """Category → provider name for everything registered."""
        return {c.value: p.name for c, p in self._providers.items()}

    def __len__(self) -> int:
        return len(self._providers)

    def __repr__(self) -> str:
        return f"ProviderRegistry({self.list_providers()})"

    # ── Collection ─────────────────────────────────────────────────

    async def collect_all(
        self,
        project_path: Path,
        timeouts: Mapping[str, float] | None = None,
        default_timeout: float = DEFAULT_TIMEOUT,
    ) -> dict[Category, CollectionOutcome]:
        """Collect every category concurrently.

        Args:
            project_path: Project being measured.
            timeouts: Per-category deadlines in seconds, keyed by category value.
            default_timeout: Deadline for categories without an entry.

        Returns:
            One outcome per category, in category order. Categories without
            a provider (or with an unavailable one) are MISSING.
        """
        timeouts = timeouts or {}
        tasks: dict[Category, asyncio.Task[CollectionOutcome]] = {}

        async with asyncio.TaskGroup() as tg:
            for category, provider in self._providers.items():
                timeout = timeouts.get(category.value, default_timeout)
                tasks[category] = tg.create_task(
                    self.collect_one(provider, project_path, timeout),
                    name=f"collect-{category.value}",
                )

        outcomes: dict[Category, CollectionOutcome] = {}
        for category in Category:
            task = tasks.get(category)
            outcomes[category] = task.result() if task is not None else CollectionOutcome(
                category=category,
                status=OutcomeStatus.MISSING,
                error="no provider registered",
            )
        return outcomes

    async def collect_one(
        self,
        provider: MetricProvider,
        project_path: Path,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> CollectionOutcome:
        """Run one provider under a deadline. Never raises except on cancellation."""
        category = provider.category

        try:
            available = provider.is_available()
        except Exception as e:
            logger.error("Availability check of provider %s crashed: %s", provider.name, e)
            available = False
        if not available:
            logger.info("Provider %s is not available, %s will be estimated", provider.name, category)
            return CollectionOutcome(
                category=category,
                status=OutcomeStatus.MISSING,
                provider=provider.name,
                error="provider not available",
            )

        start = time.monotonic()
        try:
            async with asyncio.timeout(timeout):
                metrics = await provider.collect(project_path)
        except TimeoutError:
            logger.warning("Provider %s timed out after %.1fs", provider.name, timeout)
            return self._outcome(provider, OutcomeStatus.TIMEOUT, start, error=f"timed out after {timeout:g}s")
        except ProviderError as e:
            logger.warning("Provider %s failed: %s", provider.name, e.message)
            return self._outcome(provider, OutcomeStatus.FAILED, start, error=e.message)
        except Exception as e:
            # Anything but ProviderError is a provider bug
            logger.exception("Provider %s raised unexpectedly", provider.name)
            return self._outcome(provider, OutcomeStatus.FAILED, start, error=f"unexpected error: {e}")

        expected = SafetyMetrics if category == Category.SAFETY else CategoryMetrics
        if not isinstance(metrics, expected) or metrics.category != category:
            got = getattr(metrics, "category", type(metrics).__name__)
            logger.error("Provider %s returned %s metrics, expected %s", provider.name, got, category)
            return self._outcome(provider, OutcomeStatus.FAILED, start, error=f"returned {got} metrics")

        logger.debug("Provider %s → %s score %.1f", provider.name, category, metrics.score)
        return self._outcome(provider, OutcomeStatus.OK, start, metrics=metrics)

    @staticmethod
    def _outcome(
        provider: MetricProvider,
        status: OutcomeStatus,
        start: float,
        metrics: CategoryMetrics | None = None,
        error: str | None = None,
    ) -> CollectionOutcome:
        return CollectionOutcome(
            category=provider.category,
            status=status,
            provider=provider.name,
            metrics=metrics,
            error=error,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
