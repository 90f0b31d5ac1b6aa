"""
Static provider: configurable test double for any category.

Returns fixed metrics, optionally after a delay, or fails with a
ProviderError or an arbitrary exception. Records every call.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from crabscore.core.models.metrics import Category, CategoryMetrics, SafetyMetrics
from crabscore.providers.base import MetricProvider, ProviderError


class StaticProvider(MetricProvider):
    """Provider that returns what it was told to.

    By default returns a metric with ``score`` for ``category``.
    """

    def __init__(
        self,
        category: Category,
        score: float = 100.0,
        provider_name: str | None = None,
        available: bool = True,
        delay: float = 0.0,
        metrics: CategoryMetrics | None = None,
    ) -> None:
        self._category = category
        self._name = provider_name or f"static-{category.value}"
        self._available = available
        self._delay = delay
        if metrics is None:
            if category == Category.SAFETY:
                metrics = SafetyMetrics(score=score, source=self._name)
            else:
                metrics = CategoryMetrics(category=category, score=score, source=self._name)
        self._metrics = metrics
        self._failure: BaseException | None = None
        self._call_log: list[Path] = []
        self.cancelled = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def category(self) -> Category:
        return self._category

    @property
    def call_log(self) -> list[Path]:
        """Every project path this provider was asked to measure."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, error: str = "static failure") -> None:
        """Make every subsequent collect raise ProviderError."""
        self._failure = ProviderError(self._name, error)

    def set_exception(self, exc: BaseException) -> None:
        """Make every subsequent collect raise ``exc`` as-is."""
        self._failure = exc

    async def collect(self, project_path: Path) -> CategoryMetrics:
        self._call_log.append(project_path)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self._failure is not None:
            raise self._failure
        return self._metrics

    def reset(self) -> None:
        """Clear call log and configured failure."""
        self._call_log.clear()
        self._failure = None
        self.cancelled = False
