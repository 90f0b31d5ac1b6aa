"""
Provider base class: the interface every metric provider implements.

A provider produces the metrics for exactly one category. ``collect``
either returns those metrics or raises ``ProviderError``; the registry
turns anything else (timeouts, unexpected exceptions) into the same
failed outcome, so a broken provider can never fail a run.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from crabscore.core.models.metrics import Category, CategoryMetrics


class ProviderError(Exception):
    """A provider could not produce metrics."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class MetricProvider(ABC):
    """Abstract base for all metric providers.

    Subclasses must implement:
        - name: unique identifier (e.g. 'benchmark', 'static-cost')
        - category: which metric category the provider fills
        - collect: async measurement of a project

    ``collect`` must be cancellation-safe: when its task is cancelled it
    releases any process, file or thread it holds and re-raises.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique provider identifier."""

    @property
    @abstractmethod
    def category(self) -> Category:
        """The category this provider measures."""

    def is_available(self) -> bool:
        """Whether the provider can run in this environment.

        Unavailable providers are reported as missing without being called.
        """
        return True

    @abstractmethod
    async def collect(self, project_path: Path) -> CategoryMetrics:
        """Measure the project.

        Raises:
            ProviderError: When no metrics can be produced.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} category={self.category}>"
