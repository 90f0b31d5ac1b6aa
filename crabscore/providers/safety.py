"""
Safety provider: the static analyzer behind the provider contract.

Analysis is CPU-bound and runs on a worker thread pool; the coroutine
only waits for it. Cancelling the coroutine sets the analyzer's cancel
event so queued parses are dropped and the pool shuts down.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable
from pathlib import Path

from crabscore.core.models.metrics import Category, SafetyMetrics
from crabscore.core.models.run import DEFAULT_EXCLUDES
from crabscore.core.services.analysis.analyzer import AnalysisCancelled, SafetyAnalyzer
from crabscore.core.services.analysis.walker import SourceRootError
from crabscore.providers.base import MetricProvider, ProviderError

logger = logging.getLogger(__name__)


class SafetyProvider(MetricProvider):
    def __init__(
        self,
        analyzer: SafetyAnalyzer | None = None,
        exclude_patterns: Iterable[str] = DEFAULT_EXCLUDES,
    ) -> None:
        self.analyzer = analyzer or SafetyAnalyzer()
        self.exclude_patterns = tuple(exclude_patterns)

    @property
    def name(self) -> str:
        return "static-analyzer"

    @property
    def category(self) -> Category:
        return Category.SAFETY

    async def collect(self, project_path: Path) -> SafetyMetrics:
        cancel = threading.Event()
        try:
            return await asyncio.to_thread(
                self.analyzer.analyze, project_path, self.exclude_patterns, cancel,
            )
        except asyncio.CancelledError:
            cancel.set()
            logger.info("Safety analysis of %s cancelled", project_path)
            raise
        except SourceRootError as e:
            raise ProviderError(self.name, str(e)) from e
        except AnalysisCancelled as e:
            raise ProviderError(self.name, str(e)) from e
