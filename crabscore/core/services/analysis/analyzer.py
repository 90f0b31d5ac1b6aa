"""
Safety analyzer: parallel per-file analysis reduced into SafetyMetrics.

Each worker reads, hashes, parses and scans one file and returns its
own SafetyMetrics. Workers share nothing but the read-only catalog
(and the cache, which locks). The only combination step is the final
merge, which is order-independent.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from collections.abc import Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path

from crabscore.core.models.metrics import SafetyMetrics
from crabscore.core.models.run import DEFAULT_EXCLUDES
from crabscore.core.services.analysis.cache import FindingCache
from crabscore.core.services.analysis.catalog import DEFAULT_CATALOG, PatternCatalog
from crabscore.core.services.analysis.detectors import parse_error_finding, scan_unit
from crabscore.core.services.analysis.syntax import SourceUnit, parse_source
from crabscore.core.services.analysis.walker import SourceFile, walk_sources

logger = logging.getLogger(__name__)

# How often the collector re-checks the cancel event while waiting
_CANCEL_POLL_SECONDS = 0.05


class AnalysisCancelled(Exception):
    """The cancel event was set before analysis finished."""


@dataclass(frozen=True)
class FileResult:
    relative: str
    metrics: SafetyMetrics
    cached: bool = False


def reduce_metrics(parts: Iterable[SafetyMetrics], catalog_version: str = "") -> SafetyMetrics:
    """Merge per-file results pairwise (balanced, so large trees stay cheap)."""
    level = list(parts)
    if not level:
        return SafetyMetrics.empty(catalog_version)
    while len(level) > 1:
        merged = [a.merge(b) for a, b in zip(level[0::2], level[1::2])]
        if len(level) % 2:
            merged.append(level[-1])
        level = merged
    return level[0]


class SafetyAnalyzer:
    """Runs the detectors over a project with a thread pool.

    Args:
        catalog: Pattern catalog to match against.
        workers: Pool size; defaults to the CPU count.
        cache: Optional finding cache; saved after every completed run.
    """

    def __init__(
        self,
        catalog: PatternCatalog = DEFAULT_CATALOG,
        workers: int | None = None,
        cache: FindingCache | None = None,
    ) -> None:
        self.catalog = catalog
        self.workers = workers or os.cpu_count() or 1
        self.cache = cache

    def __repr__(self) -> str:
        return f"SafetyAnalyzer(catalog={self.catalog.version!r}, workers={self.workers})"

    def analyze(
        self,
        project_path: Path | str,
        exclude_patterns: Iterable[str] = DEFAULT_EXCLUDES,
        cancel_event: threading.Event | None = None,
    ) -> SafetyMetrics:
        """Walk and analyze a project.

        Individual file problems become ParseError findings; only an
        unusable root (SourceRootError) or cancellation raise.
        """
        files = walk_sources(project_path, exclude_patterns)
        return self.analyze_files(files, cancel_event)

    def analyze_files(
        self,
        files: list[SourceFile],
        cancel_event: threading.Event | None = None,
    ) -> SafetyMetrics:
        cancel = cancel_event or threading.Event()
        results: list[FileResult] = []

        if files:
            executor = ThreadPoolExecutor(
                max_workers=min(self.workers, len(files)),
                thread_name_prefix="crabscore-analyze",
            )
            try:
                pending: set[Future[FileResult | None]] = {
                    executor.submit(self.analyze_file, f, cancel) for f in files
                }
                while pending:
                    if cancel.is_set():
                        raise AnalysisCancelled(f"Analysis cancelled with {len(pending)} files pending")
                    done, pending = wait(pending, timeout=_CANCEL_POLL_SECONDS, return_when=FIRST_COMPLETED)
                    for future in done:
                        result = future.result()
                        if result is not None:
                            results.append(result)
                if cancel.is_set():
                    raise AnalysisCancelled("Analysis cancelled")
            finally:
                executor.shutdown(wait=True, cancel_futures=True)

        results.sort(key=lambda r: r.relative)
        metrics = reduce_metrics((r.metrics for r in results), self.catalog.version)

        if self.cache is not None:
            self.cache.prune({r.relative for r in results})
            try:
                self.cache.save()
            except OSError as e:
                logger.warning("Could not save finding cache %s: %s", self.cache.path, e)

        logger.info(
            "Analyzed %d files (%d from cache): %d lines, %d findings, safety %.1f",
            len(results), sum(1 for r in results if r.cached),
            metrics.total_lines, len(metrics.findings), metrics.score,
        )
        return metrics

    def analyze_file(self, source: SourceFile, cancel: threading.Event | None = None) -> FileResult | None:
        """Analyze one file; returns None if cancelled before starting."""
        if cancel is not None and cancel.is_set():
            return None

        try:
            data = source.path.read_bytes()
            mtime_ns = source.path.stat().st_mtime_ns
        except OSError as e:
            logger.info("Cannot read %s: %s", source.relative, e)
            unit = SourceUnit(source.relative, "", None, 0, error=f"unreadable: {e.strerror or e}")
            return FileResult(source.relative, self._unit_metrics(unit))

        digest = hashlib.sha256(data).hexdigest()
        if self.cache is not None:
            cached = self.cache.lookup(source.relative, digest, mtime_ns)
            if cached is not None:
                return FileResult(source.relative, cached, cached=True)

        unit = parse_source(source.relative, data)
        metrics = self._unit_metrics(unit)
        if self.cache is not None:
            self.cache.store(source.relative, digest, mtime_ns, metrics)
        return FileResult(source.relative, metrics)

    def _unit_metrics(self, unit: SourceUnit) -> SafetyMetrics:
        scan = scan_unit(unit, self.catalog)
        return SafetyMetrics.from_findings(
            scan.findings,
            files_scanned=1,
            # Unparsed files contribute no lines to AST-derived density
            total_lines=unit.line_count if unit.parsed else 0,
            function_count=scan.function_count,
            branch_count=scan.branch_count,
            catalog_version=self.catalog.version,
        )


def analyze(
    project_path: Path | str,
    exclude_patterns: Iterable[str] = DEFAULT_EXCLUDES,
    cancel_event: threading.Event | None = None,
) -> SafetyMetrics:
    """Analyze a project with the default catalog and no cache."""
    return SafetyAnalyzer().analyze(project_path, exclude_patterns, cancel_event)
