"""
Benchmark provider: wall-clock latency of a project executable.

Runs the command ``warmup`` times unrecorded, then ``iterations`` times
measured. Percentiles use nearest rank on the sorted samples, and
throughput is derived from the median latency.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from collections.abc import Sequence
from pathlib import Path

from crabscore.core.models.metrics import Category, LatencyMeasurement, PerformanceMeasurement, PerformanceMetrics
from crabscore.core.services.scoring.category import performance_metrics
from crabscore.providers.base import MetricProvider, ProviderError

logger = logging.getLogger(__name__)


def percentile(samples: Sequence[float], p: float) -> float:
    """Nearest-rank percentile of already sorted samples (p in [0, 1])."""
    if not samples:
        return 0.0
    idx = round(p * (len(samples) - 1))
    return samples[min(max(idx, 0), len(samples) - 1)]


class BenchmarkProvider(MetricProvider):
    """Measure a built executable by running it repeatedly.

    Args:
        command: Program and arguments, run with the project as cwd.
        warmup: Unrecorded runs before measuring.
        iterations: Measured runs.
        cpu_efficiency: Resource efficiency to report (0..1); wall-clock
            runs cannot observe it, so hosts that know it pass it in.
    """

    def __init__(
        self,
        command: Sequence[str],
        warmup: int = 1,
        iterations: int = 5,
        cpu_efficiency: float = 0.8,
    ) -> None:
        if not command:
            raise ValueError("benchmark command must not be empty")
        if iterations < 1:
            raise ValueError("iterations must be at least 1")
        self.command = list(command)
        self.warmup = max(warmup, 0)
        self.iterations = iterations
        self.cpu_efficiency = cpu_efficiency

    @property
    def name(self) -> str:
        return "benchmark"

    @property
    def category(self) -> Category:
        return Category.PERFORMANCE

    def is_available(self) -> bool:
        program = self.command[0]
        return Path(program).is_file() or shutil.which(program) is not None

    async def collect(self, project_path: Path) -> PerformanceMetrics:
        cwd = project_path if project_path.is_dir() else project_path.parent

        for _ in range(self.warmup):
            await self._run_once(cwd)

        samples: list[float] = []
        for i in range(self.iterations):
            elapsed = await self._run_once(cwd)
            if elapsed is None:
                logger.debug("Benchmark run %d of %s failed", i + 1, self.command[0])
                continue
            samples.append(elapsed)

        if not samples:
            raise ProviderError(self.name, f"no successful runs of {self.command[0]}")

        samples.sort()
        p50 = percentile(samples, 0.50)
        measurement = PerformanceMeasurement(
            latency=LatencyMeasurement(
                p50_ms=p50,
                p95_ms=percentile(samples, 0.95),
                p99_ms=percentile(samples, 0.99),
                cold_start_ms=samples[0],
                ttfb_ms=samples[0],
            ),
            requests_per_second=1000.0 / p50 if p50 > 0 else 0.0,
            cpu_efficiency=self.cpu_efficiency,
        )
        logger.info("Benchmarked %s: p50=%.1fms p95=%.1fms over %d runs",
                    self.command[0], p50, measurement.latency.p95_ms, len(samples))
        return performance_metrics(measurement, self.name)

    async def _run_once(self, cwd: Path) -> float | None:
        """Elapsed milliseconds of one successful run, or None."""
        start = time.perf_counter()
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                cwd=cwd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise ProviderError(self.name, f"cannot start {self.command[0]}: {e}") from e

        try:
            returncode = await proc.wait()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise
        elapsed = (time.perf_counter() - start) * 1000.0
        return elapsed if returncode == 0 else None
