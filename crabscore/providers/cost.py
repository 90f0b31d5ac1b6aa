"""
Static cost provider: cost metrics from an externally loaded table.

The table is whatever the host parsed from its cost configuration,
shaped as sections of numeric keys::

    infrastructure: {cloud_compute_usd: 120, storage_usd: 8}
    operations:     {overhead_percentage: 0.15, mttr_minutes: 45}
    development:    {developer_hours: 40}

Missing sections or keys count as 0.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from crabscore.core.models.metrics import Category, CostMeasurement, CostMetrics
from crabscore.core.services.scoring.category import cost_metrics
from crabscore.providers.base import MetricProvider, ProviderError

# measurement field → (section, key)
COST_KEYS: dict[str, tuple[str, str]] = {
    "cloud_compute_usd": ("infrastructure", "cloud_compute_usd"),
    "storage_usd": ("infrastructure", "storage_usd"),
    "network_egress_usd": ("infrastructure", "network_egress_usd"),
    "licensing_usd": ("infrastructure", "licensing_usd"),
    "overhead_percentage": ("operations", "overhead_percentage"),
    "incident_response_hours": ("operations", "incident_response_hours"),
    "mttr_minutes": ("operations", "mttr_minutes"),
    "developer_hours": ("development", "developer_hours"),
}


class StaticCostProvider(MetricProvider):
    def __init__(self, table: Mapping[str, Any], source: str = "cost-table") -> None:
        self.table = table
        self.source = source

    @property
    def name(self) -> str:
        return "static-cost"

    @property
    def category(self) -> Category:
        return Category.COST

    def resolve(self) -> CostMeasurement:
        """Map table keys onto a measurement.

        Raises:
            ProviderError: If a section is not a mapping or a value is not numeric.
        """
        values: dict[str, float] = {}
        for field_name, (section, key) in COST_KEYS.items():
            body = self.table.get(section) or {}
            if not isinstance(body, Mapping):
                raise ProviderError(self.name, f"section '{section}' in {self.source} is not a mapping")
            raw = body.get(key, 0)
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                raise ProviderError(self.name, f"'{section}.{key}' in {self.source} is not a number: {raw!r}")
            values[field_name] = float(raw)
        return CostMeasurement(**values)

    async def collect(self, project_path: Path) -> CostMetrics:
        return cost_metrics(self.resolve(), self.source)
