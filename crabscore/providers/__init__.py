"""
Metric providers: one pluggable source per metric category.

    base       the MetricProvider contract and ProviderError
    registry   concurrent, deadline-bound collection
    safety     the static analyzer behind the provider contract
    benchmark  wall-clock benchmarking of an executable (performance)
    cost       lookup in an externally loaded cost table (cost)
    mock       configurable test double
"""

from crabscore.providers.base import MetricProvider, ProviderError
from crabscore.providers.registry import CollectionOutcome, OutcomeStatus, ProviderRegistry

__all__ = [
    "CollectionOutcome",
    "MetricProvider",
    "OutcomeStatus",
    "ProviderError",
    "ProviderRegistry",
]
