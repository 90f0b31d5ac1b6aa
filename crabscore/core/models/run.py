"""
Run configuration: what a host passes in for one scoring run.

Parsing (YAML file, CLI flags, environment) happens outside; this model
only validates. See ``crabscore.core.config.loader.load_run_config``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from crabscore.core.models.metrics import Category

DEFAULT_EXCLUDES: tuple[str, ...] = ("target", ".git", "node_modules")


class RunConfig(BaseModel):
    profile: str | None = None                  # None = registry default
    min_score: float = Field(default=0.0, ge=0.0, le=100.0)
    exclude_patterns: tuple[str, ...] = DEFAULT_EXCLUDES
    provider_timeout: float = Field(default=30.0, gt=0.0)
    timeouts: dict[str, float] = Field(default_factory=dict)  # per category
    workers: int | None = Field(default=None, ge=1)
    cache_path: Path | None = None
    cost_table: dict[str, Any] | None = None

    @field_validator("exclude_patterns", mode="before")
    @classmethod
    def _merge_default_excludes(cls, v: Any) -> tuple[str, ...]:
        if v is None:
            return DEFAULT_EXCLUDES
        if isinstance(v, str):
            v = [v]
        merged = list(DEFAULT_EXCLUDES)
        for pattern in v:
            if pattern not in merged:
                merged.append(pattern)
        return tuple(merged)

    @field_validator("timeouts")
    @classmethod
    def _known_positive_timeouts(cls, v: dict[str, float]) -> dict[str, float]:
        known = [c.value for c in Category]
        for category, seconds in v.items():
            if category not in known:
                raise ValueError(f"unknown timeout category '{category}' (expected one of {known})")
            if seconds <= 0:
                raise ValueError(f"timeout for '{category}' must be positive")
        return v

    def timeout_for(self, category: Category | str) -> float:
        """Per-category timeout, falling back to ``provider_timeout``."""
        return self.timeouts.get(category, self.provider_timeout)

    @property
    def worker_count(self) -> int:
        return self.workers or os.cpu_count() or 1
