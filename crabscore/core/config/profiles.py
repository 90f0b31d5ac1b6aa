"""
Industry profile registry: loads profiles.yml into immutable profiles.

Profiles reference bonus and penalty tables by name. The loader
resolves those references once, attaches the shared certification
ladder, and validates everything before the registry is handed out.
Consumers never see table names, only resolved tables.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from crabscore.core.config.loader import ConfigError, read_yaml_mapping
from crabscore.core.models.profile import (
    BonusTable,
    CategoryWeights,
    CertificationBand,
    IndustryProfile,
    PenaltyTable,
    ladder_problems,
)

logger = logging.getLogger(__name__)

BUILTIN_PROFILES = Path(__file__).with_name("profiles.yml")


def normalize_name(name: str) -> str:
    """Canonical registry key: lowercase, words joined by '-'."""
    return "-".join(name.strip().lower().replace("_", " ").split())


class ProfileRegistry:
    """Read-only name → IndustryProfile map with a default entry.

    Lookups normalize the name, so ``Web_Services`` finds ``web-services``.
    Unknown names raise ``ConfigError`` instead of ``KeyError``.
    """

    def __init__(self, profiles: Mapping[str, IndustryProfile], default: str) -> None:
        normalized = {normalize_name(k): v for k, v in profiles.items()}
        default = normalize_name(default)
        if default not in normalized:
            raise ConfigError(f"Default profile '{default}' is not defined")
        for name, profile in normalized.items():
            problems = profile.problems()
            if problems:
                raise ConfigError(f"Profile '{name}' is invalid: {'; '.join(problems)}")
        self._profiles = MappingProxyType(normalized)
        self._default = default

    def __getitem__(self, name: str) -> IndustryProfile:
        return self.get_profile(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_name(name) in self._profiles

    def __repr__(self) -> str:
        return f"ProfileRegistry(default={self._default!r}, profiles={list(self._profiles)})"

    @property
    def default_name(self) -> str:
        return self._default

    @property
    def default(self) -> IndustryProfile:
        return self._profiles[self._default]

    def get_profile(self, name: str | None = None) -> IndustryProfile:
        """Resolve a profile by name; None selects the default.

        Raises:
            ConfigError: If no profile with that name is registered.
        """
        if name is None:
            return self.default
        profile = self._profiles.get(normalize_name(name))
        if profile is None:
            raise ConfigError(
                f"Unknown profile '{name}'. Available: {', '.join(sorted(self._profiles))}"
            )
        return profile


# ═══════════════════════════════════════════════════════════════════
#  Loading
# ═══════════════════════════════════════════════════════════════════


def load_profile_registry(path: Path | None = None) -> ProfileRegistry:
    """Load a registry from a profiles YAML file (built-ins by default).

    Raises:
        ConfigError: On any schema, reference or validation problem.
    """
    path = path or BUILTIN_PROFILES
    data = read_yaml_mapping(path)
    registry = build_registry(data, source=str(path))
    logger.info("Loaded %d profiles from %s (default: %s)", len(registry), path, registry.default_name)
    return registry


def build_registry(data: Mapping[str, Any], source: str = "<memory>") -> ProfileRegistry:
    """Build a registry from an already-parsed mapping."""
    try:
        ladder = tuple(CertificationBand.model_validate(b) for b in data.get("certification") or ())
        bonus_tables = {
            name: BonusTable.model_validate({"name": name, **(body or {})})
            for name, body in (data.get("bonus_tables") or {}).items()
        }
        penalty_tables = {
            name: PenaltyTable.model_validate({"name": name, **(body or {})})
            for name, body in (data.get("penalty_tables") or {}).items()
        }
    except (ValidationError, TypeError) as e:
        raise ConfigError(f"Invalid tables in {source}: {e}") from e

    problems = ladder_problems(ladder)
    if problems:
        raise ConfigError(f"Invalid certification ladder in {source}: {'; '.join(problems)}")

    raw_profiles = data.get("profiles") or {}
    if not isinstance(raw_profiles, Mapping) or not raw_profiles:
        raise ConfigError(f"No profiles defined in {source}")

    profiles = {
        name: _resolve_profile(name, body or {}, bonus_tables, penalty_tables, ladder, source)
        for name, body in raw_profiles.items()
    }
    default = data.get("default_profile") or next(iter(profiles))
    return ProfileRegistry(profiles, default=default)


def _resolve_profile(
    name: str,
    body: Mapping[str, Any],
    bonus_tables: dict[str, BonusTable],
    penalty_tables: dict[str, PenaltyTable],
    ladder: tuple[CertificationBand, ...],
    source: str,
) -> IndustryProfile:
    """Turn table references into the shared table objects."""
    bonus_ref = body.get("bonus_table", "standard")
    penalty_ref = body.get("penalty_table", "standard")
    if bonus_ref not in bonus_tables:
        raise ConfigError(f"Profile '{name}' references unknown bonus table '{bonus_ref}'")
    if penalty_ref not in penalty_tables:
        raise ConfigError(f"Profile '{name}' references unknown penalty table '{penalty_ref}'")

    try:
        return IndustryProfile(
            name=normalize_name(name),
            description=body.get("description", ""),
            weights=CategoryWeights.model_validate(body.get("weights") or {}),
            bonus_table=bonus_tables[bonus_ref],
            penalty_table=penalty_tables[penalty_ref],
            certification=ladder,
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid profile '{name}' in {source}: {e}") from e


@functools.lru_cache(maxsize=1)
def default_registry() -> ProfileRegistry:
    """The built-in registry, loaded once per process."""
    return load_profile_registry(BUILTIN_PROFILES)
