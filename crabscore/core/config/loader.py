"""
Configuration loader: reads crabscore.yml into a validated RunConfig.

Hosts that source configuration elsewhere (CLI flags, environment)
build a plain mapping and call ``validate_run_config`` instead.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from crabscore.core.models.run import RunConfig

logger = logging.getLogger(__name__)

# Searched in this order in every directory
RUN_CONFIG_FILE = "crabscore.yml"
RUN_CONFIG_NAMES = (RUN_CONFIG_FILE, "crabscore.yaml", ".crabscore.yml")

# A directory holding one of these is the top of a checkout
_REPO_MARKERS = (".git", ".hg")


class ConfigError(Exception):
    """Raised when run or profile configuration is invalid or missing."""


def find_run_config(start_dir: Path | None = None) -> Path | None:
    """Nearest run config at or above ``start_dir`` (default: cwd).

    The search stops at the top of the enclosing repository so a config
    in an unrelated parent directory is never picked up.
    """
    start = (start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        for name in RUN_CONFIG_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
        if any((directory / marker).exists() for marker in _REPO_MARKERS):
            break
    return None


def read_yaml_mapping(path: Path) -> dict[str, Any]:
    """Read a YAML file that must contain a mapping.

    Raises:
        ConfigError: If the file is missing, unreadable, malformed or not a mapping.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def validate_run_config(data: dict[str, Any]) -> RunConfig:
    """Validate an already-parsed run configuration mapping."""
    try:
        return RunConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid run configuration: {e}") from e


def load_run_config(path: Path | None = None) -> RunConfig:
    """Load and validate run configuration.

    Args:
        path: Explicit path to crabscore.yml. If None, searches upward
            and falls back to defaults when nothing is found.

    Returns:
        Validated RunConfig.

    Raises:
        ConfigError: If the file exists but is invalid.
    """
    if path is None:
        path = find_run_config()
        if path is None:
            logger.debug("No %s found, using defaults", RUN_CONFIG_FILE)
            return RunConfig()

    logger.debug("Loading run config from %s", path)
    data = read_yaml_mapping(path)

    # The YAML may wrap everything under a "crabscore" key or be flat
    if isinstance(data.get("crabscore"), dict):
        data = data["crabscore"]

    config = validate_run_config(data)
    logger.info(
        "Loaded run config (profile=%s, min_score=%s)",
        config.profile or "default", config.min_score,
    )
    return config
