"""
Source walker: enumerates Rust files under a project root.

Exclude patterns are fnmatch globs matched against the relative path
and against each of its components, so ``target`` prunes every
directory named target and ``src/generated/*`` prunes one subtree.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from crabscore.core.config.loader import ConfigError
from crabscore.core.models.run import DEFAULT_EXCLUDES

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".rs"


class SourceRootError(ConfigError):
    """The project root does not exist or cannot be listed."""


@dataclass(frozen=True)
class SourceFile:
    """One candidate file: absolute path plus its POSIX path relative to the root."""

    path: Path
    relative: str


def is_excluded(relative: str, patterns: Iterable[str]) -> bool:
    """Whether a relative POSIX path matches any exclude pattern."""
    parts = relative.split("/")
    for pattern in patterns:
        if fnmatch.fnmatchcase(relative, pattern):
            return True
        if any(fnmatch.fnmatchcase(part, pattern) for part in parts):
            return True
    return False


def walk_sources(
    project_path: Path | str,
    exclude_patterns: Iterable[str] = DEFAULT_EXCLUDES,
) -> list[SourceFile]:
    """List every ``.rs`` file under ``project_path`` not excluded.

    A single ``.rs`` file is accepted as the root; it is then its own
    only candidate. Results are sorted by relative path.

    Raises:
        SourceRootError: If the root is missing or unreadable.
    """
    root = Path(project_path)
    patterns = tuple(exclude_patterns)

    if root.is_file():
        if root.suffix != SOURCE_SUFFIX:
            raise SourceRootError(f"Not a Rust source file: {root}")
        return [SourceFile(path=root, relative=root.name)]

    if not root.is_dir():
        raise SourceRootError(f"Project root not found: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise SourceRootError(f"Project root is not readable: {root}")

    found: list[SourceFile] = []

    def _on_error(err: OSError) -> None:
        # Only the root is fatal; unreadable subdirectories are skipped.
        if Path(err.filename or "") == root:
            raise SourceRootError(f"Cannot list project root {root}: {err}") from err
        logger.warning("Skipping unreadable directory %s: %s", err.filename, err.strerror)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        current = Path(dirpath)
        rel_dir = current.relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        # Prune in place so os.walk never descends into excluded trees
        kept = []
        for name in sorted(dirnames):
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if is_excluded(rel, patterns):
                logger.debug("Excluded directory %s", rel)
                continue
            kept.append(name)
        dirnames[:] = kept

        for name in filenames:
            if not name.endswith(SOURCE_SUFFIX):
                continue
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if is_excluded(rel, patterns):
                logger.debug("Excluded file %s", rel)
                continue
            found.append(SourceFile(path=current / name, relative=rel))

    found.sort(key=lambda f: f.relative)
    logger.debug("Walked %s: %d source files", root, len(found))
    return found
