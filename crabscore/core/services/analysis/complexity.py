"""
Project complexity: a cheap line scan over the walked sources.

Counts are heuristic (line prefixes, not syntax) so they stay
available even for files the parser rejects.
"""

from __future__ import annotations

import logging
import re
import tomllib
from pathlib import Path

from crabscore.core.models.complexity import ProjectComplexity
from crabscore.core.services.analysis.walker import SourceFile

logger = logging.getLogger(__name__)

_FN_HEAD = re.compile(
    r"^\s*(?:pub(?:\([^)]*\))?\s+)?(?:default\s+)?(?:const\s+)?(?:async\s+)?(?:unsafe\s+)?"
    r"(?:extern\s+(?:\"[^\"]*\"\s+)?)?fn\s+[A-Za-z_]"
)
_MOD_HEAD = re.compile(r"^\s*(?:pub(?:\([^)]*\))?\s+)?mod\s+[A-Za-z_]\w*\s*[{;]")
_TEST_ATTR = re.compile(r"^\s*#\[\s*(?:test|tokio::test|async_std::test|rstest|test_case)\b")
_DOC_LINE = re.compile(r"^\s*//[/!](?!/)")

MANIFEST = "Cargo.toml"


def measure_complexity(files: list[SourceFile], project_path: Path | str) -> ProjectComplexity:
    """Size and hygiene statistics for the walked files plus the manifest."""
    total_lines = function_count = module_count = test_count = doc_lines = 0

    for source in files:
        try:
            content = source.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Skipping %s in complexity scan: %s", source.relative, e)
            continue
        lines = content.splitlines()
        total_lines += len(lines)
        for line in lines:
            if _DOC_LINE.match(line):
                doc_lines += 1
            elif _TEST_ATTR.match(line):
                test_count += 1
            elif _FN_HEAD.match(line):
                function_count += 1
            elif _MOD_HEAD.match(line):
                module_count += 1

    root = Path(project_path)
    manifest = root / MANIFEST
    complexity = ProjectComplexity(
        file_count=len(files),
        total_lines=total_lines,
        function_count=function_count,
        module_count=module_count,
        test_count=test_count,
        doc_lines=doc_lines,
        dependency_count=count_dependencies(manifest) if root.is_dir() else 0,
    )
    logger.debug("Complexity of %s: %s", root, complexity.to_dict())
    return complexity


def count_dependencies(manifest: Path) -> int:
    """Entries in ``[dependencies]`` of a Cargo manifest (0 if absent)."""
    if not manifest.is_file():
        return 0
    try:
        data = tomllib.loads(manifest.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        logger.info("Malformed %s (%s), counting dependencies line by line", manifest, e)
        return _scan_dependencies(manifest)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Cannot read %s: %s", manifest, e)
        return 0
    deps = data.get("dependencies")
    return len(deps) if isinstance(deps, dict) else 0


def _scan_dependencies(manifest: Path) -> int:
    """Line-based fallback for manifests tomllib rejects."""
    count = 0
    section = ""
    try:
        content = manifest.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return 0
    for line in content.splitlines():
        stripped = line.strip()
        if stripped.startswith("["):
            section = stripped.strip("[]").strip()
            continue
        if section == "dependencies" and "=" in stripped and not stripped.startswith("#"):
            count += 1
    return count
