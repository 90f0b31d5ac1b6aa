"""
Finding cache: skips re-parsing files that have not changed.

Entries are keyed by relative path and are valid only while the
content hash, the modification time and the catalog version all match.
Stored as JSON; writes are atomic (write to temp file, then rename).
A missing or corrupt cache file just means a cold run.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from crabscore.core.models.metrics import SafetyMetrics

logger = logging.getLogger(__name__)

CACHE_FORMAT = 1
DEFAULT_CACHE_FILE = ".crabscore-cache.json"


class CacheEntry(BaseModel):
    sha256: str
    mtime_ns: int
    catalog_version: str
    result: SafetyMetrics


class CacheDocument(BaseModel):
    format: int = CACHE_FORMAT
    entries: dict[str, CacheEntry] = Field(default_factory=dict)


class FindingCache:
    """Per-file analyzer results persisted across runs.

    Safe to query and update from analyzer worker threads.
    """

    def __init__(self, path: Path, catalog_version: str, entries: dict[str, CacheEntry] | None = None) -> None:
        self.path = path
        self.catalog_version = catalog_version
        self._entries: dict[str, CacheEntry] = dict(entries or {})
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"FindingCache({self.path}, entries={len(self)}, hits={self.hits}, misses={self.misses})"

    @classmethod
    def load(cls, path: Path, catalog_version: str) -> FindingCache:
        """Read the cache file; any problem yields an empty cache."""
        if not path.is_file():
            logger.debug("No finding cache at %s, starting cold", path)
            return cls(path, catalog_version)

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            doc = CacheDocument.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Ignoring unreadable finding cache %s: %s", path, e)
            return cls(path, catalog_version)

        if doc.format != CACHE_FORMAT:
            logger.info("Finding cache %s has format %s, starting cold", path, doc.format)
            return cls(path, catalog_version)

        logger.debug("Loaded %d cached file results from %s", len(doc.entries), path)
        return cls(path, catalog_version, doc.entries)

    def lookup(self, relative: str, sha256: str, mtime_ns: int) -> SafetyMetrics | None:
        """Cached result for a file, or None if any key part differs."""
        with self._lock:
            entry = self._entries.get(relative)
            if (
                entry is None
                or entry.sha256 != sha256
                or entry.mtime_ns != mtime_ns
                or entry.catalog_version != self.catalog_version
            ):
                self.misses += 1
                return None
            self.hits += 1
            return entry.result

    def store(self, relative: str, sha256: str, mtime_ns: int, result: SafetyMetrics) -> None:
        entry = CacheEntry(
            sha256=sha256,
            mtime_ns=mtime_ns,
            catalog_version=self.catalog_version,
            result=result,
        )
        with self._lock:
            self._entries[relative] = entry

    def prune(self, keep: set[str]) -> int:
        """Drop entries for files that no longer exist; returns how many."""
        with self._lock:
            stale = [k for k in self._entries if k not in keep]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def save(self) -> None:
        """Persist the cache (atomic write)."""
        with self._lock:
            doc = CacheDocument(entries=dict(sorted(self._entries.items())))
        content = json.dumps(doc.model_dump(mode="json"), sort_keys=True) + "\n"

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".crabscore_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            tmp.replace(self.path)
            logger.debug("Finding cache saved to %s (%d entries)", self.path, len(doc.entries))
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
