"""
Logging configuration for hosts that embed the scoring pipeline.

The library itself only ever does ``logging.getLogger(__name__)``; a CLI,
CI job or service calls ``setup_logging`` (or ``setup_logging_from_env``)
once at startup.

Level precedence:
    explicit argument  >  CRABSCORE_LOG_LEVEL  >  WARNING

File output is opt-in via CRABSCORE_LOG_FILE, with its own level in
CRABSCORE_LOG_FILE_LEVEL (defaults to the console level).
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

ENV_LEVEL = "CRABSCORE_LOG_LEVEL"
ENV_FILE = "CRABSCORE_LOG_FILE"
ENV_FILE_LEVEL = "CRABSCORE_LOG_FILE_LEVEL"

# (highest level the format applies to, format, datefmt), checked in order.
# Above INFO a scoring run only prints fallbacks and failures, so the
# console gets the bare message.
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(threadName)s - %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(threadName)s - %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Chatty below WARNING; only let through when the host asked for DEBUG
_NOISY_LOGGERS = ("asyncio", "tree_sitter")


@dataclass(frozen=True)
class LogSettings:
    level: int = logging.WARNING
    log_file: Path | None = None
    file_level: int | None = None
    quiet_third_party: bool = True

    @classmethod
    def from_env(cls, level: str | None = None) -> LogSettings:
        log_file = os.environ.get(ENV_FILE) or None
        return cls(
            level=_parse_level(level or os.environ.get(ENV_LEVEL)),
            log_file=Path(log_file) if log_file else None,
            file_level=_parse_level(os.environ[ENV_FILE_LEVEL]) if os.environ.get(ENV_FILE_LEVEL) else None,
        )

    @property
    def root_level(self) -> int:
        """The most verbose of the console and file levels."""
        if self.log_file is None or self.file_level is None:
            return self.level
        return min(self.level, self.file_level)


def setup_logging(
    level: str = "WARNING",
    log_file: str | Path | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> LogSettings:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional log file; parent directories are created.
        log_file_level: Level for the file; defaults to ``level``.
        quiet_third_party: Hold asyncio and tree-sitter at WARNING unless
            the console is at DEBUG.

    Returns:
        The settings that were applied.
    """
    settings = LogSettings(
        level=_parse_level(level),
        log_file=Path(log_file) if log_file else None,
        file_level=_parse_level(log_file_level) if log_file_level else None,
        quiet_third_party=quiet_third_party,
    )
    apply_settings(settings)
    return settings


def setup_logging_from_env(level: str | None = None) -> LogSettings:
    """``setup_logging`` with CRABSCORE_* environment fallbacks."""
    settings = LogSettings.from_env(level)
    apply_settings(settings)
    return settings


def apply_settings(settings: LogSettings) -> None:
    root = logging.getLogger()
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(settings.level)
    console.setFormatter(_console_formatter(settings.level))
    root.addHandler(console)

    if settings.log_file is not None:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        file_handler.setLevel(settings.file_level if settings.file_level is not None else settings.level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(file_handler)

    root.setLevel(settings.root_level)

    if settings.quiet_third_party and settings.level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # A broken log stream must never fail a scoring run
    logging.raiseExceptions = False


def _console_formatter(level: int) -> logging.Formatter:
    for ceiling, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= ceiling:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter("%(message)s")


def _parse_level(level: str | None) -> int:
    """Level name → numeric level; unknown or empty names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.strip().upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
