# gamecollector/core/logging.py

"""Logging setup for GameCollector.

Every handler module writes to its own child of "gamecollector.handlers"
(see get_handler_logger), so a single store can be made more or less
verbose than the rest, e.g. DEBUG output for Steam while everything else
stays at WARNING.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from pathlib import Path

__all__ = ["HandlerLevelFilter", "get_handler_logger", "logger", "setup_logging"]

logger = logging.getLogger("gamecollector")
_handlers_logger = logger.getChild("handlers")


def get_handler_logger(name: str) -> logging.Logger:
    """Return the logger for one handler module, e.g. "steam" or "ea_desktop"."""
    return _handlers_logger.getChild(name.casefold())


def _to_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = getattr(logging, level.upper(), None)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


class HandlerLevelFilter(logging.Filter):
    """Drops records below the level configured for their handler.

    Records from a handler logger listed in the overrides (or one of its
    children) are compared against that handler's level; all other
    records use the default level.
    """

    def __init__(self, level: int, overrides: Mapping[str, int | str] | None = None) -> None:
        super().__init__()
        self.level = level
        self.overrides: dict[str, int] = {}
        self.update(level, overrides)

    def update(self, level: int, overrides: Mapping[str, int | str] | None = None) -> None:
        self.level = level
        self.overrides = {get_handler_logger(name).name: _to_level(lvl) for name, lvl in (overrides or {}).items()}

    def level_for(self, logger_name: str) -> int:
        name = logger_name
        while name:
            if name in self.overrides:
                return self.overrides[name]
            name = name.rpartition(".")[0]
        return self.level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.level_for(record.name)


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
    handler_levels: Mapping[str, int | str] | None = None,
) -> None:
    """Configure the library logger.

    Calling this again only changes the levels; the console and file
    handlers are installed once.

    Args:
        level: Default level for console output (default: INFO).
        log_file: Optional path to a log file. If provided, all records
            are also written to this file at DEBUG level.
        handler_levels: Console levels for individual handlers, keyed by
            handler module name. Names or numbers are accepted.

    Raises:
        ValueError: If a level name in handler_levels is not known.
    """
    console_filter = HandlerLevelFilter(level, handler_levels)
    lowest = min([level, *console_filter.overrides.values()])

    existing = [f for h in logger.handlers for f in h.filters if isinstance(f, HandlerLevelFilter)]
    if logger.handlers:
        for f in existing:
            f.update(level, handler_levels)
        has_file = any(isinstance(h, logging.FileHandler) for h in logger.handlers)
        logger.setLevel(min(lowest, logging.DEBUG) if has_file else lowest)
        return

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.addFilter(console_filter)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    logger.setLevel(lowest)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.setLevel(logging.DEBUG)
