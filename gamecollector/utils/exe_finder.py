# gamecollector/utils/exe_finder.py

"""Best-guess picker for a game's main executable.

Used by handlers whose vendor data records only an install directory.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

__all__ = ["find_exe"]

logger = logging.getLogger("gamecollector.exe_finder")

# Substrings that mark helper programs rather than the game itself
_BAD_WORDS: tuple[str, ...] = (
    "unins",
    "install",
    "patch",
    "redist",
    "prereq",
    "dotnet",
    "setup",
    "config",
    "w9xpopen",
    "edit",
    "help",
    "python",
    "server",
    "service",
    "cleanup",
    "anticheat",
    "touchup",
    "error",
    "crash",
    "report",
    "handler",
)

_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9 ]")


def _name_variants(game_name: str) -> set[str]:
    variants: set[str] = set()
    for base in (_INVALID_FILENAME_CHARS.sub("", game_name), _NON_ALPHANUMERIC.sub("", game_name)):
        base = base.strip().casefold()
        if not base:
            continue
        variants.update({base, base.replace(" ", "-"), base.replace(" ", "_"), base.replace(" ", "")})
    return variants


def find_exe(directory: Path, game_name: str = "") -> Path | None:
    """Guess the main executable below a game's install directory.

    A lone executable is returned as-is. Otherwise helper programs
    (uninstallers, redistributables, crash reporters...) are discarded,
    then a file whose name contains the game name is preferred, falling
    back to the first remaining candidate in sorted order.

    Args:
        directory: Install directory to search recursively.
        game_name: Display name of the game, used to match file names.

    Returns:
        Path to the chosen executable, or None if nothing suitable exists.
    """
    try:
        exes = sorted(p for p in directory.rglob("*") if p.suffix.casefold() == ".exe" and p.is_file())
    except OSError as e:
        logger.debug("Failed to scan %s for executables: %s", directory, e)
        return None

    if len(exes) == 1:
        return exes[0]

    candidates = [exe for exe in exes if not any(word in exe.name.casefold() for word in _BAD_WORDS)]
    if not candidates:
        return None

    if game_name:
        variants = _name_variants(game_name)
        # Later files win when several contain the name
        for exe in reversed(candidates):
            if any(variant in exe.name.casefold() for variant in variants):
                return exe

    return candidates[0]
