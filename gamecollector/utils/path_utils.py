# gamecollector/utils/path_utils.py

"""Helpers for paths read out of vendor files."""

from __future__ import annotations

from pathlib import Path, PureWindowsPath

__all__ = ["is_rooted", "split_command_line", "to_path"]


def is_rooted(value: str | None) -> bool:
    """Check whether a vendor-supplied path string is absolute.

    Accepts both native absolute paths and Windows drive paths, since
    vendor files always store the latter.

    Args:
        value: Path string from a registry value or manifest.

    Returns:
        True if the path is absolute.
    """
    if not value:
        return False
    return Path(value).is_absolute() or PureWindowsPath(value).is_absolute()


def to_path(value: str | None) -> Path | None:
    """Convert a vendor path string to a Path, or None when not rooted."""
    if not value:
        return None
    value = value.strip().strip('"')
    if not is_rooted(value):
        return None
    return Path(value)


def split_command_line(command_line: str | None) -> tuple[str, str]:
    """Split a registry command line into its program and arguments.

    Args:
        command_line: e.g. '"C:\\Games\\unins000.exe" /SILENT'.

    Returns:
        Tuple of (program without quotes, remaining arguments).
    """
    command_line = (command_line or "").strip()
    if command_line.startswith('"'):
        end = command_line.find('"', 1)
        if end > 0:
            return command_line[1:end], command_line[end + 1 :].strip()
    program, _, args = command_line.partition(" ")
    return program, args.strip()
