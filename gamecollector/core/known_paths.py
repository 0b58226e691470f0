# gamecollector/core/known_paths.py

"""Well-known per-user and machine-wide directories.

Vendors keep their data under ProgramData, AppData and friends. Handlers
resolve those through a KnownPaths instance so tests can point them at a
temporary directory.
"""

from __future__ import annotations

import os
import string
import sys
from dataclasses import dataclass, field
from pathlib import Path

__all__ = ["KnownPaths"]


def _env_path(name: str, fallback: Path) -> Path:
    value = os.environ.get(name)
    return Path(value) if value else fallback


def _drive_roots() -> tuple[Path, ...]:
    if sys.platform != "win32":
        return (Path("/"),)
    return tuple(Path(f"{letter}:\\") for letter in string.ascii_uppercase if Path(f"{letter}:\\").exists())


@dataclass(frozen=True)
class KnownPaths:
    """Resolved well-known directories.

    Attributes:
        common_application_data: Machine-wide app data (%ProgramData%).
        application_data: Roaming per-user app data (%APPDATA%).
        local_application_data: Local per-user app data (%LOCALAPPDATA%).
        my_documents: The user's Documents folder.
        home: The user's home directory.
        program_files: %ProgramFiles%.
        program_files_x86: %ProgramFiles(x86)%.
        root_directories: Drive roots to scan for per-drive folders.
    """

    common_application_data: Path
    application_data: Path
    local_application_data: Path
    my_documents: Path
    home: Path
    program_files: Path
    program_files_x86: Path
    root_directories: tuple[Path, ...] = field(default_factory=tuple)

    @classmethod
    def from_environment(cls) -> KnownPaths:
        """Build paths from the current environment.

        On Windows the usual environment variables are read. Elsewhere the
        XDG base directories are used so the library still runs (for
        example against a Wine prefix mounted through the env vars).
        """
        home = Path.home()
        if sys.platform == "win32":
            return cls(
                common_application_data=_env_path("PROGRAMDATA", Path("C:/ProgramData")),
                application_data=_env_path("APPDATA", home / "AppData" / "Roaming"),
                local_application_data=_env_path("LOCALAPPDATA", home / "AppData" / "Local"),
                my_documents=home / "Documents",
                home=home,
                program_files=_env_path("PROGRAMFILES", Path("C:/Program Files")),
                program_files_x86=_env_path("PROGRAMFILES(X86)", Path("C:/Program Files (x86)")),
                root_directories=_drive_roots(),
            )

        xdg_config = _env_path("XDG_CONFIG_HOME", home / ".config")
        xdg_data = _env_path("XDG_DATA_HOME", home / ".local" / "share")
        return cls(
            common_application_data=_env_path("PROGRAMDATA", xdg_data),
            application_data=_env_path("APPDATA", xdg_config),
            local_application_data=_env_path("LOCALAPPDATA", xdg_data),
            my_documents=home / "Documents",
            home=home,
            program_files=_env_path("PROGRAMFILES", Path("/opt")),
            program_files_x86=_env_path("PROGRAMFILES(X86)", Path("/opt")),
            root_directories=_drive_roots(),
        )

    @classmethod
    def under(cls, root: Path) -> KnownPaths:
        """Map every known directory to a sub-directory of root.

        Args:
            root: Base directory, typically pytest's tmp_path.

        Returns:
            KnownPaths with ProgramData, AppData/Roaming, AppData/Local,
            Documents, Program Files and Program Files (x86) below root.
        """
        return cls(
            common_application_data=root / "ProgramData",
            application_data=root / "AppData" / "Roaming",
            local_application_data=root / "AppData" / "Local",
            my_documents=root / "Documents",
            home=root,
            program_files=root / "Program Files",
            program_files_x86=root / "Program Files (x86)",
            root_directories=(root,),
        )
