# gamecollector/integrations/handlers/xbox_handler.py

"""Handler for Xbox app (Microsoft Store / Game Pass) PC games.

Games live in per-drive app folders: "Program Files/ModifiableWindowsApps"
and the folders listed in the drive's binary .GamingRoot file. Every game
folder holds an appxmanifest.xml (directly or under Content/).
"""

from __future__ import annotations

import struct
import xml.etree.ElementTree as ElementTree
from collections.abc import Iterator
from pathlib import Path, PureWindowsPath

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Settings
from gamecollector.core.logging import get_handler_logger
from gamecollector.integrations.handlers.base_handler import BaseHandler

__all__ = ["XboxHandler", "parse_gaming_root"]

logger = get_handler_logger("xbox")

# "RGBX" read as a little-endian uint32
GAMING_ROOT_MAGIC = 0x58424752
_MAX_FOLDER_COUNT = 255


def parse_gaming_root(gaming_root_file: Path) -> list[Path]:
    """Read the app folders listed in a drive's .GamingRoot file.

    Layout: uint32 magic, uint32 folder count, then one NUL-terminated
    UTF-16LE folder path per folder, relative to the drive root.

    Args:
        gaming_root_file: Path to the .GamingRoot file.

    Returns:
        Absolute folder paths.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the magic, count or strings are invalid.
    """
    data = gaming_root_file.read_bytes()
    try:
        magic, folder_count = struct.unpack_from("<II", data, 0)
    except struct.error as e:
        raise ValueError(f"{gaming_root_file} is too short") from e

    if magic != GAMING_ROOT_MAGIC:
        raise ValueError(f"File magic does not match: expected {GAMING_ROOT_MAGIC:08x} got {magic:08x}")
    if folder_count >= _MAX_FOLDER_COUNT:
        raise ValueError(f"Folder count exceeds the limit: {folder_count}")

    folders: list[Path] = []
    offset = 8
    for _ in range(folder_count):
        end = offset
        while data[end : end + 2] != b"\x00\x00":
            if end + 2 > len(data):
                raise ValueError(f"Unterminated folder name in {gaming_root_file}")
            end += 2
        relative = data[offset:end].decode("utf-16-le")
        folders.append(gaming_root_file.parent.joinpath(*PureWindowsPath(relative).parts))
        offset = end + 2
    return folders


class XboxHandler(BaseHandler):
    """Handler for Xbox app games."""

    handler = Handler.STORE_XBOX

    def get_app_folders(self) -> tuple[list[Path], list[ErrorMessage]]:
        """Collect app folders from every drive root.

        Returns:
            Tuple of (existing app folders, errors from unreadable
            .GamingRoot files).
        """
        folders: list[Path] = []
        errors: list[ErrorMessage] = []
        for root in self.known_paths.root_directories:
            modifiable_apps = root / "Program Files" / "ModifiableWindowsApps"
            if modifiable_apps.is_dir():
                folders.append(modifiable_apps)

            gaming_root_file = root / ".GamingRoot"
            if not gaming_root_file.is_file():
                continue
            try:
                folders.extend(folder for folder in parse_gaming_root(gaming_root_file) if folder.is_dir())
            except (OSError, ValueError) as e:
                errors.append(ErrorMessage(f"Unable to parse gaming root file {gaming_root_file}", e))
        return folders, errors

    def is_available(self) -> bool:
        """True if any drive root has an Xbox app folder."""
        folders, _ = self.get_app_folders()
        return bool(folders)

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        folders, errors = self.get_app_folders()
        yield from errors
        if not folders:
            yield ErrorMessage("Unable to find any app folders")
            return

        count = 0
        for folder in folders:
            try:
                directories = sorted(p for p in folder.iterdir() if p.is_dir())
            except OSError as e:
                yield ErrorMessage(f"Unable to list app folder {folder}", e)
                continue
            if not directories:
                logger.debug("App folder %s does not contain any sub directories", folder)
                continue
            for directory in directories:
                result = self._parse_game_directory(directory)
                if isinstance(result, GameData):
                    count += 1
                yield result

        logger.info("Found %d games in Xbox", count)

    def _parse_game_directory(self, directory: Path) -> GameResult:
        manifest_file = directory / "appxmanifest.xml"
        if not manifest_file.is_file():
            content_dir = directory / "Content"
            if not content_dir.is_dir():
                return ErrorMessage(
                    f"Manifest file does not exist at {manifest_file} and there is no Content folder at {content_dir}"
                )
            manifest_file = content_dir / "appxmanifest.xml"
            if not manifest_file.is_file():
                return ErrorMessage(f"Manifest file does not exist at {manifest_file}")
        return self._parse_app_manifest(manifest_file)

    def _parse_app_manifest(self, manifest_file: Path) -> GameResult:
        try:
            root = ElementTree.parse(manifest_file).getroot()
        except (OSError, ElementTree.ParseError) as e:
            return ErrorMessage(f"Unable to parse manifest file {manifest_file}", e)

        identity = root.find("{*}Identity")
        game_id = identity.get("Name") if identity is not None else None
        if not game_id:
            return ErrorMessage(f"Manifest file {manifest_file} does not have an Identity Name")

        game_path = manifest_file.parent
        display_name = root.findtext("{*}Properties/{*}DisplayName") or game_id
        logo = root.findtext("{*}Properties/{*}Logo")
        application = root.find("{*}Applications/{*}Application")
        executable = application.get("Executable") if application is not None else None
        launch = game_path.joinpath(*PureWindowsPath(executable).parts) if executable else None

        metadata: dict[str, list[str]] = {}
        description = root.findtext("{*}Properties/{*}Description")
        if description:
            metadata["Description"] = [description]
        publisher = root.findtext("{*}Properties/{*}PublisherDisplayName")
        if publisher:
            metadata["Publishers"] = [publisher]

        return GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=display_name,
            game_path=game_path,
            launch=launch,
            icon=game_path.joinpath(*PureWindowsPath(logo).parts) if logo else launch,
            metadata=metadata,
        )
