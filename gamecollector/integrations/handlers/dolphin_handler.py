# gamecollector/integrations/handlers/dolphin_handler.py

"""Handler for the Dolphin GameCube/Wii emulator.

Dolphin caches what it knows about every ROM in its game list directories
in User/Cache/gamelist.cache. The cache is a serialized C++ structure;
parse_game_list() walks its NUL-separated strings instead of decoding
the structure field by field.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Settings
from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.logging import get_handler_logger
from gamecollector.core.registry import Registry, RegistryHive
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.path_utils import is_rooted, to_path

__all__ = ["DolphinHandler", "GameListEntry", "parse_game_list", "read_rom_paths"]

logger = get_handler_logger("dolphin")

_DOLPHIN_KEY = r"Software\Dolphin Emulator"
_USER_PATH_ENV = "DOLPHIN_EMU_USERPATH"
_MAX_TOKEN_LENGTH = 260

_DATE_PATTERN = re.compile(r"^[0-9]{4}/[0-9]{2}/[0-9]{2}")

# Trailing bytes of the token that marks the console type
_GAMECUBE_MARKER = "W"
_WII_MARKERS = ("H0\x02", "$\x18\x01", "\ufffd\x0f", "\ufffd\ufffd\x01")

# Last character of a token, used by the cache as a length prefix of the next field
_DESCRIPTION_ENDINGS = frozenset("\x0b\x0e")
_TRANSLATED_TITLE_ENDINGS = frozenset("\x01\x02\x03\x04\x05\x07")
_ID_ENDING = "\x06"

_SYSTEMS = {
    "D": "GameCube",
    "G": "GameCube",
    "P": "GameCube",
    "R": "Wii",
    "S": "Wii",
}

_REGIONS = {
    "D": "Germany",
    "E": "USA",
    "F": "France",
    "I": "Italy",
    "J": "Japan",
    "K": "Korea",
    "P": "Europe",
    "S": "Spain",
    "U": "Australia",
    "W": "Taiwan",
    "X": "Europe",
    "Y": "Europe",
}


@dataclass
class GameListEntry:
    """One ROM as recorded in gamelist.cache."""

    file: str
    game_id: str = ""
    title: str = ""
    description: str = ""
    system: str = ""
    region: str = ""
    apploader_date: str = ""


def read_rom_paths(ini_file: Path) -> list[str]:
    """Return the ISOPath<n> entries of Dolphin.ini.

    Args:
        ini_file: Path to Config/Dolphin.ini.

    Raises:
        OSError: If the file cannot be read.
    """
    rom_paths: list[str] = []
    with open(ini_file, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            lowered = line.lower()
            if not lowered.startswith("isopath") or lowered.startswith("isopaths"):
                continue
            if "=" in line:
                rom_paths.append(line.split("=", 1)[1].strip())
    return rom_paths


def parse_game_list(data: bytes, rom_paths: list[str]) -> list[GameListEntry]:
    """Extract ROM entries from the raw contents of gamelist.cache.

    An entry starts at a token beginning with one of the ROM directories
    and ends at the first token that starts with an apploader date
    ("YYYY/MM/DD"). Entries without a date are dropped.

    Args:
        data: Raw cache file contents.
        rom_paths: ROM directories from Dolphin.ini.

    Returns:
        Complete entries in file order.
    """
    prefixes = [rom_path.replace("\\", "/") for rom_path in rom_paths if rom_path]
    entries: list[GameListEntry] = []
    entry: GameListEntry | None = None
    index = 0
    id_count = 0
    done = False
    previous = ""

    for token in data.decode("utf-8", errors="replace").split("\0"):
        if len(token) <= 1 or len(token) > _MAX_TOKEN_LENGTH:
            continue
        index += 1

        if any(token.startswith(prefix) for prefix in prefixes):
            entry = GameListEntry(file=token[:-1])
            index = 0
            id_count = 0
            done = False
            continue
        if done or entry is None:
            continue

        # file name
        if index == 1:
            continue

        if index == 2 or (index == 3 and not entry.system):
            if token.endswith(_GAMECUBE_MARKER):
                entry.system = "GameCube"
            elif token.endswith(_WII_MARKERS):
                entry.system = "Wii"
            continue

        last = token[-1]
        if last in _DESCRIPTION_ENDINGS:
            entry.description = token[:-1]
            continue
        if last in _TRANSLATED_TITLE_ENDINGS:
            continue
        if last == _ID_ENDING:
            id_count += 1
            # The game ID is the last token ending in ACK; the best title precedes it
            if id_count > 1:
                entry.game_id = token[:-1]
                if previous:
                    is_letter = previous[-1].isascii() and previous[-1].isalpha()
                    entry.title = previous if is_letter else previous[:-1]
            if not token.startswith("RVL"):
                previous = token
            continue

        if entry.game_id and token.startswith(entry.game_id):
            entry.game_id = token
            entry.system = _SYSTEMS.get(token[0], entry.system)
            if len(token) > 3:
                entry.region = _REGIONS.get(token[3], "")
            continue

        match = _DATE_PATTERN.match(token)
        if match:
            entry.apploader_date = match.group(0)
            entries.append(entry)
            done = True
            continue

        previous = token

    return entries


class DolphinHandler(BaseHandler):
    """Handler for ROMs in Dolphin's game list."""

    handler = Handler.EMU_DOLPHIN

    def __init__(
        self,
        registry: Registry | None = None,
        known_paths: KnownPaths | None = None,
        dolphin_path: Path | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            registry: Registry to read.
            known_paths: Well-known directories.
            dolphin_path: Path to Dolphin.exe.
        """
        super().__init__(registry, known_paths)
        self.dolphin_path = dolphin_path

    def is_available(self) -> bool:
        """True if the configured Dolphin executable exists."""
        return self.dolphin_path is not None and self.dolphin_path.is_file()

    def find_client(self) -> Path | None:
        """The configured Dolphin executable."""
        return self.dolphin_path

    def find_user_path(self) -> Path | None:
        """Locate Dolphin's User directory.

        Checked in order: a portable install, DOLPHIN_EMU_USERPATH, the
        registry, Documents, AppData and finally the User folder next to
        the executable.

        Returns:
            The first existing candidate, or None.
        """
        dolphin_dir = self.dolphin_path.parent if self.dolphin_path is not None else None
        portable_user = dolphin_dir / "User" if dolphin_dir is not None else None

        if dolphin_dir is not None and (dolphin_dir / "portable.txt").is_file() and portable_user.is_dir():
            return portable_user

        env_path = os.environ.get(_USER_PATH_ENV, "")
        if is_rooted(env_path) and Path(env_path).is_dir():
            return Path(env_path)

        key = self.registry.open_key(RegistryHive.CURRENT_USER, _DOLPHIN_KEY)
        if key is not None:
            if key.get_string("LocalUserConfig") == "1" and portable_user is not None and portable_user.is_dir():
                return portable_user
            config_path = to_path(key.get_string("UserConfigPath"))
            if config_path is not None and config_path.is_dir():
                return config_path

        for candidate in (
            self.known_paths.my_documents / "Dolphin Emulator",
            self.known_paths.application_data / "Dolphin Emulator",
            portable_user,
        ):
            if candidate is not None and candidate.is_dir():
                return candidate
        return None

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        if self.dolphin_path is None or not self.dolphin_path.is_file():
            yield ErrorMessage(f"The file {self.dolphin_path} does not exist")
            return

        user_path = self.find_user_path()
        if user_path is None:
            yield ErrorMessage("Unable to find the Dolphin user directory")
            return
        logger.debug("Dolphin user path: %s", user_path)

        ini_file = user_path / "Config" / "Dolphin.ini"
        cache_file = user_path / "Cache" / "gamelist.cache"
        try:
            rom_paths = read_rom_paths(ini_file)
            entries = parse_game_list(cache_file.read_bytes(), rom_paths)
        except OSError as e:
            yield ErrorMessage(f"Unable to read the Dolphin game list in {user_path}", e)
            return

        count = 0
        for entry in entries:
            game = self._entry_to_game(entry, user_path)
            if game is None:
                logger.debug("Skipping missing ROM %s", entry.file)
                continue
            count += 1
            yield game

        logger.info("Found %d games in Dolphin", count)

    def _entry_to_game(self, entry: GameListEntry, user_path: Path) -> GameData | None:
        rom = to_path(entry.file)
        if rom is None or not rom.is_file():
            return None

        game_id = entry.game_id or rom.stem
        cover = user_path / "Cache" / "GameCovers" / f"{game_id[:6]}.png" if len(game_id) > 5 else None

        metadata: dict[str, list[str]] = {}
        if entry.description:
            metadata["Description"] = [entry.description]
        release_date = _parse_apploader_date(entry.apploader_date)
        if release_date is not None:
            metadata["ReleaseDate"] = [release_date.date().isoformat()]
        if entry.system:
            metadata["System"] = [entry.system]
        if entry.region:
            metadata["Region"] = [entry.region]

        return GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=entry.title or rom.stem,
            game_path=rom.parent,
            launch=self.dolphin_path,
            launch_args=f'-b -e "{rom}"',
            icon=cover if cover is not None else self.dolphin_path,
            metadata=metadata,
        )


def _parse_apploader_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y/%m/%d")
    except ValueError:
        return None
