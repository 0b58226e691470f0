# gamecollector/integrations/handlers/paradox_handler.py

"""Handler for the Paradox Launcher (v2).

The launcher lists every game the account owns in its game-metadata
file. userSettings.json records where games are installed and when they
were last launched; each installed game carries a launcher-settings.json
naming its executable.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path
from typing import Any

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Settings
from gamecollector.core.logging import get_handler_logger
from gamecollector.core.registry import RegistryHive
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.exe_finder import find_exe
from gamecollector.utils.path_utils import is_rooted, to_path

__all__ = ["ParadoxHandler"]

logger = get_handler_logger("paradox")

_LAUNCHER_KEY = r"Software\Paradox Interactive\Paradox Launcher v2"
_DEFAULT_LIBRARY = "default"
_USER_DOCUMENTS = "%USER_DOCUMENTS%"

_THEME_METADATA = {
    "appIcon": "AppIcon",
    "appTaskbarIcon": "AppTaskbarIcon",
    "background": "Background",
    "logo": "Logo",
}


class ParadoxHandler(BaseHandler):
    """Handler for Paradox Launcher v2."""

    handler = Handler.STORE_PARADOX

    def get_launcher_data_dir(self) -> Path:
        """Folder the Paradox Launcher keeps its settings in."""
        return self.known_paths.application_data / "Paradox Interactive" / "launcher-v2"

    def is_available(self) -> bool:
        """True if userSettings.json exists."""
        return (self.get_launcher_data_dir() / "userSettings.json").is_file()

    def find_client(self) -> Path | None:
        """bootstrapper-v2.exe in the registered launcher installation."""
        key = self.registry.open_key(RegistryHive.CURRENT_USER, _LAUNCHER_KEY)
        if key is None:
            return None
        launcher = to_path(key.get_string("LauncherInstallation"))
        return launcher / "bootstrapper-v2.exe" if launcher is not None else None

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        settings = settings or Settings()
        data_dir = self.get_launcher_data_dir()
        user_file = data_dir / "userSettings.json"
        try:
            user_settings = _read_json(user_file)
        except (OSError, ValueError) as e:
            yield ErrorMessage(f"Unable to deserialize file {user_file}", e)
            return

        library_paths = user_settings.get("gameLibraryPaths")
        games_launched = user_settings.get("gamesLaunched")
        install_paths = self._install_paths(library_paths if isinstance(library_paths, list) else [])
        run_dates = _run_dates(games_launched if isinstance(games_launched, dict) else {})

        meta_file = data_dir / "game-metadata" / "game-metadata"
        try:
            data = _read_json(meta_file).get("data")
        except (OSError, ValueError) as e:
            yield ErrorMessage(f"Unable to deserialize file {meta_file}", e)
            return
        games_metadata = data.get("games") if isinstance(data, dict) else None
        if not isinstance(games_metadata, list):
            yield ErrorMessage(f"File {meta_file} does not have a list of games")
            return

        count = 0
        for index, entry in enumerate(games_metadata):
            if not isinstance(entry, dict):
                yield ErrorMessage(f"Game metadata entry #{index} in {meta_file} is not an object")
                continue
            try:
                result = self._parse_game(entry, install_paths, run_dates)
            except (AttributeError, TypeError) as e:
                result = ErrorMessage(f"Exception while parsing game metadata entry #{index} in {meta_file}", e)
            if isinstance(result, GameData) and not result.is_installed and settings.installed_only:
                continue
            if isinstance(result, GameData):
                count += 1
            yield result

        logger.info("Found %d games in Paradox Launcher", count)

    def _install_paths(self, library_paths: list[Any]) -> dict[str, Path]:
        """Map game IDs (or "default") to install locations.

        A plain string is the default library root; objects pin a single
        game to its own installation path.
        """
        paths: dict[str, Path] = {}
        for library in library_paths:
            if isinstance(library, str):
                paths[_DEFAULT_LIBRARY] = self._resolve(library)
            elif isinstance(library, dict) and library.get("gameId"):
                installation_path = library.get("installationPath")
                if isinstance(installation_path, str):
                    paths[str(library["gameId"]).casefold()] = self._resolve(installation_path)
        return paths

    def _resolve(self, path: str) -> Path:
        if is_rooted(path):
            return Path(path)
        return self.get_launcher_data_dir() / path

    def _parse_game(
        self, entry: dict[str, Any], install_paths: dict[str, Path], run_dates: dict[str, datetime]
    ) -> GameResult:
        game_id = entry.get("id")
        if not game_id:
            return ErrorMessage('Game metadata entry does not have a value "id"')
        name = entry.get("name") or game_id.replace("_", " ")

        game_path = install_paths.get(game_id.casefold())
        if game_path is None and _DEFAULT_LIBRARY in install_paths:
            game_path = install_paths[_DEFAULT_LIBRARY] / game_id

        launch = to_path(entry.get("exePath"))
        save_path: Path | None = None
        is_installed = game_path is not None and game_path.is_dir()
        if is_installed and (launch is None or not launch.is_file()):
            launch, save_path = self._read_launcher_settings(game_path)
            if launch is None or not launch.is_file():
                launch = find_exe(game_path, name)

        metadata: dict[str, list[str]] = {}
        theme = entry.get("themeSettings") or {}
        for key, metadata_key in _THEME_METADATA.items():
            if theme.get(key):
                metadata[metadata_key] = [theme[key]]

        return GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=name,
            game_path=game_path if is_installed else None,
            save_path=save_path,
            launch=launch if is_installed else None,
            launch_args=(entry.get("exeArgs") or "") if is_installed else "",
            icon=to_path(theme.get("appIcon")) or (launch if is_installed else None),
            last_run_date=run_dates.get(game_id.casefold()),
            is_installed=is_installed,
            metadata=metadata,
        )

    def _read_launcher_settings(self, game_path: Path) -> tuple[Path | None, Path | None]:
        """Return (executable, save data directory) from launcher-settings.json."""
        settings_file = game_path / "launcher-settings.json"
        if not settings_file.is_file():
            return None, None
        try:
            launcher_settings = _read_json(settings_file)
        except (OSError, ValueError) as e:
            logger.warning("Unable to read %s: %s", settings_file, e)
            return None, None

        exe = launcher_settings.get("exePath")
        data_path = launcher_settings.get("gameDataPath") or ""
        data_path = data_path.replace(_USER_DOCUMENTS, str(self.known_paths.my_documents))
        return (game_path / exe if exe else None), to_path(data_path)


def _read_json(path: Path) -> dict[str, Any]:
    contents = json.loads(path.read_text(encoding="utf-8-sig"))
    if not isinstance(contents, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return contents


def _run_dates(games_launched: dict[str, Any]) -> dict[str, datetime]:
    """Convert gamesLaunched (game ID -> Unix time in milliseconds) to datetimes."""
    dates: dict[str, datetime] = {}
    for game_id, value in games_launched.items():
        try:
            timestamp = int(value)
        except (TypeError, ValueError):
            continue
        if timestamp > 0:
            dates[game_id.casefold()] = datetime.fromtimestamp(timestamp / 1000)
    return dates
