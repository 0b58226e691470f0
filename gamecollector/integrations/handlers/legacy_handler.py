# gamecollector/integrations/handlers/legacy_handler.py

"""Handler for the Legacy Games launcher.

Installed games register under HKCU\\Software\\Legacy Games. The
launcher's app-state.json carries the store catalog, claimed giveaways
and the library folders, which are also scanned for games the registry
does not know about.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path
from typing import Any

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Problem, Settings
from gamecollector.core.logging import get_handler_logger
from gamecollector.core.registry import RegistryHive, RegistryKey, RegistryView
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.exe_finder import find_exe
from gamecollector.utils.path_utils import split_command_line, to_path

__all__ = ["GENRES", "LegacyHandler"]

logger = get_handler_logger("legacy")

_LEGACY_KEY = r"Software\Legacy Games"
_UNINSTALL_KEY = r"Software\Microsoft\Windows\CurrentVersion\Uninstall"
_LAUNCHER_UNINSTALL_ID = "da414c81-a9fd-5732-bd5e-8acced116298"
_LAUNCHER_DIR_NAME = "legacy games launcher"

# Store category IDs
GENRES: dict[int, str] = {
    21: "Hidden Object",
    22: "Match 3",
    23: "Time Management",
    55: "Card & Tile",
    137: "Puzzle",
    138: "Adventure",
    165: "Simulation",
}


class LegacyHandler(BaseHandler):
    """Handler for Legacy Games."""

    handler = Handler.STORE_LEGACY

    def get_app_state_file(self) -> Path:
        """Path to the Legacy Games launcher's app-state.json."""
        return self.known_paths.application_data / "legacy-games-launcher" / "app-state.json"

    def is_available(self) -> bool:
        """True if the Legacy Games registry key or launcher state exists."""
        return (
            self.registry.open_key(RegistryHive.CURRENT_USER, _LEGACY_KEY) is not None
            or self.get_app_state_file().is_file()
        )

    def find_client(self) -> Path | None:
        """The launcher executable from its uninstall key."""
        key = self.registry.open_key(
            RegistryHive.CURRENT_USER, f"{_UNINSTALL_KEY}\\{_LAUNCHER_UNINSTALL_ID}", RegistryView.REGISTRY64
        )
        if key is None:
            return None
        return to_path(key.get_string("DisplayIcon"))

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        settings = settings or Settings()
        legacy_key = self.registry.open_key(RegistryHive.CURRENT_USER, _LEGACY_KEY)
        app_state_file = self.get_app_state_file()
        if legacy_key is None and not app_state_file.is_file():
            yield ErrorMessage(
                f"Unable to open HKEY_CURRENT_USER\\{_LEGACY_KEY} and no launcher state at {app_state_file}"
            )
            return

        installed: dict[str, GameData] = {}
        if legacy_key is not None:
            for sub_key_name in legacy_key.get_sub_key_names():
                result = self._parse_sub_key(legacy_key, sub_key_name)
                if isinstance(result, ErrorMessage):
                    yield result
                    continue
                installed.setdefault(result.game_id.casefold(), result)

        catalog: dict[str, GameData] = {}
        library_paths: list[Path] = []
        if app_state_file.is_file():
            try:
                catalog, library_paths, errors = _read_app_state(app_state_file)
            except (OSError, ValueError) as e:
                yield ErrorMessage(f"Exception parsing Legacy Games file {app_state_file}", e)
            else:
                yield from errors

        count = 0
        for key, game in installed.items():
            entry = catalog.pop(key, None)
            if entry is not None:
                game = replace(
                    game, game_name=game.game_name or entry.game_name, metadata={**entry.metadata, **game.metadata}
                )
            count += 1
            yield game

        known_dirs = {game.game_path for game in installed.values() if game.game_path is not None}
        for result in self._scan_libraries(library_paths, known_dirs):
            if isinstance(result, GameData):
                count += 1
            yield result

        for game in catalog.values():
            if settings.installed_only or (settings.owned_only and not game.is_owned):
                continue
            count += 1
            yield game

        logger.info("Found %d games in Legacy Games", count)

    def _parse_sub_key(self, legacy_key: RegistryKey, sub_key_name: str) -> GameResult:
        sub_key = legacy_key.open_sub_key(sub_key_name)
        if sub_key is None:
            return ErrorMessage(f"Unable to open {legacy_key.name}\\{sub_key_name}")

        game_id = sub_key.get_string("InstallerUUID")
        if not game_id:
            return ErrorMessage(f'{sub_key.name} doesn\'t have a string value "InstallerUUID"')
        name = sub_key.get_string("ProductName")
        if name is None:
            return ErrorMessage(f'{sub_key.name} doesn\'t have a string value "ProductName"')
        install_dir = sub_key.get_string("InstDir")
        if install_dir is None:
            return ErrorMessage(f'{sub_key.name} doesn\'t have a string value "InstDir"')

        game_path = to_path(install_dir)
        exe_name = sub_key.get_string("GameExe")
        launch = game_path / exe_name if game_path is not None and exe_name else None

        icon: Path | None = None
        uninstall: Path | None = None
        uninstall_args = ""
        metadata: dict[str, list[str]] = {}
        uninstall_key = self.registry.open_key(
            RegistryHive.LOCAL_MACHINE, f"{_UNINSTALL_KEY}\\{name}", RegistryView.REGISTRY32
        )
        if uninstall_key is not None:
            icon = to_path(uninstall_key.get_string("DisplayIcon"))
            uninstall_path, uninstall_args = split_command_line(uninstall_key.get_string("UninstallString"))
            uninstall = to_path(uninstall_path)
            publisher = uninstall_key.get_string("Publisher")
            if publisher:
                metadata["Publishers"] = [publisher]

        return GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=name,
            game_path=game_path,
            launch=launch,
            icon=icon or launch,
            uninstall=uninstall,
            uninstall_args=uninstall_args,
            metadata=metadata,
        )

    def _scan_libraries(self, library_paths: list[Path], known_dirs: set[Path]) -> Iterator[GameResult]:
        """Yield game folders in the libraries that the registry does not list."""
        for library in library_paths:
            try:
                folders = sorted(p for p in library.iterdir() if p.is_dir())
            except OSError as e:
                yield ErrorMessage(f"Exception parsing Legacy Games library {library}", e)
                continue

            for folder in folders:
                if folder.name.casefold() == _LAUNCHER_DIR_NAME or folder in known_dirs:
                    continue
                exe = find_exe(folder, folder.name)
                yield GameData(
                    handler=self.handler,
                    game_id=folder.name,
                    game_name=folder.name,
                    game_path=folder,
                    launch=exe,
                    icon=exe,
                    problems=(Problem.NOT_FOUND_IN_DATA,),
                )


def _read_app_state(app_state_file: Path) -> tuple[dict[str, GameData], list[Path], list[ErrorMessage]]:
    """Read catalog entries and library folders from app-state.json.

    Store catalog entries are the whole storefront and so are reported
    as not owned; claimed giveaways are owned. Catalog items of the wrong
    shape are returned as errors.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If it is not a JSON object.
    """
    app_state = json.loads(app_state_file.read_text(encoding="utf-8"))
    if not isinstance(app_state, dict):
        raise ValueError(f"{app_state_file} does not contain a JSON object")
    site_data = app_state.get("siteData")
    if not isinstance(site_data, dict):
        site_data = {}

    games: dict[str, GameData] = {}
    errors: list[ErrorMessage] = []
    for catalog_name, is_owned in (("catalog", False), ("giveawayCatalog", True)):
        items = site_data.get(catalog_name) or []
        if not isinstance(items, list):
            errors.append(ErrorMessage(f'"{catalog_name}" in {app_state_file} is not a list'))
            continue
        for index, item in enumerate(items):
            try:
                item_games = _catalog_item_games(item, is_owned)
            except (AttributeError, TypeError) as e:
                errors.append(ErrorMessage(f'Exception while parsing "{catalog_name}" item #{index}', e))
                continue
            for game in item_games:
                if is_owned:
                    # A claimed giveaway is owned even if it also appears in the store
                    games[game.game_id.casefold()] = game
                else:
                    games.setdefault(game.game_id.casefold(), game)

    settings = app_state.get("settings")
    raw_paths = settings.get("gameLibraryPath") if isinstance(settings, dict) else None
    library_paths: list[Path] = []
    for raw_path in raw_paths if isinstance(raw_paths, list) else []:
        path = to_path(raw_path) if isinstance(raw_path, str) else None
        if path is not None:
            library_paths.append(path)
    return games, library_paths, errors


def _catalog_item_games(item: dict[str, Any], is_owned: bool) -> list[GameData]:
    genres: list[str] = []
    if not is_owned:
        genres = [GENRES[c["id"]] for c in item.get("categories") or [] if c.get("id") in GENRES]
    games: list[GameData] = []
    for entry in item.get("games") or []:
        game = _catalog_game(entry, genres, is_owned)
        if game is not None:
            games.append(game)
    return games


def _catalog_game(entry: dict[str, Any], genres: list[str], is_owned: bool) -> GameData | None:
    game_id = entry.get("installer_uuid")
    if not game_id:
        return None
    metadata: dict[str, list[str]] = {}
    if entry.get("game_description"):
        metadata["Description"] = [entry["game_description"]]
    if entry.get("game_coverart"):
        metadata["ImageUrl"] = [entry["game_coverart"]]
    if genres:
        metadata["Genres"] = list(genres)
    return GameData(
        handler=Handler.STORE_LEGACY,
        game_id=str(game_id),
        game_name=entry.get("game_name") or str(game_id),
        is_installed=False,
        is_owned=is_owned,
        metadata=metadata,
    )
