# gamecollector/integrations/handlers/amazon_handler.py

"""Handler for Amazon Games.

The Amazon Games app keeps two SQLite databases: GameInstallInfo lists
installed products, GameProductInfo the whole library with store
metadata. Uninstall commands are registered per game under HKCU.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from dataclasses import dataclass, replace
from pathlib import Path

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Settings
from gamecollector.core.logging import get_handler_logger
from gamecollector.core.registry import RegistryHive, RegistryKey, RegistryView
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.exe_finder import find_exe
from gamecollector.utils.path_utils import split_command_line, to_path

__all__ = ["AmazonHandler"]

logger = get_handler_logger("amazon")

_UNINSTALL_KEY = r"Software\Microsoft\Windows\CurrentVersion\Uninstall"
_UNINSTALL_PREFIX = "amazongames/"
_GAME_ID_MARKER = "game -p "

_INSTALL_QUERY = "SELECT Id, InstallDirectory, ProductTitle, Installed FROM DbSet"
_PRODUCT_QUERY = (
    "SELECT ProductIdStr, ProductTitle, ProductDescription, ProductIconUrl, ProductPublisher, "
    "DevelopersJson, GenresJson, ReleaseDate FROM DbSet"
)


@dataclass(frozen=True)
class _UninstallEntry:
    command: Path | None
    args: str
    icon: Path | None


class AmazonHandler(BaseHandler):
    """Handler for the Amazon Games app."""

    handler = Handler.STORE_AMAZON

    def get_database_dir(self) -> Path:
        """Folder holding the Amazon Games SQLite databases."""
        return self.known_paths.local_application_data / "Amazon Games" / "Data" / "Games" / "Sql"

    def is_available(self) -> bool:
        """True if GameInstallInfo.sqlite exists."""
        return (self.get_database_dir() / "GameInstallInfo.sqlite").is_file()

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        settings = settings or Settings()
        install_db = self.get_database_dir() / "GameInstallInfo.sqlite"
        product_db = self.get_database_dir() / "GameProductInfo.sqlite"
        if not install_db.is_file():
            yield ErrorMessage(f"The database file {install_db} does not exist")
            return

        try:
            installs = _query(install_db, _INSTALL_QUERY)
        except sqlite3.Error as e:
            yield ErrorMessage(f"Unable to read database {install_db}", e)
            return

        products: list[sqlite3.Row] = []
        if product_db.is_file():
            try:
                products = _query(product_db, _PRODUCT_QUERY)
            except sqlite3.Error as e:
                yield ErrorMessage(f"Unable to read database {product_db}", e)
        else:
            logger.debug("No Amazon product database at %s", product_db)

        uninstall_entries = self._read_uninstall_entries()
        games: dict[str, GameData] = {}
        for row in installs:
            result = self._parse_install_row(row, uninstall_entries)
            if isinstance(result, ErrorMessage):
                yield result
                continue
            if not result.is_installed and settings.installed_only:
                continue
            games[result.game_id.casefold()] = result

        for row in products:
            product_id = row["ProductIdStr"]
            if not product_id:
                continue
            metadata = _product_metadata(row)
            key = product_id.casefold()
            if key in games:
                game = games[key]
                games[key] = replace(game, metadata={**metadata, **game.metadata})
                continue
            if settings.installed_only:
                continue
            games[key] = GameData(
                handler=self.handler,
                game_id=product_id,
                game_name=row["ProductTitle"] or product_id,
                launch_url=f"amazon-games://play/{product_id}",
                is_installed=False,
                metadata=metadata,
            )

        for game in games.values():
            yield game
        logger.info("Found %d games in Amazon Games", len(games))

    def _parse_install_row(self, row: sqlite3.Row, uninstall_entries: dict[str, _UninstallEntry]) -> GameResult:
        game_id = row["Id"]
        if not game_id:
            return ErrorMessage('Row in GameInstallInfo does not have a value "Id"')
        name = row["ProductTitle"] or game_id
        game_path = to_path(row["InstallDirectory"])
        is_installed = bool(row["Installed"]) and game_path is not None

        launch = None
        if game_path is not None and game_path.is_dir():
            launch = _read_fuel_command(game_path) or find_exe(game_path, name)

        uninstall = uninstall_entries.get(game_id.casefold())
        return GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=name,
            game_path=game_path,
            launch=launch,
            launch_url=f"amazon-games://play/{game_id}",
            icon=launch or (uninstall.icon if uninstall else None),
            uninstall=uninstall.command if uninstall else None,
            uninstall_args=uninstall.args if uninstall else "",
            is_installed=is_installed,
        )

    def _read_uninstall_entries(self) -> dict[str, _UninstallEntry]:
        """Map game IDs to their registered uninstall commands."""
        uninstall_key = self.registry.open_key(RegistryHive.CURRENT_USER, _UNINSTALL_KEY, RegistryView.REGISTRY64)
        if uninstall_key is None:
            return {}

        entries: dict[str, _UninstallEntry] = {}
        for name in uninstall_key.get_sub_key_names():
            if not name.casefold().startswith(_UNINSTALL_PREFIX):
                continue
            sub_key = uninstall_key.open_sub_key(name)
            if sub_key is None:
                continue
            entry = _parse_uninstall_key(sub_key)
            if entry is not None:
                game_id, uninstall = entry
                entries[game_id.casefold()] = uninstall
        return entries


def _parse_uninstall_key(sub_key: RegistryKey) -> tuple[str, _UninstallEntry] | None:
    uninstall_string = sub_key.get_string("UninstallString")
    if not uninstall_string:
        return None
    marker = uninstall_string.casefold().rfind(_GAME_ID_MARKER)
    if marker < 0:
        return None
    game_id = uninstall_string[marker + len(_GAME_ID_MARKER) :].strip()

    command, args = split_command_line(uninstall_string)
    return game_id, _UninstallEntry(
        command=to_path(command),
        args=args,
        icon=to_path(sub_key.get_string("DisplayIcon")),
    )


def _read_fuel_command(game_path: Path) -> Path | None:
    """Return the executable named by the game's fuel.json, if any."""
    fuel_file = game_path / "fuel.json"
    if not fuel_file.is_file():
        return None
    try:
        fuel = json.loads(fuel_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("Unable to read %s: %s", fuel_file, e)
        return None
    main = fuel.get("Main") if isinstance(fuel, dict) else None
    command = main.get("Command") if isinstance(main, dict) else None
    return game_path / command if isinstance(command, str) and command else None


def _query(db_path: Path, query: str) -> list[sqlite3.Row]:
    conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    try:
        return conn.execute(query).fetchall()
    finally:
        conn.close()


def _json_list(value: str | None) -> list[str]:
    if not value:
        return []
    try:
        items = json.loads(value)
    except ValueError:
        return []
    return [str(item) for item in items if item] if isinstance(items, list) else []


def _product_metadata(row: sqlite3.Row) -> dict[str, list[str]]:
    metadata: dict[str, list[str]] = {}
    for key, column in (
        ("Description", "ProductDescription"),
        ("IconUrl", "ProductIconUrl"),
        ("Publishers", "ProductPublisher"),
        ("ReleaseDate", "ReleaseDate"),
    ):
        if row[column]:
            metadata[key] = [row[column]]
    developers = _json_list(row["DevelopersJson"])
    if developers:
        metadata["Developers"] = developers
    genres = _json_list(row["GenresJson"])
    if genres:
        metadata["Genres"] = genres
    return metadata
