# gamecollector/integrations/handlers/gog_handler.py

"""Handler for GOG Galaxy games.

Installed games are listed in the registry under GOG.com\\Games. When the
Galaxy 2.0 database is present it adds play data, tags and the owned
but not installed part of the library.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Settings
from gamecollector.core.logging import get_handler_logger
from gamecollector.core.registry import RegistryHive, RegistryKey, RegistryView
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.path_utils import to_path

__all__ = ["GOGHandler"]

logger = get_handler_logger("gog")

_GAMES_KEY = r"Software\GOG.com\Games"
_CLIENT_KEY = r"Software\GOG.com\GalaxyClient"
_CLIENT_PATHS_KEY = r"Software\GOG.com\GalaxyClient\paths"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LIMITED_DETAILS_QUERY = "SELECT productId, title, links, images FROM LimitedDetails"


class GOGHandler(BaseHandler):
    """Handler for GOG Galaxy."""

    handler = Handler.STORE_GOG

    def is_available(self) -> bool:
        """True if GOG games are registered or the Galaxy database exists."""
        return (
            self.registry.open_key(RegistryHive.LOCAL_MACHINE, _GAMES_KEY, RegistryView.REGISTRY32) is not None
            or self.get_database_path().exists()
        )

    def get_database_path(self) -> Path:
        """Path to GOG Galaxy's galaxy-2.0.db."""
        return self.known_paths.common_application_data / "GOG.com" / "Galaxy" / "storage" / "galaxy-2.0.db"

    def find_client(self) -> Path | None:
        """GalaxyClient.exe from the Galaxy client registry keys."""
        key = self.registry.open_key(RegistryHive.LOCAL_MACHINE, _CLIENT_KEY, RegistryView.REGISTRY32)
        paths_key = self.registry.open_key(RegistryHive.LOCAL_MACHINE, _CLIENT_PATHS_KEY, RegistryView.REGISTRY32)
        if key is None or paths_key is None:
            return None
        client_exe = key.get_string("clientExecutable")
        client_dir = to_path(paths_key.get_string("client"))
        if not client_exe or client_dir is None:
            return None
        return client_dir / client_exe

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        settings = settings or Settings()
        games_key = self.registry.open_key(RegistryHive.LOCAL_MACHINE, _GAMES_KEY, RegistryView.REGISTRY32)
        db_path = self.get_database_path()
        if games_key is None and not db_path.exists():
            yield ErrorMessage(f"Unable to open HKEY_LOCAL_MACHINE\\{_GAMES_KEY} and no Galaxy database at {db_path}")
            return

        registry_games: dict[str, GameData] = {}
        if games_key is not None:
            for sub_key_name in games_key.get_sub_key_names():
                result = self._parse_sub_key(games_key, sub_key_name, settings)
                if isinstance(result, ErrorMessage):
                    yield result
                elif result is not None:
                    registry_games[result.game_id] = result

        database_games: dict[str, GameData] = {}
        if db_path.exists():
            try:
                database_games, errors = self._read_database(db_path, settings)
            except sqlite3.Error as e:
                yield ErrorMessage(f"Malformed GOG database {db_path}", e)
            else:
                yield from errors

        count = 0
        for game_id, game in database_games.items():
            registry_game = registry_games.pop(game_id, None)
            if registry_game is not None:
                game = _merge(game, registry_game)
            count += 1
            yield game

        for game in registry_games.values():
            count += 1
            yield game

        logger.info("Found %d games in GOG Galaxy", count)

    def _parse_sub_key(self, games_key: RegistryKey, sub_key_name: str, settings: Settings) -> GameResult | None:
        """Parse a single GOG.com\\Games\\<id> registry key.

        Returns:
            The game, an ErrorMessage, or None if filtered out.
        """
        sub_key = games_key.open_sub_key(sub_key_name)
        if sub_key is None:
            return ErrorMessage(f"Unable to open {games_key.name}\\{sub_key_name}")

        game_id = sub_key.get_string("gameID")
        if game_id is None:
            return ErrorMessage(f'{sub_key.name} doesn\'t have a string value "gameID"')
        if not game_id.isdigit():
            return ErrorMessage(f'The value "gameID" of {sub_key.name} is not a number: "{game_id}"')

        name = sub_key.get_string("gameName")
        if name is None:
            return ErrorMessage(f'{sub_key.name} doesn\'t have a string value "gameName"')

        path = sub_key.get_string("path")
        if path is None:
            return ErrorMessage(f'{sub_key.name} doesn\'t have a string value "path"')

        parent = sub_key.get_string("dependsOn") or None
        if parent and settings.base_only:
            logger.debug("Skipping GOG DLC %s", name)
            return None

        exe = to_path(sub_key.get_string("exe"))
        uninstall = sub_key.get_string("uninstallCommand") or ""
        return GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=name,
            game_path=to_path(path.replace("\\\\", "\\")),
            launch=exe,
            launch_args=sub_key.get_string("launchParam") or "",
            launch_url=f"goggalaxy://openGameView/{game_id}",
            icon=exe,
            uninstall=to_path(uninstall.strip().strip('"')),
            base_game=parent,
        )

    def _read_database(
        self, db_path: Path, settings: Settings
    ) -> tuple[dict[str, GameData], list[ErrorMessage]]:
        """Read installed, owned and unowned products from galaxy-2.0.db.

        Args:
            db_path: Path to the Galaxy database.
            settings: Filters to apply.

        Returns:
            Tuple of (games keyed by product ID, per-product errors).

        Raises:
            sqlite3.Error: If the product list cannot be queried.
        """
        client = self.find_client()
        games: dict[str, GameData] = {}
        errors: list[ErrorMessage] = []
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        try:
            for row in conn.execute(_LIMITED_DETAILS_QUERY).fetchall():
                try:
                    game = self._read_product(conn, row, client, settings)
                except (sqlite3.Error, ValueError) as e:
                    errors.append(ErrorMessage(f"Unable to read GOG product {row['productId']}", e))
                    continue
                if game is not None:
                    games.setdefault(game.game_id, game)
        finally:
            conn.close()
        return games, errors

    def _read_product(
        self,
        conn: sqlite3.Connection,
        row: sqlite3.Row,
        client: Path | None,
        settings: Settings,
    ) -> GameData | None:
        product_id = str(row["productId"])
        name = row["title"] or product_id
        metadata = _image_metadata(row["links"], row["images"])

        owned = conn.execute("SELECT 1 FROM Builds WHERE productId = ? LIMIT 1", (product_id,)).fetchone()
        if owned is None:
            if settings.owned_only or settings.installed_only:
                return None
            return GameData(
                handler=self.handler,
                game_id=product_id,
                game_name=name,
                is_installed=False,
                is_owned=False,
                metadata=metadata,
            )

        key_row = conn.execute(
            "SELECT releaseKey FROM ProductsToReleaseKeys WHERE gogId = ? LIMIT 1", (product_id,)
        ).fetchone()
        release_key = key_row["releaseKey"] if key_row else f"gog_{product_id}"

        parent: str | None = None
        my_rating = 0
        for piece in conn.execute("SELECT value FROM GamePieces WHERE releaseKey = ?", (release_key,)):
            value = json.loads(piece["value"] or "null")
            if not isinstance(value, dict):
                continue
            if value.get("parentGrk"):
                parent = str(value["parentGrk"]).removeprefix("gog_")
            elif isinstance(value.get("myRating"), int):
                my_rating = value["myRating"]
        if parent and settings.base_only:
            return None

        installed = conn.execute(
            "SELECT installationPath, installationDate FROM InstalledBaseProducts WHERE productId = ?",
            (product_id,),
        ).fetchone()
        if installed is None:
            if settings.installed_only:
                return None
            return GameData(
                handler=self.handler,
                game_id=product_id,
                game_name=name,
                launch_url=f"goggalaxy://openGameView/{product_id}",
                is_installed=False,
                my_rating=my_rating,
                base_game=parent,
                metadata=metadata,
            )

        game_path = to_path(installed["installationPath"])
        exe: Path | None = None
        exe_args = ""
        launch_row = conn.execute(
            "SELECT p.executablePath, p.commandLineArgs FROM PlayTasks t "
            "JOIN PlayTaskLaunchParameters p ON p.playTaskId = t.id "
            "WHERE t.gameReleaseKey = ? LIMIT 1",
            (release_key,),
        ).fetchone()
        if launch_row is not None:
            exe = to_path(launch_row["executablePath"])
            exe_args = launch_row["commandLineArgs"] or ""
        if game_path is None and exe is not None:
            game_path = exe.parent

        if client is not None:
            launch = client
            launch_args = f"/command=runGame /gameId={product_id}"
            if exe is not None:
                launch_args += f' /path="{exe.parent}"'
        else:
            launch, launch_args = exe, exe_args

        hidden_row = conn.execute(
            "SELECT isHidden FROM UserReleaseProperties WHERE releaseKey = ? LIMIT 1", (release_key,)
        ).fetchone()
        tag_rows = conn.execute("SELECT tag FROM UserReleaseTags WHERE releaseKey = ?", (release_key,))
        tags = tuple(tag_row["tag"] for tag_row in tag_rows)
        played_row = conn.execute(
            "SELECT lastPlayedDate FROM LastPlayedDates WHERE gameReleaseKey = ? LIMIT 1", (release_key,)
        ).fetchone()
        details_row = conn.execute(
            "SELECT releaseDate FROM Details WHERE limitedDetailsId = ? LIMIT 1", (product_id,)
        ).fetchone()
        if details_row is not None and details_row["releaseDate"]:
            release_date = _parse_release_date(details_row["releaseDate"])
            if release_date is not None:
                metadata["ReleaseDate"] = [release_date.isoformat()]

        return GameData(
            handler=self.handler,
            game_id=product_id,
            game_name=name,
            game_path=game_path,
            launch=launch,
            launch_args=launch_args,
            launch_url=f"goggalaxy://openGameView/{product_id}",
            icon=exe,
            install_date=_parse_date(installed["installationDate"]),
            last_run_date=_parse_date(played_row["lastPlayedDate"]) if played_row else None,
            is_hidden=bool(hidden_row["isHidden"]) if hidden_row else False,
            tags=tags,
            my_rating=my_rating,
            base_game=parent,
            metadata=metadata,
        )


def _merge(database_game: GameData, registry_game: GameData) -> GameData:
    """Fill gaps in a database record with values from the registry."""
    return replace(
        database_game,
        game_path=database_game.game_path or registry_game.game_path,
        launch=database_game.launch or registry_game.launch,
        launch_args=database_game.launch_args or registry_game.launch_args,
        launch_url=database_game.launch_url or registry_game.launch_url,
        icon=database_game.icon or registry_game.icon,
        uninstall=registry_game.uninstall,
        base_game=database_game.base_game or registry_game.base_game,
        is_installed=True,
        is_owned=True,
    )


def _image_metadata(links_json: str | None, images_json: str | None) -> dict[str, list[str]]:
    metadata: dict[str, list[str]] = {}
    try:
        links = json.loads(links_json) if links_json else {}
        images = json.loads(images_json) if images_json else {}
    except json.JSONDecodeError:
        return metadata

    box_art = (links.get("boxArtImage") or {}).get("href")
    logo = (links.get("logo") or {}).get("href") or images.get("logo2x")
    icon = (links.get("iconSquare") or {}).get("href")
    if box_art:
        metadata["ImageUrl"] = [box_art]
    if logo:
        metadata["ImageWideUrl"] = [logo]
    if icon:
        metadata["IconUrl"] = [icon]
    return metadata


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, _DATE_FORMAT)
    except ValueError:
        return None


def _parse_release_date(value: str) -> datetime | None:
    try:
        return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S%z")
    except ValueError:
        return None
