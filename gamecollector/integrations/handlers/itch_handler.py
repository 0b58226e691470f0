# gamecollector/integrations/handlers/itch_handler.py

"""Handler for the itch desktop app.

The app's butler daemon keeps its library in a SQLite database: the games
table lists every game the user has access to, the caves table the
installed ones.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from datetime import datetime, timedelta
from pathlib import Path

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Settings
from gamecollector.core.logging import get_handler_logger
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.path_utils import to_path

__all__ = ["ItchHandler"]

logger = get_handler_logger("itch")

_GAMES_QUERY = "SELECT id, title, short_text, classification, cover_url, still_cover_url FROM games"
_CAVES_QUERY = "SELECT game_id, installed_at, last_touched_at, seconds_run, verdict FROM caves"


class ItchHandler(BaseHandler):
    """Handler for itch (butler.db)."""

    handler = Handler.STORE_ITCH

    def get_database_path(self) -> Path:
        """Path to the itch app's butler.db."""
        return self.known_paths.application_data / "itch" / "db" / "butler.db"

    def is_available(self) -> bool:
        """True if butler.db exists."""
        return self.get_database_path().is_file()

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        settings = settings or Settings()
        db_path = self.get_database_path()
        if not db_path.is_file():
            yield ErrorMessage(f"The database file {db_path} does not exist")
            return

        try:
            games, caves = _read_database(db_path)
        except sqlite3.Error as e:
            yield ErrorMessage(f"Unable to read database {db_path}", e)
            return

        count = 0
        for row in games:
            try:
                result = self._parse_game(row, caves.get(str(row["id"])), settings)
            except (AttributeError, TypeError) as e:
                result = ErrorMessage(f'Exception while parsing row {row["id"]} of table "games"', e)
            if result is None:
                continue
            if isinstance(result, GameData):
                count += 1
            yield result

        logger.info("Found %d games in itch", count)

    def _parse_game(self, row: sqlite3.Row, cave: sqlite3.Row | None, settings: Settings) -> GameResult | None:
        if row["id"] is None:
            return ErrorMessage('Row in table "games" does not have a value "id"')
        game_id = str(row["id"])
        name = row["title"] or ""
        classification = row["classification"] or ""

        if settings.games_only and classification.casefold() == "assets":
            logger.debug("Skipping itch asset %s", name)
            return None
        if cave is None and settings.installed_only:
            return None

        metadata: dict[str, list[str]] = {}
        if row["short_text"]:
            metadata["Description"] = [row["short_text"]]
        if classification:
            metadata["Classification"] = [classification]
        cover = row["cover_url"] or row["still_cover_url"]
        if cover:
            metadata["ImageUrl"] = [cover]

        if cave is None:
            return GameData(
                handler=self.handler,
                game_id=game_id,
                game_name=name,
                launch_url=f"itch://games/{game_id}",
                is_installed=False,
                metadata=metadata,
            )

        try:
            game_path, launch = _parse_verdict(cave["verdict"])
        except ValueError as e:
            return ErrorMessage(f'Unable to parse table "caves" for {name} [{game_id}]', e)

        seconds_run = cave["seconds_run"]
        return GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=name,
            game_path=game_path,
            launch=launch,
            launch_url=f"itch://caves/{game_id}/launch",
            icon=launch,
            install_date=_parse_date(cave["installed_at"]),
            last_run_date=_parse_date(cave["last_touched_at"]) or _parse_date(cave["installed_at"]),
            run_time=timedelta(seconds=seconds_run) if seconds_run else None,
            metadata=metadata,
        )


def _read_database(db_path: Path) -> tuple[list[sqlite3.Row], dict[str, sqlite3.Row]]:
    """Load the games table and the caves keyed by game ID.

    Raises:
        sqlite3.Error: If the database cannot be queried.
    """
    conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    try:
        games = conn.execute(_GAMES_QUERY).fetchall()
        caves: dict[str, sqlite3.Row] = {}
        for cave in conn.execute(_CAVES_QUERY):
            caves.setdefault(str(cave["game_id"]), cave)
    finally:
        conn.close()
    return games, caves


def _parse_verdict(verdict_json: str | None) -> tuple[Path | None, Path | None]:
    """Return (install directory, first launch candidate) from a cave verdict.

    Raises:
        ValueError: If the verdict is not valid JSON.
    """
    if not verdict_json:
        return None, None
    verdict = json.loads(verdict_json)
    if not isinstance(verdict, dict):
        raise ValueError(f"Verdict is not an object: {verdict_json}")
    base_path = to_path(verdict.get("basePath"))
    if base_path is None:
        return None, None
    for candidate in verdict.get("candidates") or []:
        if isinstance(candidate, dict) and candidate.get("path"):
            return base_path, base_path / candidate["path"]
    return base_path, None


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
