# gamecollector/integrations/handlers/oculus_handler.py

"""Handler for the Oculus (Meta Quest Link) PC app.

Installed games are found through *.json.mini manifests in each library.
Names, descriptions and entitlements come from the app's local object
store (data.sqlite), whose values are opaque serialized blobs; fields
are cut out of them by locating the neighbouring field names.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from pathlib import Path

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Problem, Settings
from gamecollector.core.logging import get_handler_logger
from gamecollector.core.registry import RegistryHive, RegistryView
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.path_utils import to_path

__all__ = ["OculusHandler", "parse_blob"]

logger = get_handler_logger("oculus")

_OCULUS_KEY = r"SOFTWARE\Oculus VR, LLC\Oculus"
_LIBRARIES_KEY = r"Software\Oculus VR, LLC\Oculus\Libraries"

# The Oculus runtime itself
_RUNTIME_APP_ID = "3082125255194578"

# Fixed number of bytes between a field name and its value, and between
# the end of a value and the next field name
_FIELD_HEADER_SIZE = 10
_FIELD_TRAILER_SIZE = 5


def parse_blob(
    value: str,
    start_field: str,
    end_field: str,
    start_adjust: int = 0,
    stop_adjust: int = 0,
    anchor: str = "",
) -> str:
    """Cut the value of one field out of a serialized object blob.

    The value of start_field is whatever lies between start_field and
    end_field, minus the fixed-size framing around it.

    Args:
        value: Decoded blob.
        start_field: Name of the field to read.
        end_field: Name of the field that follows it.
        start_adjust: Extra bytes to skip after the field header.
        stop_adjust: Extra bytes to drop before the trailer.
        anchor: If set, only search after the first occurrence of anchor.

    Returns:
        The field's value, or "" if either field name is missing.
    """
    if anchor:
        anchor_pos = value.find(anchor)
        if anchor_pos > 0:
            value = value[anchor_pos:]

    start = value.find(start_field)
    stop = value.find(end_field)
    if start <= 0 or stop <= start:
        return ""

    start += len(start_field) + _FIELD_HEADER_SIZE + start_adjust
    stop -= _FIELD_TRAILER_SIZE + stop_adjust
    if stop - start < 1:
        stop = start + 1
    return value[start:stop]


def _decode_blob(blob: bytes | str | None) -> str:
    if blob is None:
        return ""
    if isinstance(blob, str):
        return blob
    # Values carry a trailing terminator byte
    return blob[:-1].decode("utf-8", errors="replace")


class OculusHandler(BaseHandler):
    """Handler for Oculus libraries and the data.sqlite object store."""

    handler = Handler.STORE_OCULUS

    def get_database_path(self) -> Path:
        """Path to the Oculus object store, data.sqlite."""
        return self.known_paths.application_data / "Oculus" / "sessions" / "_oaf" / "data.sqlite"

    def is_available(self) -> bool:
        """True if data.sqlite exists."""
        return self.get_database_path().is_file()

    def find_client(self) -> Path | None:
        """OculusClient.exe under the registered Oculus base folder."""
        key = self.registry.open_key(RegistryHive.LOCAL_MACHINE, _OCULUS_KEY, RegistryView.REGISTRY32)
        if key is None:
            return None
        base = to_path(key.get_string("Base"))
        if base is None:
            return None
        return base / "Support" / "oculus-client" / "OculusClient.exe"

    def get_library_paths(self) -> list[Path]:
        """Return the library folders registered with the Oculus app."""
        libraries_key = self.registry.open_key(RegistryHive.CURRENT_USER, _LIBRARIES_KEY)
        if libraries_key is None:
            return []

        paths: list[Path] = []
        for name in libraries_key.get_sub_key_names():
            sub_key = libraries_key.open_sub_key(name)
            path = to_path(sub_key.get_string("OriginalPath")) if sub_key is not None else None
            if path is not None:
                paths.append(path)
        return paths

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        settings = settings or Settings()
        db_path = self.get_database_path()
        if not db_path.is_file():
            yield ErrorMessage(f"The database file {db_path} does not exist")
            return

        executables: dict[str, Path] = {}
        for library in self.get_library_paths():
            yield from self._read_manifests(library, executables)

        try:
            games = self._read_database(db_path, executables, settings)
        except sqlite3.Error as e:
            yield ErrorMessage(f"Exception parsing database file {db_path}", e)
            return

        for game in games:
            yield game
        logger.info("Found %d games in Oculus", len(games))

    def _read_manifests(self, library: Path, executables: dict[str, Path]) -> Iterator[ErrorMessage]:
        """Collect launch executables by app ID from a library's manifests."""
        manifest_dir = library / "Manifests"
        try:
            manifest_files = sorted(manifest_dir.glob("*.json.mini"))
        except OSError as e:
            yield ErrorMessage(f"Exception reading directory {library}", e)
            return

        for manifest_file in manifest_files:
            try:
                manifest = json.loads(manifest_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                yield ErrorMessage(f"Malformed file {manifest_file}", e)
                continue
            if not isinstance(manifest, dict):
                yield ErrorMessage(f"Malformed file {manifest_file}")
                continue

            app_id = manifest.get("appId")
            if app_id is None:
                continue
            canonical_name = manifest.get("canonicalName") or ""
            launch_file = manifest.get("launchFile") or ""
            try:
                executables[str(app_id)] = library / "Software" / canonical_name / launch_file
            except TypeError as e:
                yield ErrorMessage(f"Malformed file {manifest_file}", e)

    def _read_database(self, db_path: Path, executables: dict[str, Path], settings: Settings) -> list[GameData]:
        """Build game records from the Application objects.

        Raises:
            sqlite3.Error: If the database is locked or malformed.
        """
        games: list[GameData] = []
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True, timeout=5)
        try:
            user_id = _find_user_id(conn)
            rows = conn.execute("SELECT hashkey, value FROM Objects WHERE typename = 'Application'").fetchall()
            for hashkey, blob in rows:
                app_id = str(hashkey)
                if not app_id.isdigit() or app_id == _RUNTIME_APP_ID:
                    continue

                state = ""
                if user_id:
                    entitlement = conn.execute(
                        "SELECT value FROM Objects WHERE hashkey = ?", (f"{user_id}:{app_id}",)
                    ).fetchone()
                    if entitlement is not None:
                        state = parse_blob(_decode_blob(entitlement[0]), "active_state", "expiration_time")

                game = self._application_to_game(app_id, _decode_blob(blob), state, executables.get(app_id))
                if game.problems and settings.owned_only:
                    logger.debug("Skipping expired Oculus entitlement %s", game.game_name)
                    continue
                if not game.is_installed and settings.installed_only:
                    continue
                games.append(game)
        finally:
            conn.close()
        return games

    def _application_to_game(self, app_id: str, value: str, state: str, launch: Path | None) -> GameData:
        canonical_name = parse_blob(value, "canonical_name", "category")
        display_name = parse_blob(value, "display_name", "display_short_description")
        if canonical_name and not display_name:
            display_name = canonical_name.replace("-", " ").title()
        description = parse_blob(value, "display_short_description", "genres")
        genres = [genre[:-1] for genre in parse_blob(value, "genres", "grouping", 1).split("\0") if genre]

        metadata: dict[str, list[str]] = {}
        if canonical_name:
            metadata["CanonicalName"] = [canonical_name]
        if description:
            metadata["Description"] = [description]
        if genres:
            metadata["Genres"] = genres

        expired = bool(state) and state.upper() != "PERMANENT"
        if expired:
            metadata["ActiveState"] = [state]

        return GameData(
            handler=self.handler,
            game_id=app_id,
            game_name=display_name or app_id,
            game_path=launch.parent if launch is not None else None,
            launch=launch,
            icon=launch,
            is_installed=launch is not None,
            is_owned=not expired,
            problems=(Problem.EXPIRED_TRIAL,) if expired else (),
            metadata=metadata,
        )


def _find_user_id(conn: sqlite3.Connection) -> str:
    """Return the ID of the first signed-in user, or "" if there is none."""
    for (hashkey,) in conn.execute("SELECT hashkey FROM Objects WHERE typename = 'User'"):
        if str(hashkey).isdigit():
            return str(hashkey)
    return ""
