# gamecollector/integrations/handlers/steam_handler.py

"""Handler for games installed through Steam.

Scans every library listed in libraryfolders.vdf for appmanifest_*.acf
files. With a Steam Web API key, owned games that are not installed are
reported as well.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta
from pathlib import Path

import requests
import vdf

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Problem, Settings
from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.logging import get_handler_logger
from gamecollector.core.registry import Registry, RegistryHive
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.integrations.steam_web_api import SteamWebAPI

__all__ = ["SteamHandler"]

logger = get_handler_logger("steam")

_STEAM_KEY = r"Software\Valve\Steam"
_UNINSTALL_KEY = r"Software\Microsoft\Windows\CurrentVersion\Uninstall"
_IMAGE_URLS = (
    "https://cdn.akamai.steamstatic.com/steam/apps/{app_id}/library_600x900.jpg",
    "https://cdn.akamai.steamstatic.com/steam/apps/{app_id}/header.jpg",
)

# AppState.StateFlags bit set once an app is fully installed
_STATE_FULLY_INSTALLED = 4

# Apps that ship as shared runtimes rather than games
_NON_GAME_APP_IDS: frozenset[str] = frozenset({"228980", "1070560", "1391110", "1628350", "1493710"})


class SteamHandler(BaseHandler):
    """Handler for the Steam client."""

    handler = Handler.STORE_STEAM

    def __init__(
        self,
        registry: Registry | None = None,
        known_paths: KnownPaths | None = None,
        steam_path: Path | None = None,
        api: SteamWebAPI | None = None,
        steam_user_id: str | None = None,
    ) -> None:
        """Initialize the Steam handler.

        Args:
            registry: Registry to read.
            known_paths: Well-known directories.
            steam_path: Steam installation directory. Detected if omitted.
            api: Steam Web API client used for owned-games lookup.
            steam_user_id: SteamID64 whose owned games are listed. Detected
                from loginusers.vdf if omitted.
        """
        super().__init__(registry, known_paths)
        self._steam_path = steam_path
        self._api = api
        self._steam_user_id = steam_user_id

    def is_available(self) -> bool:
        """True if a Steam installation can be found."""
        return self.find_steam_path() is not None

    def find_client(self) -> Path | None:
        """The Steam executable in the installation folder."""
        steam_path = self.find_steam_path()
        if steam_path is None:
            return None
        for name in ("steam.exe", "steam.sh", "steam"):
            client = steam_path / name
            if client.exists():
                return client
        return None

    def find_steam_path(self) -> Path | None:
        """Locate the Steam installation directory.

        Checks the explicit path, the registry and default locations,
        in that order.

        Returns:
            Path to Steam, or None if not found.
        """
        candidates: list[Path] = []
        if self._steam_path is not None:
            candidates.append(self._steam_path)

        key = self.registry.open_key(RegistryHive.CURRENT_USER, _STEAM_KEY)
        if key is not None:
            registry_path = key.get_string("SteamPath")
            if registry_path:
                candidates.append(Path(registry_path))

        home = self.known_paths.home
        candidates.extend(
            [
                self.known_paths.program_files_x86 / "Steam",
                home / ".steam" / "steam",
                home / ".local" / "share" / "Steam",
            ]
        )

        for path in candidates:
            if (path / "steamapps").is_dir() or (path / "config" / "libraryfolders.vdf").is_file():
                return path
        return None

    def get_library_folders(self, steam_path: Path) -> list[Path]:
        """Read library locations from libraryfolders.vdf.

        Supports both the current layout ({"path": ...} blocks) and the
        legacy one (plain numbered string values).

        Args:
            steam_path: Steam installation directory.

        Returns:
            Library directories, the Steam directory itself first.

        Raises:
            OSError: If the file exists but cannot be read.
            SyntaxError: If the file is not valid VDF.
        """
        folders = [steam_path]
        for candidate in (
            steam_path / "steamapps" / "libraryfolders.vdf",
            steam_path / "config" / "libraryfolders.vdf",
        ):
            if not candidate.exists():
                continue
            with open(candidate, "r", encoding="utf-8") as f:
                data = vdf.load(f)
            library_data = data.get("libraryfolders", data.get("LibraryFolders", {}))
            for key, value in library_data.items():
                if isinstance(value, dict):
                    path_str = value.get("path")
                elif key.isdigit():
                    path_str = value
                else:
                    continue
                if path_str:
                    path = Path(path_str)
                    if path not in folders:
                        folders.append(path)
            break
        return folders

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        settings = settings or Settings()
        steam_path = self.find_steam_path()
        if steam_path is None:
            yield ErrorMessage("Unable to find the Steam installation directory")
            return

        try:
            libraries = self.get_library_folders(steam_path)
        except (OSError, SyntaxError, ValueError) as e:
            yield ErrorMessage(f"Unable to parse libraryfolders.vdf in {steam_path}", e)
            return

        installed_ids: set[str] = set()
        count = 0
        for library in libraries:
            steamapps = library / "steamapps"
            if not steamapps.is_dir():
                yield ErrorMessage(f"Steam library at {library} doesn't exist")
                continue

            for manifest in sorted(steamapps.glob("appmanifest_*.acf")):
                result = self._parse_manifest(manifest, steamapps)
                if isinstance(result, GameData):
                    if settings.games_only and result.game_id in _NON_GAME_APP_IDS:
                        logger.debug("Skipping Steam runtime %s", result.game_name)
                        continue
                    installed_ids.add(result.game_id)
                    count += 1
                yield result

        if not settings.installed_only:
            for result in self._find_owned_games(steam_path, installed_ids):
                if isinstance(result, GameData):
                    count += 1
                yield result

        logger.info("Found %d games in Steam", count)

    def _parse_manifest(self, manifest: Path, steamapps: Path) -> GameResult:
        """Parse a single appmanifest_*.acf file.

        Args:
            manifest: Path to the manifest.
            steamapps: The library's steamapps directory.

        Returns:
            The installed game, or an ErrorMessage.
        """
        try:
            with open(manifest, "r", encoding="utf-8") as f:
                data = vdf.load(f)
        except (OSError, SyntaxError, ValueError) as e:
            return ErrorMessage(f"Unable to parse app manifest {manifest}", e)

        app_state = data.get("AppState")
        if not app_state:
            return ErrorMessage(f"App manifest {manifest} has no AppState block")

        app_id = str(app_state.get("appid", "")).strip()
        if not app_id.isdigit():
            return ErrorMessage(f"App manifest {manifest} has an invalid appid: {app_id!r}")

        install_dir = app_state.get("installdir", "")
        game_path = steamapps / "common" / install_dir if install_dir else None

        problems: list[Problem] = []
        state_flags = _to_int(app_state.get("StateFlags"))
        if state_flags and not state_flags & _STATE_FULLY_INSTALLED:
            problems.append(Problem.INSTALL_PENDING)
        if game_path is not None and not game_path.is_dir():
            problems.append(Problem.NOT_FOUND_ON_DISK)

        uninstall_icon = None
        key = self.registry.open_key(RegistryHive.LOCAL_MACHINE, f"{_UNINSTALL_KEY}\\Steam App {app_id}")
        if key is not None:
            display_icon = key.get_string("DisplayIcon")
            if display_icon:
                uninstall_icon = Path(display_icon.strip('"'))

        metadata: dict[str, list[str]] = {"ImageUrl": [url.format(app_id=app_id) for url in _IMAGE_URLS]}
        size_on_disk = _to_int(app_state.get("SizeOnDisk"))
        if size_on_disk:
            metadata["SizeOnDisk"] = [str(size_on_disk)]

        return GameData(
            handler=self.handler,
            game_id=app_id,
            game_name=app_state.get("name", "") or app_id,
            game_path=game_path,
            icon=uninstall_icon,
            launch_url=f"steam://rungameid/{app_id}",
            uninstall_url=f"steam://uninstall/{app_id}",
            install_date=_from_timestamp(app_state.get("LastUpdated")),
            last_run_date=_from_timestamp(app_state.get("LastPlayed")),
            problems=tuple(problems),
            metadata=metadata,
        )

    def _find_owned_games(self, steam_path: Path, installed_ids: set[str]) -> Iterator[GameResult]:
        """Yield owned games that are not installed, via the Web API."""
        if self._api is None:
            return

        steam_id = self._steam_user_id or self.find_user_id(steam_path)
        if not steam_id:
            yield ErrorMessage("Unable to determine the Steam user for owned-games lookup")
            return

        try:
            if not self._api.is_profile_public(steam_id):
                yield ErrorMessage(f"Steam profile {steam_id} is not public; owned games are unavailable")
                return
            owned = self._api.get_owned_games(steam_id)
        except requests.RequestException as e:
            yield ErrorMessage("Steam Web API request failed", e)
            return

        for game in owned:
            app_id = str(game.app_id)
            if app_id in installed_ids:
                continue
            metadata: dict[str, list[str]] = {"ImageUrl": [url.format(app_id=app_id) for url in _IMAGE_URLS]}
            if game.icon_url:
                metadata["IconUrl"] = [game.icon_url]
            yield GameData(
                handler=self.handler,
                game_id=app_id,
                game_name=game.name,
                launch_url=f"steam://rungameid/{app_id}",
                last_run_date=_from_timestamp(game.last_played),
                run_time=timedelta(minutes=game.playtime_minutes) if game.playtime_minutes else None,
                is_installed=False,
                metadata=metadata,
            )

    def find_user_id(self, steam_path: Path) -> str | None:
        """Pick the SteamID64 of the local user from loginusers.vdf.

        Prefers the MostRecent user, then the registry's AutoLoginUser,
        then the most recent Timestamp.

        Args:
            steam_path: Steam installation directory.

        Returns:
            SteamID64 string, or None.
        """
        login_users = steam_path / "config" / "loginusers.vdf"
        try:
            with open(login_users, "r", encoding="utf-8") as f:
                users = vdf.load(f).get("users", {})
        except (OSError, SyntaxError, ValueError) as e:
            logger.debug("Unable to read %s: %s", login_users, e)
            return None

        for steam_id, user in users.items():
            if str(user.get("MostRecent", "0")) == "1":
                return steam_id

        key = self.registry.open_key(RegistryHive.CURRENT_USER, _STEAM_KEY)
        auto_login = key.get_string("AutoLoginUser") if key is not None else None
        if auto_login:
            for steam_id, user in users.items():
                if user.get("AccountName", "").casefold() == auto_login.casefold():
                    return steam_id

        latest = max(users.items(), key=lambda item: _to_int(item[1].get("Timestamp")), default=None)
        return latest[0] if latest else None


def _to_int(value: object) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _from_timestamp(value: object) -> datetime | None:
    timestamp = _to_int(value)
    return datetime.fromtimestamp(timestamp) if timestamp > 0 else None
