# gamecollector/integrations/handlers/humble_handler.py

"""Handler for the Humble App.

The app caches the user's whole collection in config.json. Humble Choice
"collection" and "trove" titles can only be installed (and, for the
collection, played) while the user's subscription is active.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path
from typing import Any

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Problem, Settings
from gamecollector.core.logging import get_handler_logger
from gamecollector.core.registry import RegistryHive, RegistryView
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.path_utils import split_command_line, to_path

__all__ = ["HumbleHandler"]

logger = get_handler_logger("humble")

_UNINSTALL_KEY = r"Software\Microsoft\Windows\CurrentVersion\Uninstall"
_CLIENT_UNINSTALL_ID = "2f793df2-2969-529d-b0c0-7960ed40d70e"
_GAME_UNINSTALL_PREFIX = "Humble App "
_INSTALLED_STATUSES = frozenset({"downloaded", "installed"})


class HumbleHandler(BaseHandler):
    """Handler for the Humble App."""

    handler = Handler.STORE_HUMBLE

    def get_config_file(self) -> Path:
        """Path to the Humble App's config.json."""
        return self.known_paths.application_data / "Humble App" / "config.json"

    def is_available(self) -> bool:
        """True if the Humble App config exists."""
        return self.get_config_file().is_file()

    def find_client(self) -> Path | None:
        """The Humble App executable from its uninstall key."""
        key = self.registry.open_key(
            RegistryHive.LOCAL_MACHINE, f"{_UNINSTALL_KEY}\\{_CLIENT_UNINSTALL_ID}", RegistryView.REGISTRY64
        )
        if key is None:
            return None
        icon = key.get_string("DisplayIcon") or ""
        # "C:\...\Humble App.exe,0"
        return to_path(icon.rsplit(",", 1)[0] if "," in icon else icon)

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        settings = settings or Settings()
        config_file = self.get_config_file()
        if not config_file.is_file():
            yield ErrorMessage(f"The configuration file {config_file} does not exist")
            return

        try:
            config = json.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            yield ErrorMessage(f"The configuration file {config_file} could not be deserialized", e)
            return

        if not isinstance(config, dict):
            yield ErrorMessage(f"The configuration file {config_file} does not contain a JSON object")
            return
        collection = config.get("game-collection-4") or []
        if not isinstance(collection, list):
            yield ErrorMessage(f'"game-collection-4" in {config_file} is not a list')
            return

        user = config.get("user")
        subscription_active = isinstance(user, dict) and bool(user.get("has_perks")) and not user.get("is_paused")

        count = 0
        for index, item in enumerate(collection):
            if not isinstance(item, dict):
                yield ErrorMessage(f"Item #{index} in {config_file} is not an object")
                continue
            try:
                result = self._parse_item(item, index, subscription_active, settings)
            except (AttributeError, TypeError) as e:
                result = ErrorMessage(f"Exception while parsing item #{index} in {config_file}", e)
            if result is None:
                continue
            if isinstance(result, GameData):
                count += 1
            yield result

        logger.info("Found %d games in Humble App", count)

    def _parse_item(
        self, item: dict[str, Any], index: int, subscription_active: bool, settings: Settings
    ) -> GameResult | None:
        game_id = item.get("downloadMachineName") or item.get("gamekey") or ""
        if not game_id:
            return ErrorMessage(f"Collection entry #{index} has no machine name or game key")
        name = item.get("gameName") or game_id

        if game_id.casefold().endswith("_source") and settings.games_only:
            logger.debug("Skipping Humble source code %s", name)
            return None
        # Unavailable titles must be downloaded from the website and installed manually
        if item.get("isAvailable") is False and settings.games_only:
            logger.debug("Skipping Humble title without an installer %s", name)
            return None

        is_installed = (item.get("status") or "").casefold() in _INSTALLED_STATUSES
        if not is_installed and settings.installed_only:
            return None

        machine_name = (item.get("machineName") or "").casefold()
        expired = not subscription_active and (
            machine_name.endswith("_collection") or (machine_name.endswith("_trove") and not is_installed)
        )
        if expired and settings.owned_only:
            return None

        game_path = to_path(item.get("filePath"))
        executable = item.get("executablePath")
        launch = game_path / executable if game_path is not None and executable else None

        icon: Path | None = None
        uninstall: Path | None = None
        uninstall_args = ""
        uninstall_key = self.registry.open_key(
            RegistryHive.CURRENT_USER, f"{_UNINSTALL_KEY}\\{_GAME_UNINSTALL_PREFIX}{game_id}"
        )
        if uninstall_key is not None:
            icon = to_path(uninstall_key.get_string("DisplayIcon"))
            uninstall_path, uninstall_args = split_command_line(uninstall_key.get_string("UninstallString"))
            uninstall = to_path(uninstall_path)

        return GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=name,
            game_path=game_path,
            launch=launch,
            launch_url=f"humble://launch/{game_id}",
            icon=icon or launch,
            uninstall=uninstall,
            uninstall_args=uninstall_args,
            uninstall_url=f"humble://uninstall/{game_id}",
            last_run_date=_from_timestamp(item.get("lastPlayed")),
            is_installed=is_installed,
            is_owned=not expired,
            problems=(Problem.EXPIRED_TRIAL,) if expired else (),
            metadata=_item_metadata(item),
        )


def _from_timestamp(value: Any) -> datetime | None:
    try:
        timestamp = int(value)
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(timestamp) if timestamp > 0 else None


def _item_metadata(item: dict[str, Any]) -> dict[str, list[str]]:
    metadata: dict[str, list[str]] = {}
    if item.get("descriptionText"):
        metadata["Description"] = [item["descriptionText"]]
    if item.get("iconPath"):
        metadata["IconUrl"] = [item["iconPath"]]
    if item.get("imagePath"):
        metadata["ImageUrl"] = [item["imagePath"]]

    youtube = item.get("youtubeLink") or next(
        iter((item.get("carouselContent") or {}).get("youtube-link") or []), None
    )
    if youtube:
        metadata["VideoUrl"] = [f"https://www.youtube.com/watch?v={youtube}"]

    publishers = [p["publisher-name"] for p in item.get("publishers") or [] if p.get("publisher-name")]
    if publishers:
        metadata["Publishers"] = publishers
    developers = [d["developer-name"] for d in item.get("developers") or [] if d.get("developer-name")]
    if developers:
        metadata["Developers"] = developers
    if item.get("machineName"):
        metadata["MachineName"] = [item["machineName"]]
    return metadata
