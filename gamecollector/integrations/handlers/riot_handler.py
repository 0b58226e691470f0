# gamecollector/integrations/handlers/riot_handler.py

"""Handler for games installed through the Riot Client.

Each product has a <product>.<patchline>.product_settings.yaml file below
ProgramData/Riot Games/Metadata. Games are launched and uninstalled by
passing the product name to the Riot Client.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path, PureWindowsPath

import yaml

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Settings
from gamecollector.core.logging import get_handler_logger
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.path_utils import to_path

__all__ = ["RiotHandler"]

logger = get_handler_logger("riot")


class RiotHandler(BaseHandler):
    """Handler for the Riot Client."""

    handler = Handler.STORE_RIOT

    def _riot_dir(self) -> Path:
        return self.known_paths.common_application_data / "Riot Games"

    def get_client_install_file(self) -> Path:
        """Path to RiotClientInstalls.json."""
        return self._riot_dir() / "RiotClientInstalls.json"

    def get_metadata_dir(self) -> Path:
        """Folder holding one metadata folder per Riot product."""
        return self._riot_dir() / "Metadata"

    def is_available(self) -> bool:
        """True if RiotClientInstalls.json exists."""
        return self.get_client_install_file().is_file()

    def find_client(self) -> Path | None:
        """The Riot Client path listed in RiotClientInstalls.json."""
        try:
            installs = json.loads(self.get_client_install_file().read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug("Unable to read Riot Client install file: %s", e)
            return None
        return to_path(installs.get("rc_live")) if isinstance(installs, dict) else None

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        client_file = self.get_client_install_file()
        if not client_file.is_file():
            yield ErrorMessage(f"The client install file {client_file} does not exist")
            return

        client = self.find_client()
        metadata_dir = self.get_metadata_dir()
        settings_files = sorted(metadata_dir.rglob("*settings.yaml")) if metadata_dir.is_dir() else []
        if not settings_files:
            yield ErrorMessage(f"The metadata directory {metadata_dir} does not contain any .yaml files")
            return

        count = 0
        for settings_file in settings_files:
            try:
                result = self._parse_settings_file(settings_file, client)
            except (AttributeError, TypeError) as e:
                result = ErrorMessage(f"Malformed file {settings_file}", e)
            if isinstance(result, GameData):
                count += 1
            yield result

        logger.info("Found %d games in Riot Client", count)

    def _parse_settings_file(self, settings_file: Path, client: Path | None) -> GameResult:
        try:
            product_settings = yaml.safe_load(settings_file.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            return ErrorMessage(f"Unable to deserialize file {settings_file}", e)
        if not isinstance(product_settings, dict):
            return ErrorMessage(f"Unable to deserialize file {settings_file}")

        # Only the Riot Client's own settings list user data paths
        if product_settings.get("user_data_paths") is not None:
            return ErrorMessage(f"Not a game file {settings_file}")

        full_path = product_settings.get("product_install_full_path")
        install_root = product_settings.get("product_install_root")
        if not full_path or not install_root:
            return ErrorMessage(f'No "product_install_full_path" property in file {settings_file}')

        game_id = full_path[len(install_root) + 1 :].split("/", 1)[0]
        product = settings_file.name.split(".", 1)[0].lower()
        shortcut_name = product_settings.get("shortcut_name")
        name = PureWindowsPath(shortcut_name).stem if shortcut_name else settings_file.name.split(".", 1)[0]

        launch_args = f"--launch-product={product}"
        uninstall_args = f"--uninstall-product={product}"
        if ".live." in settings_file.name.lower():
            launch_args += " --launch-patchline=live"
            uninstall_args += " --uninstall-patchline=live"

        icon = next(iter(sorted(settings_file.parent.glob("*.ico"))), None) or client
        return GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=name,
            game_path=to_path(full_path),
            launch=client,
            launch_args=launch_args,
            icon=icon,
            uninstall=client,
            uninstall_args=uninstall_args,
        )
