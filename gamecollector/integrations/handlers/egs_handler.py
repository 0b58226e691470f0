# gamecollector/integrations/handlers/egs_handler.py

"""Handler for the Epic Games Store.

Installed games are described by *.item JSON manifests. The launcher's
catalog cache (catcache.bin, base64-encoded JSON) adds artwork and the
owned but not installed part of the library.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path
from typing import Any

from gamecollector.core.game import ErrorMessage, FormatPolicy, GameData, GameResult, Handler, Settings
from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.logging import get_handler_logger
from gamecollector.core.registry import Registry, RegistryHive
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.path_utils import is_rooted, to_path

__all__ = ["EGSHandler"]

logger = get_handler_logger("egs")

_EOS_KEY = r"Software\Epic Games\EOS"

SUPPORTED_FORMAT_VERSION = 0

# Catalog namespaces that are not games (Twinmotion)
_SKIPPED_NAMESPACES: frozenset[str] = frozenset({"poodle"})


class EGSHandler(BaseHandler):
    """Handler for the Epic Games Launcher.

    Attributes:
        format_policy: What to do with manifests whose FormatVersion is
            not SUPPORTED_FORMAT_VERSION.
    """

    handler = Handler.STORE_EGS

    def __init__(
        self,
        registry: Registry | None = None,
        known_paths: KnownPaths | None = None,
        format_policy: FormatPolicy = FormatPolicy.WARN,
    ) -> None:
        super().__init__(registry, known_paths)
        self.format_policy = format_policy

    def is_available(self) -> bool:
        """True if the manifest directory exists."""
        return self.get_manifest_dir().is_dir()

    def find_client(self) -> Path | None:
        """The launcher executable registered by the Epic Online Services key."""
        key = self.registry.open_key(RegistryHive.CURRENT_USER, _EOS_KEY)
        if key is None:
            return None
        return to_path(key.get_string("ModSdkCommand"))

    def get_manifest_dir(self) -> Path:
        """Return the manifest directory from the registry or its default location."""
        key = self.registry.open_key(RegistryHive.CURRENT_USER, _EOS_KEY)
        if key is not None:
            registry_dir = key.get_string("ModSdkMetadataDir")
            if registry_dir:
                return Path(registry_dir)
        return self._launcher_data_dir() / "Manifests"

    def _launcher_data_dir(self) -> Path:
        return self.known_paths.common_application_data / "Epic" / "EpicGamesLauncher" / "Data"

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        settings = settings or Settings()
        manifest_dir = self.get_manifest_dir()
        if not manifest_dir.is_dir():
            yield ErrorMessage(f"The manifest directory {manifest_dir} does not exist")
            return

        item_files = sorted(manifest_dir.glob("*.item"))
        if not item_files:
            yield ErrorMessage(f"The manifest directory {manifest_dir} does not contain any .item files")
            return

        installed: dict[str, GameData] = {}
        for item_file in item_files:
            try:
                result = self._parse_item_file(item_file, settings)
            except (AttributeError, TypeError) as e:
                result = ErrorMessage(f"Malformed manifest {item_file}", e)
            if result is None:
                continue
            if isinstance(result, ErrorMessage):
                yield result
                continue
            if result.game_id.casefold() in installed:
                yield ErrorMessage(f"Duplicate catalog item {result.game_id} in {item_file}")
                continue
            installed[result.game_id.casefold()] = result

        catalog: list[GameResult] = []
        catalog_path = self._launcher_data_dir() / "Catalog" / "catcache.bin"
        if catalog_path.exists():
            try:
                catalog = self._parse_catalog(catalog_path)
            except (OSError, ValueError) as e:
                yield ErrorMessage(f"Unable to decode catalog cache {catalog_path}", e)
        else:
            logger.debug("No EGS catalog cache at %s", catalog_path)

        count = 0
        for entry in catalog:
            if isinstance(entry, ErrorMessage):
                yield entry
                continue
            key = entry.game_id.casefold()
            if key in installed:
                installed[key] = _merge(installed[key], entry)
                continue
            if settings.installed_only:
                continue
            if settings.base_only and entry.base_game:
                continue
            if settings.games_only and "games" not in entry.metadata.get("CategoryPaths", []):
                continue
            count += 1
            yield entry

        for game in installed.values():
            count += 1
            yield game

        logger.info("Found %d games in Epic Games Store", count)

    def _parse_item_file(self, item_file: Path, settings: Settings) -> GameResult | None:
        """Parse a single *.item manifest.

        Returns:
            The installed game, an ErrorMessage, or None if filtered out.
        """
        try:
            manifest = json.loads(item_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            return ErrorMessage(f"Unable to deserialize file {item_file}", e)
        if not isinstance(manifest, dict):
            return ErrorMessage(f"Unable to deserialize file {item_file}")

        format_version = manifest.get("FormatVersion")
        if format_version is None:
            return ErrorMessage(f'Manifest {item_file} does not have a value "FormatVersion"')
        if format_version != SUPPORTED_FORMAT_VERSION:
            message = (
                f"Manifest {item_file} has FormatVersion {format_version} "
                f"but only FormatVersion {SUPPORTED_FORMAT_VERSION} is supported"
            )
            if self.format_policy is FormatPolicy.ERROR:
                return ErrorMessage(message)
            if self.format_policy is FormatPolicy.WARN:
                logger.warning(message)

        catalog_item_id = manifest.get("CatalogItemId")
        if not catalog_item_id or not isinstance(catalog_item_id, str):
            return ErrorMessage(f'Manifest {item_file} does not have a value "CatalogItemId"')
        display_name = manifest.get("DisplayName")
        if display_name is None:
            return ErrorMessage(f'Manifest {item_file} does not have a value "DisplayName"')
        install_location = manifest.get("InstallLocation") or ""
        if not is_rooted(install_location):
            return ErrorMessage(f'Manifest {item_file} does not have a rooted "InstallLocation"')

        app_name = manifest.get("AppName") or ""
        main_game = manifest.get("MainGameAppName") or ""
        executable = manifest.get("LaunchExecutable") or ""
        is_dlc = not executable or bool(main_game and app_name and main_game != app_name)
        if is_dlc and settings.base_only:
            logger.debug("Skipping EGS DLC %s", display_name)
            return None

        game_path = Path(install_location)
        launch = game_path / executable if executable else None
        launch_url = ""
        if app_name:
            launch_url = f"com.epicgames.launcher://apps/{app_name}?action=launch&silent=true"

        return GameData(
            handler=self.handler,
            game_id=catalog_item_id,
            game_name=display_name,
            game_path=game_path,
            launch=launch,
            launch_url=launch_url,
            icon=launch,
            base_game=(main_game or "") if is_dlc else None,
            metadata={"AppName": [app_name]} if app_name else {},
        )

    def _parse_catalog(self, catalog_path: Path) -> list[GameResult]:
        """Decode catcache.bin into not-installed game records.

        Items of the wrong shape become ErrorMessages in the returned list.

        Raises:
            OSError: If the file cannot be read.
            ValueError: If it is not base64-encoded JSON.
        """
        try:
            plaintext = base64.b64decode(catalog_path.read_bytes())
        except binascii.Error as e:
            raise ValueError(f"{catalog_path} is not base64") from e
        items = json.loads(plaintext.decode("utf-8", errors="replace"))
        if not isinstance(items, list):
            raise ValueError(f"{catalog_path} does not contain a JSON array")

        results: list[GameResult] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                results.append(ErrorMessage(f"Catalog item #{index} in {catalog_path} is not an object"))
                continue
            try:
                game = self._catalog_entry(item)
            except (AttributeError, TypeError) as e:
                results.append(ErrorMessage(f"Exception while parsing catalog item #{index} in {catalog_path}", e))
                continue
            if game is not None:
                results.append(game)
        return results

    def _catalog_entry(self, item: dict[str, Any]) -> GameData | None:
        item_id = item.get("id")
        namespace = item.get("namespace", "")
        if not item_id or namespace.casefold() in _SKIPPED_NAMESPACES:
            return None

        category_paths = [c.get("path", "") for c in item.get("categories") or [] if isinstance(c, dict)]
        if "audience" in category_paths or "engines" in category_paths:
            return None

        title = (item.get("title") or "").replace("\ufffd", "") or item_id
        main_game = (item.get("mainGameItem") or {}).get("id")

        metadata: dict[str, list[str]] = {"CategoryPaths": category_paths}
        for image in item.get("keyImages") or []:
            image_type = image.get("type", "")
            if image_type == "DieselGameBoxTall":
                metadata["ImageUrl"] = [image.get("url", "")]
            elif image_type == "DieselGameBox":
                metadata["ImageWideUrl"] = [image.get("url", "")]
        if item.get("developer"):
            metadata["Developers"] = [item["developer"]]
        if namespace:
            metadata["Namespace"] = [namespace]

        save_folder = ((item.get("customAttributes") or {}).get("CloudSaveFolder") or {}).get("value")
        return GameData(
            handler=self.handler,
            game_id=str(item_id),
            game_name=title,
            save_path=to_path(save_folder),
            is_installed=False,
            base_game=main_game or None,
            metadata=metadata,
        )


def _merge(installed: GameData, catalog_entry: GameData) -> GameData:
    """Add catalog artwork and save location to an installed game."""
    metadata = {**catalog_entry.metadata, **installed.metadata}
    return replace(
        installed,
        save_path=installed.save_path or catalog_entry.save_path,
        base_game=installed.base_game if installed.base_game is not None else catalog_entry.base_game,
        metadata=metadata,
    )
