# gamecollector/integrations/handlers/ubisoft_handler.py

"""Handler for Ubisoft Connect (formerly Uplay).

Installed games register "Uplay Install <id>" uninstall keys. The
launcher's configurations cache describes every product the account can
see; it is a sequence of YAML documents separated by binary records,
each document starting with a "version:" line.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path, PureWindowsPath
from typing import Any

import yaml

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Settings
from gamecollector.core.logging import get_handler_logger
from gamecollector.core.registry import RegistryHive, RegistryKey, RegistryView
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.path_utils import split_command_line, to_path

__all__ = ["UbisoftHandler", "split_configurations"]

logger = get_handler_logger("ubisoft")

_UNINSTALL_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"
_INSTALL_PREFIX = "Uplay Install "
_LAUNCHER_SUB_KEY = "Uplay"

_VERSION_MARKER = "version: "
_CONTROL_CHARS = re.compile("[\x00-\x08\x0b-\x1f\x7f\ufffd]")
_IMAGE_SUFFIXES = (".ico", ".jpg", ".png")
_TRUE_STRINGS = frozenset({"y", "yes", "true", "on"})


def split_configurations(text: str) -> list[str]:
    """Split the configurations cache into YAML documents.

    Lines carrying binary noise (control characters or undecodable
    bytes) and comments are dropped. A line containing "version: " at
    top level starts a new document; anything before the first such
    line is discarded.

    Args:
        text: Contents of the cache decoded with replacement characters.

    Returns:
        One YAML string per product.
    """
    documents: list[str] = []
    current: list[str] | None = None
    for line in text.splitlines():
        if _VERSION_MARKER in line and f" {_VERSION_MARKER.strip()}" not in line:
            if current:
                documents.append("\n".join(current))
            current = [line[line.index(_VERSION_MARKER) :]]
            continue
        if current is None or not line.strip():
            continue
        if _CONTROL_CHARS.search(line) or line.lstrip().startswith("#"):
            continue
        current.append(line)
    if current:
        documents.append("\n".join(current))
    return documents


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return isinstance(value, str) and value.casefold() in _TRUE_STRINGS


def _localize(value: str, localizations: dict[str, Any]) -> str:
    localized = localizations.get(value)
    return str(localized) if localized is not None else value


class UbisoftHandler(BaseHandler):
    """Handler for Ubisoft Connect."""

    handler = Handler.STORE_UBISOFT

    def _open_uninstall_key(self) -> RegistryKey | None:
        return self.registry.open_key(RegistryHive.LOCAL_MACHINE, _UNINSTALL_KEY, RegistryView.REGISTRY32)

    def is_available(self) -> bool:
        """True if any Uplay Install uninstall key exists."""
        uninstall_key = self._open_uninstall_key()
        if uninstall_key is None:
            return False
        return any(name.startswith(_INSTALL_PREFIX) for name in uninstall_key.get_sub_key_names())

    def get_launcher_path(self) -> Path | None:
        """Install folder of Ubisoft Connect, from its uninstall key."""
        uninstall_key = self._open_uninstall_key()
        launcher_key = uninstall_key.open_sub_key(_LAUNCHER_SUB_KEY) if uninstall_key is not None else None
        if launcher_key is None:
            return None
        return to_path(launcher_key.get_string("InstallLocation"))

    def find_client(self) -> Path | None:
        """UbisoftConnect.exe in the launcher install folder."""
        launcher_path = self.get_launcher_path()
        return launcher_path / "UbisoftConnect.exe" if launcher_path is not None else None

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        settings = settings or Settings()
        uninstall_key = self._open_uninstall_key()
        if uninstall_key is None:
            yield ErrorMessage(f"Unable to open HKEY_LOCAL_MACHINE\\{_UNINSTALL_KEY}")
            return

        sub_key_names = [name for name in uninstall_key.get_sub_key_names() if name.startswith(_INSTALL_PREFIX)]
        if not sub_key_names:
            yield ErrorMessage(f'Registry key {uninstall_key.name} has no sub-keys beginning with "{_INSTALL_PREFIX}"')
            return

        # Installed games keyed by the stem of their icon file, which the
        # configurations cache also uses
        installed: dict[str, GameData] = {}
        count = 0
        for sub_key_name in sub_key_names:
            result = self._parse_sub_key(uninstall_key, sub_key_name)
            if isinstance(result, ErrorMessage):
                yield result
                continue
            icon_id = PureWindowsPath(str(result.icon)).stem.casefold() if result.icon else result.game_id
            installed[icon_id] = result

        cache_results: list[GameResult] = []
        for result in self._read_configurations():
            if isinstance(result, ErrorMessage):
                cache_results.append(result)
                continue
            icon_id, game = result
            registry_game = installed.get(icon_id)
            if registry_game is not None:
                installed[icon_id] = replace(registry_game, metadata={**game.metadata, **registry_game.metadata})
                continue
            if settings.installed_only and not game.is_installed:
                continue
            if settings.base_only and game.is_dlc:
                continue
            cache_results.append(game)

        # Registry games first, then products known only to the cache
        for game in installed.values():
            count += 1
            yield game
        for result in cache_results:
            if isinstance(result, GameData):
                count += 1
            yield result

        logger.info("Found %d games in Ubisoft Connect", count)

    def _parse_sub_key(self, uninstall_key: RegistryKey, sub_key_name: str) -> GameResult:
        sub_key = uninstall_key.open_sub_key(sub_key_name)
        if sub_key is None:
            return ErrorMessage(f"Unable to open {uninstall_key.name}\\{sub_key_name}")

        game_id = sub_key_name[len(_INSTALL_PREFIX) :]
        if not game_id.isdigit():
            return ErrorMessage(f'The sub-key name of {sub_key.name} does not end with a number: "{game_id}"')

        path = sub_key.get_string("InstallLocation")
        if path is None:
            return ErrorMessage(f'{sub_key.name} doesn\'t have a string value "InstallLocation"')
        name = sub_key.get_string("DisplayName")
        if name is None:
            return ErrorMessage(f'{sub_key.name} doesn\'t have a string value "DisplayName"')

        uninstall_path, uninstall_args = split_command_line(sub_key.get_string("UninstallString"))
        return GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=name,
            game_path=to_path(path),
            launch_url=f"uplay://launch/{game_id}",
            icon=to_path(sub_key.get_string("DisplayIcon")),
            uninstall=to_path(uninstall_path),
            uninstall_args=uninstall_args,
        )

    def _read_configurations(self) -> Iterator[tuple[str, GameData] | ErrorMessage]:
        """Yield (icon id, game) pairs for every product in the configurations cache."""
        launcher_path = self.get_launcher_path()
        if launcher_path is None:
            logger.debug("Ubisoft Connect install location not found; skipping configurations cache")
            return
        config_file = launcher_path / "cache" / "configuration" / "configurations"
        if not config_file.is_file():
            logger.debug("No configurations cache at %s", config_file)
            return

        try:
            text = config_file.read_bytes().decode("utf-8", errors="replace")
        except OSError as e:
            yield ErrorMessage(f"Unable to read {config_file}", e)
            return

        for index, document in enumerate(split_configurations(text)):
            try:
                config = yaml.safe_load(document)
            except yaml.YAMLError as e:
                yield ErrorMessage(f"Malformed entry #{index} in {config_file}", e)
                continue
            if not isinstance(config, dict) or not isinstance(config.get("root"), dict):
                yield ErrorMessage(f'Entry #{index} in {config_file} has no "root" property')
                continue
            try:
                result = self._parse_configuration(config)
            except (AttributeError, TypeError) as e:
                yield ErrorMessage(f"Exception while parsing entry #{index} in {config_file}", e)
                continue
            if result is not None:
                yield result

    def _parse_configuration(self, config: dict[str, Any]) -> tuple[str, GameData] | ErrorMessage | None:
        root = config["root"]
        localizations = (config.get("localizations") or {}).get("default") or {}

        name = root.get("display_name") or root.get("name") or ""
        if not name:
            return ErrorMessage('Configuration entry has no "root" > "name" property')
        start_game = root.get("start_game")
        if not start_game:
            logger.debug("Skipping Ubisoft product %s without start_game", name)
            return None
        is_dlc = any(_to_bool(root.get(key)) for key in ("is_dlc", "is_ulc", "optional_addon_enabled_by_default"))

        uplay = root.get("uplay") or {}
        game_id = str(uplay.get("game_code") or uplay.get("achievements_sync_id") or "")

        name = _localize(str(name), localizations)
        icon_file = _localize(str(root.get("icon_image") or root.get("thumb_image") or ""), localizations)
        if not name:
            name = (root.get("installer") or {}).get("game_identifier") or game_id

        icon_id = ""
        if icon_file.casefold().endswith(_IMAGE_SUFFIXES):
            icon_id = PureWindowsPath(icon_file).stem.casefold()
            game_id = icon_id
        if not game_id:
            return ErrorMessage(f"Configuration entry for {name} has no ID")

        game_path, launch = self._resolve_executable(start_game)
        metadata: dict[str, list[str]] = {}
        description = root.get("description")
        if description:
            metadata["Description"] = [_localize(str(description), localizations)]
        if icon_file:
            metadata["IconFile"] = [icon_file]

        game = GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=name,
            game_path=game_path,
            launch=launch,
            launch_url=f"uplay://launch/{game_id}" if game_id.isdigit() else "",
            icon=launch,
            is_installed=launch is not None and launch.is_file(),
            base_game="" if is_dlc else None,
            metadata=metadata,
        )
        return icon_id or game_id.casefold(), game

    def _resolve_executable(self, start_game: dict[str, Any]) -> tuple[Path | None, Path | None]:
        """Find the install directory and executable a start_game entry points at.

        The working directory is stored as a registry value path
        (HKEY_...\\path\\to\\key\\ValueName); the executable is relative to it.
        """
        executables = (start_game.get("online") or {}).get("executables") or []
        if not executables or not isinstance(executables[0], dict):
            return None, None
        executable = executables[0]
        register = ((executable.get("working_directory") or {}).get("register")) or ""
        if "\\" not in register:
            return None, None

        hive_name, _, rest = register.partition("\\")
        key_path, _, value_name = rest.rpartition("\\")
        hive = RegistryHive.from_name(hive_name)
        if hive is None:
            return None, None
        key = self.registry.open_key(hive, key_path, RegistryView.REGISTRY32)
        game_path = to_path(key.get_string(value_name)) if key is not None else None
        if game_path is None:
            return None, None

        relative = (executable.get("path") or {}).get("relative")
        return game_path, game_path / relative if relative else None
