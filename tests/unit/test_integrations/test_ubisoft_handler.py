# tests/unit/test_integrations/test_ubisoft_handler.py

"""Tests for the Ubisoft Connect handler."""

from __future__ import annotations

from pathlib import Path

from gamecollector.core.game import Settings
from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.registry import InMemoryRegistry, RegistryHive
from gamecollector.core.results import split_results
from gamecollector.integrations.handlers.ubisoft_handler import UbisoftHandler, split_configurations

UNINSTALL_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"
INSTALLS_KEY = r"SOFTWARE\Ubisoft\Launcher\Installs"

CONFIGURATIONS = r"""\x00\x11garbage before the first product
version: 2.0
root:
  name: NAME
  icon_image: 1a2b3c.ico
  description: DESCRIPTION
  start_game:
    online:
      executables:
        - path:
            relative: CoolGame.exe
          working_directory:
            register: HKEY_LOCAL_MACHINE\SOFTWARE\Ubisoft\Launcher\Installs\635\InstallDir
  uplay:
    game_code: COOL
localizations:
  default:
    NAME: Cool Game
    DESCRIPTION: A cool game.
\x00\x02\x03
version: 2.0
root:
  name: Owned Game
  thumb_image: 9f9f.jpg
  start_game:
    online:
      executables:
        - path:
            relative: Owned.exe
          working_directory:
            register: HKEY_LOCAL_MACHINE\SOFTWARE\Ubisoft\Launcher\Installs\999\InstallDir
version: 2.0
root:
  name: Season Pass
  is_dlc: yes
  thumb_image: 5e5e.jpg
  start_game:
    online:
      executables: []
version: 2.0
root:
  name: Soundtrack
  # no start_game
"""


MALFORMED_CONFIGURATIONS = """version: 2.0
root:
  name: Bad Localizations
  start_game: {}
localizations: [1]
version: 2.0
root:
  name: Bad Start
  thumb_image: bad.jpg
  start_game: launch.exe
version: 2.0
root:
  name: Fine Game
  thumb_image: abcd.jpg
  start_game:
    online:
      executables: []
"""


def _configurations_text() -> str:
    return CONFIGURATIONS.replace(r"\x00", "\x00").replace(r"\x11", "\x11").replace(r"\x02", "\x02").replace(
        r"\x03", "\x03"
    )


class TestSplitConfigurations:
    """Tests for splitting the configurations cache."""

    def test_splits_on_version_lines(self) -> None:
        """Each top-level version line starts a document; binary lines are dropped."""
        documents = split_configurations(_configurations_text())
        assert len(documents) == 4
        assert documents[0].startswith("version: 2.0")
        assert "garbage" not in documents[0]
        assert all("\x02" not in document for document in documents)
        assert "Soundtrack" in documents[3]
        assert "no start_game" not in documents[3]

    def test_version_after_binary_prefix(self) -> None:
        """A version marker glued to binary data still starts a document."""
        documents = split_configurations("\x01\x02version: 1.0\nroot:\n  name: A\n")
        assert documents == ["version: 1.0\nroot:\n  name: A"]

    def test_nested_version_does_not_split(self) -> None:
        """Indented version keys belong to the current document."""
        documents = split_configurations("version: 1.0\nroot:\n  sub:\n    version: 3\n")
        assert len(documents) == 1

    def test_empty(self) -> None:
        """Text without a version line has no documents."""
        assert split_configurations("nothing here\n") == []


class TestUbisoftHandler:
    """Tests for registry and configurations cache parsing."""

    def _add_installed_game(self, registry: InMemoryRegistry, game_id: str, name: str, path: Path) -> None:
        key = f"{UNINSTALL_KEY}\\Uplay Install {game_id}"
        registry.add_value(RegistryHive.LOCAL_MACHINE, key, "InstallLocation", str(path))
        registry.add_value(RegistryHive.LOCAL_MACHINE, key, "DisplayName", name)
        registry.add_value(RegistryHive.LOCAL_MACHINE, key, "DisplayIcon", str(path.parent / "icons" / "1a2b3c.ico"))
        registry.add_value(
            RegistryHive.LOCAL_MACHINE,
            key,
            "UninstallString",
            f'"{path.parent / "Ubisoft Connect" / "Uplay.exe"}" uplay://uninstall/{game_id}',
        )

    def _add_launcher(self, registry: InMemoryRegistry, launcher: Path, text: str | None = None) -> None:
        registry.add_value(RegistryHive.LOCAL_MACHINE, f"{UNINSTALL_KEY}\\Uplay", "InstallLocation", str(launcher))
        config_file = launcher / "cache" / "configuration" / "configurations"
        config_file.parent.mkdir(parents=True)
        config_file.write_bytes((text if text is not None else _configurations_text()).encode("utf-8"))

    def test_missing_uninstall_key(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """Without the uninstall key there is a single error."""
        handler = UbisoftHandler(registry, known_paths)
        games, errors = split_results(handler.find_all_games())
        assert not handler.is_available()
        assert games == []
        assert len(errors) == 1

    def test_no_ubisoft_sub_keys(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """An uninstall key without "Uplay Install" entries yields a single error."""
        registry.add_value(RegistryHive.LOCAL_MACHINE, f"{UNINSTALL_KEY}\\Other", "DisplayName", "Other")
        games, errors = split_results(UbisoftHandler(registry, known_paths).find_all_games())
        assert games == []
        assert len(errors) == 1
        assert "Uplay Install" in errors[0].message

    def test_installed_games_from_registry(
        self, registry: InMemoryRegistry, known_paths: KnownPaths, tmp_path: Path
    ) -> None:
        """Registry entries become installed games."""
        game_dir = tmp_path / "Games" / "Cool Game"
        self._add_installed_game(registry, "635", "Cool Game", game_dir)
        registry.add_value(RegistryHive.LOCAL_MACHINE, f"{UNINSTALL_KEY}\\Uplay Install abc", "DisplayName", "Bad")

        handler = UbisoftHandler(registry, known_paths)
        games, errors = split_results(handler.find_all_games())

        assert handler.is_available()
        assert len(errors) == 1
        assert "does not end with a number" in errors[0].message
        assert len(games) == 1
        game = games[0]
        assert game.game_id == "635"
        assert game.game_name == "Cool Game"
        assert game.game_path == game_dir
        assert game.launch_url == "uplay://launch/635"
        assert game.uninstall == tmp_path / "Games" / "Ubisoft Connect" / "Uplay.exe"
        assert game.uninstall_args == "uplay://uninstall/635"

    def test_missing_install_location(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """Entries without InstallLocation are reported."""
        registry.add_value(RegistryHive.LOCAL_MACHINE, f"{UNINSTALL_KEY}\\Uplay Install 1", "DisplayName", "A")
        games, errors = split_results(UbisoftHandler(registry, known_paths).find_all_games())
        assert games == []
        assert '"InstallLocation"' in errors[0].message

    def test_configurations_cache(self, registry: InMemoryRegistry, known_paths: KnownPaths, tmp_path: Path) -> None:
        """Cache products are merged into installed games or listed as owned."""
        game_dir = tmp_path / "Games" / "Cool Game"
        self._add_installed_game(registry, "635", "Cool Game", game_dir)
        launcher = tmp_path / "Ubisoft Connect"
        self._add_launcher(registry, launcher)
        registry.add_value(RegistryHive.LOCAL_MACHINE, f"{INSTALLS_KEY}\\635", "InstallDir", str(game_dir))

        handler = UbisoftHandler(registry, known_paths)
        assert handler.find_client() == launcher / "UbisoftConnect.exe"

        games, errors = split_results(handler.find_all_games())
        assert errors == []
        by_id = {game.game_id: game for game in games}
        assert set(by_id) == {"635", "9f9f", "5e5e"}

        installed = by_id["635"]
        assert installed.is_installed
        assert installed.metadata["Description"] == ["A cool game."]
        assert installed.metadata["IconFile"] == ["1a2b3c.ico"]

        owned = by_id["9f9f"]
        assert owned.game_name == "Owned Game"
        assert not owned.is_installed
        assert owned.launch_url == ""

        assert by_id["5e5e"].is_dlc

    def test_configurations_filters(
        self, registry: InMemoryRegistry, known_paths: KnownPaths, tmp_path: Path
    ) -> None:
        """installed_only and base_only drop cache-only products."""
        self._add_installed_game(registry, "635", "Cool Game", tmp_path / "Games" / "Cool Game")
        self._add_launcher(registry, tmp_path / "Ubisoft Connect")

        handler = UbisoftHandler(registry, known_paths)
        installed, _ = split_results(handler.find_all_games(Settings(installed_only=True)))
        assert [game.game_id for game in installed] == ["635"]

        base, _ = split_results(handler.find_all_games(Settings(base_only=True)))
        assert {game.game_id for game in base} == {"635", "9f9f"}

    def test_malformed_cache_entries_keep_registry_games(
        self, registry: InMemoryRegistry, known_paths: KnownPaths, tmp_path: Path
    ) -> None:
        """Cache entries of the wrong shape are errors; installed games come first and survive."""
        self._add_installed_game(registry, "635", "Cool Game", tmp_path / "Games" / "Cool Game")
        self._add_launcher(registry, tmp_path / "Ubisoft Connect", MALFORMED_CONFIGURATIONS)

        results = list(UbisoftHandler(registry, known_paths).find_all_games())
        games, errors = split_results(results)

        assert results[0].game_id == "635"
        assert [game.game_id for game in games] == ["635", "abcd"]
        assert len(errors) == 2
        assert "#0" in errors[0].message
        assert all(isinstance(error.exception, AttributeError) for error in errors)
