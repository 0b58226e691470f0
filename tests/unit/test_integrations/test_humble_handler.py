# tests/unit/test_integrations/test_humble_handler.py

"""Tests for the Humble App handler."""

from __future__ import annotations

import json
from pathlib import Path

from gamecollector.core.game import Problem, Settings
from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.registry import InMemoryRegistry, RegistryHive
from gamecollector.core.results import split_results
from gamecollector.integrations.handlers.humble_handler import HumbleHandler

UNINSTALL_KEY = r"Software\Microsoft\Windows\CurrentVersion\Uninstall"


class TestHumbleHandler:
    """Tests for config.json parsing."""

    def _write_config(self, known_paths: KnownPaths, items: list[dict], user: dict | None = None) -> None:
        config_file = known_paths.application_data / "Humble App" / "config.json"
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config = {"user": user or {"has_perks": True, "is_paused": False}, "game-collection-4": items}
        config_file.write_text(json.dumps(config), encoding="utf-8")

    def test_missing_config(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """A missing config.json yields a single error."""
        handler = HumbleHandler(registry, known_paths)
        games, errors = split_results(handler.find_all_games())
        assert not handler.is_available()
        assert games == []
        assert len(errors) == 1

    def test_malformed_config(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """A config.json that is not JSON yields a single error."""
        config_file = known_paths.application_data / "Humble App" / "config.json"
        config_file.parent.mkdir(parents=True)
        config_file.write_text("{not json", encoding="utf-8")

        games, errors = split_results(HumbleHandler(registry, known_paths).find_all_games())
        assert games == []
        assert len(errors) == 1
        assert "could not be deserialized" in errors[0].message

    def test_installed_game(self, registry: InMemoryRegistry, known_paths: KnownPaths, tmp_path: Path) -> None:
        """Installed items carry paths, uninstall data and metadata."""
        game_dir = tmp_path / "Humble" / "Cool Game"
        self._write_config(
            known_paths,
            [
                {
                    "downloadMachineName": "coolgame_windows",
                    "gameName": "Cool Game",
                    "status": "installed",
                    "filePath": str(game_dir),
                    "executablePath": "CoolGame.exe",
                    "lastPlayed": 1700000000,
                    "descriptionText": "A cool game.",
                    "youtubeLink": "abc123",
                    "publishers": [{"publisher-name": "Cool Publisher"}],
                    "developers": [{"developer-name": "Cool Studio"}, {"developer-name": ""}],
                    "machineName": "coolgame",
                }
            ],
        )
        uninstall_key = f"{UNINSTALL_KEY}\\Humble App coolgame_windows"
        registry.add_value(RegistryHive.CURRENT_USER, uninstall_key, "DisplayIcon", str(game_dir / "icon.ico"))
        registry.add_value(
            RegistryHive.CURRENT_USER, uninstall_key, "UninstallString", f'"{game_dir / "uninstall.exe"}" /S'
        )

        games, errors = split_results(HumbleHandler(registry, known_paths).find_all_games())

        assert errors == []
        assert len(games) == 1
        game = games[0]
        assert game.game_id == "coolgame_windows"
        assert game.game_name == "Cool Game"
        assert game.is_installed
        assert game.launch == game_dir / "CoolGame.exe"
        assert game.launch_url == "humble://launch/coolgame_windows"
        assert game.icon == game_dir / "icon.ico"
        assert game.uninstall == game_dir / "uninstall.exe"
        assert game.uninstall_args == "/S"
        assert game.last_run_date is not None
        assert game.metadata["VideoUrl"] == ["https://www.youtube.com/watch?v=abc123"]
        assert game.metadata["Developers"] == ["Cool Studio"]
        assert game.metadata["Publishers"] == ["Cool Publisher"]

    def test_subscription_titles(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """Collection and trove titles are not owned once the subscription lapses."""
        items = [
            {"downloadMachineName": "choice_windows", "gameName": "Choice", "machineName": "choice_collection"},
            {"downloadMachineName": "trove_windows", "gameName": "Trove", "machineName": "classic_trove"},
            {
                "downloadMachineName": "trove2_windows",
                "gameName": "Installed Trove",
                "machineName": "other_trove",
                "status": "downloaded",
            },
        ]
        self._write_config(known_paths, items, user={"has_perks": False})

        handler = HumbleHandler(registry, known_paths)
        games, _ = split_results(handler.find_all_games())
        by_id = {game.game_id: game for game in games}
        assert not by_id["choice_windows"].is_owned
        assert by_id["choice_windows"].problems == (Problem.EXPIRED_TRIAL,)
        assert not by_id["trove_windows"].is_owned
        assert by_id["trove2_windows"].is_owned

        owned, _ = split_results(handler.find_all_games(Settings(owned_only=True)))
        assert [game.game_id for game in owned] == ["trove2_windows"]

    def test_active_subscription(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """An active subscription keeps collection titles owned."""
        self._write_config(
            known_paths,
            [{"downloadMachineName": "choice_windows", "gameName": "Choice", "machineName": "choice_collection"}],
        )
        games, _ = split_results(HumbleHandler(registry, known_paths).find_all_games())
        assert games[0].is_owned
        assert not games[0].is_installed

    def test_filters(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """games_only drops source code and unavailable titles; installed_only drops the rest."""
        self._write_config(
            known_paths,
            [
                {"downloadMachineName": "game_windows", "gameName": "Game", "status": "installed"},
                {"downloadMachineName": "game_source", "gameName": "Game Source"},
                {"downloadMachineName": "manual_windows", "gameName": "Manual", "isAvailable": False},
                {"gameName": "No ID"},
            ],
        )
        handler = HumbleHandler(registry, known_paths)

        games, errors = split_results(handler.find_all_games())
        assert len(games) == 3
        assert len(errors) == 1

        games_only, _ = split_results(handler.find_all_games(Settings(games_only=True)))
        assert [game.game_id for game in games_only] == ["game_windows"]

        installed, _ = split_results(handler.find_all_games(Settings(installed_only=True)))
        assert [game.game_id for game in installed] == ["game_windows"]

    def test_items_of_wrong_shape(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """Collection items of the wrong shape are errors and the rest are still listed."""
        self._write_config(
            known_paths,
            [
                "not an item",
                {"downloadMachineName": "bad_windows", "status": 5},
                {"downloadMachineName": "fine_windows", "gameName": "Fine Game"},
            ],
            user=["not", "a", "dict"],
        )

        games, errors = split_results(HumbleHandler(registry, known_paths).find_all_games())

        assert [game.game_id for game in games] == ["fine_windows"]
        assert len(errors) == 2
        assert "#0" in errors[0].message
        assert isinstance(errors[1].exception, AttributeError)

    def test_collection_not_a_list(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        config_file = known_paths.application_data / "Humble App" / "config.json"
        config_file.parent.mkdir(parents=True)
        config_file.write_text(json.dumps({"game-collection-4": {"a": 1}}), encoding="utf-8")

        games, errors = split_results(HumbleHandler(registry, known_paths).find_all_games())

        assert games == []
        assert "is not a list" in errors[0].message
