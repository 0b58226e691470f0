# tests/unit/test_integrations/test_egs_handler.py

"""Tests for the Epic Games Store handler."""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any

import pytest

from gamecollector.core.game import ErrorMessage, FormatPolicy, Handler, Settings
from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.registry import InMemoryRegistry
from gamecollector.core.results import split_results
from gamecollector.integrations.handlers.egs_handler import EGSHandler


def _data_dir(known_paths: KnownPaths) -> Path:
    return known_paths.common_application_data / "Epic" / "EpicGamesLauncher" / "Data"


def _write_item(known_paths: KnownPaths, file_name: str, **overrides: Any) -> None:
    manifest = {
        "FormatVersion": 0,
        "CatalogItemId": "4fe75bbc5a674f4f9b356b5c90567da5",
        "DisplayName": "Fortnite",
        "InstallLocation": "C:\\Program Files\\Epic Games\\Fortnite",
        "LaunchExecutable": "FortniteGame/Binaries/Win64/FortniteLauncher.exe",
        "AppName": "Fortnite",
        "MainGameAppName": "Fortnite",
    }
    manifest.update(overrides)
    manifest_dir = _data_dir(known_paths) / "Manifests"
    manifest_dir.mkdir(parents=True, exist_ok=True)
    (manifest_dir / file_name).write_text(json.dumps(manifest), encoding="utf-8")


def _write_catalog(known_paths: KnownPaths, items: list[dict[str, Any]]) -> None:
    catalog_dir = _data_dir(known_paths) / "Catalog"
    catalog_dir.mkdir(parents=True, exist_ok=True)
    (catalog_dir / "catcache.bin").write_bytes(base64.b64encode(json.dumps(items).encode("utf-8")))


class TestEGSManifests:
    """Tests for *.item manifest parsing."""

    def test_missing_manifest_dir(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        results = list(EGSHandler(registry, known_paths).find_all_games())
        assert len(results) == 1
        assert "does not exist" in results[0].message

    def test_parses_installed_game(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        _write_item(known_paths, "fortnite.item")

        games, errors = split_results(EGSHandler(registry, known_paths).find_all_games())

        assert errors == []
        game = games[0]
        assert game.handler is Handler.STORE_EGS
        assert game.game_id == "4fe75bbc5a674f4f9b356b5c90567da5"
        assert game.game_name == "Fortnite"
        assert game.game_path == Path("C:\\Program Files\\Epic Games\\Fortnite")
        assert game.launch_url == "com.epicgames.launcher://apps/Fortnite?action=launch&silent=true"
        assert game.is_dlc is False
        assert game.metadata["AppName"] == ["Fortnite"]

    def test_dlc_detection_and_base_only(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """A manifest whose MainGameAppName differs from AppName is DLC."""
        _write_item(known_paths, "base.item")
        _write_item(
            known_paths,
            "dlc.item",
            CatalogItemId="dlc1",
            DisplayName="Season Pass",
            AppName="FortniteDLC",
            LaunchExecutable="",
        )
        handler = EGSHandler(registry, known_paths)

        games, _ = split_results(handler.find_all_games())
        base_games, _ = split_results(handler.find_all_games(Settings(base_only=True)))

        dlc = [g for g in games if g.game_id == "dlc1"][0]
        assert dlc.base_game == "Fortnite"
        assert [g.game_id for g in base_games] == ["4fe75bbc5a674f4f9b356b5c90567da5"]

    def test_invalid_manifests_are_errors(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """Broken manifests yield errors and valid ones are still returned."""
        _write_item(known_paths, "a_good.item")
        _write_item(known_paths, "b_no_id.item", CatalogItemId="")
        _write_item(known_paths, "c_relative.item", CatalogItemId="x", InstallLocation="Games\\Fortnite")
        (_data_dir(known_paths) / "Manifests" / "d_broken.item").write_text("{not json", encoding="utf-8")

        games, errors = split_results(EGSHandler(registry, known_paths).find_all_games())

        assert len(games) == 1
        assert len(errors) == 3

    def test_manifests_of_wrong_shape(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """Manifests with values of the wrong type are errors and do not stop the scan."""
        _write_item(known_paths, "a_good.item")
        _write_item(known_paths, "b_number_location.item", CatalogItemId="b", InstallLocation=5)
        _write_item(known_paths, "c_number_id.item", CatalogItemId=7)
        (_data_dir(known_paths) / "Manifests" / "d_list.item").write_text("[1, 2]", encoding="utf-8")

        games, errors = split_results(EGSHandler(registry, known_paths).find_all_games())

        assert [g.game_id for g in games] == ["4fe75bbc5a674f4f9b356b5c90567da5"]
        assert len(errors) == 3
        assert "b_number_location.item" in errors[0].message
        assert isinstance(errors[0].exception, TypeError)

    def test_duplicate_catalog_item(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        _write_item(known_paths, "a.item")
        _write_item(known_paths, "b.item")

        games, errors = split_results(EGSHandler(registry, known_paths).find_all_games())

        assert len(games) == 1
        assert "Duplicate" in errors[0].message

    @pytest.mark.parametrize(
        "policy,expected_games,expected_errors",
        [(FormatPolicy.WARN, 1, 0), (FormatPolicy.IGNORE, 1, 0), (FormatPolicy.ERROR, 0, 1)],
    )
    def test_format_version_policy(
        self,
        registry: InMemoryRegistry,
        known_paths: KnownPaths,
        policy: FormatPolicy,
        expected_games: int,
        expected_errors: int,
    ) -> None:
        _write_item(known_paths, "future.item", FormatVersion=1)

        games, errors = split_results(EGSHandler(registry, known_paths, format_policy=policy).find_all_games())

        assert len(games) == expected_games
        assert len(errors) == expected_errors


class TestEGSCatalog:
    """Tests for catcache.bin handling."""

    def test_catalog_adds_owned_games_and_artwork(
        self, registry: InMemoryRegistry, known_paths: KnownPaths
    ) -> None:
        _write_item(known_paths, "fortnite.item")
        _write_catalog(
            known_paths,
            [
                {
                    "id": "4fe75bbc5a674f4f9b356b5c90567da5",
                    "title": "Fortnite",
                    "namespace": "fn",
                    "categories": [{"path": "games"}],
                    "keyImages": [{"type": "DieselGameBoxTall", "url": "https://cdn/fn_tall.jpg"}],
                },
                {
                    "id": "owned1",
                    "title": "Owned Game",
                    "namespace": "abc",
                    "categories": [{"path": "games"}, {"path": "applications"}],
                    "developer": "Studio",
                },
                {"id": "engine", "title": "Unreal Engine", "categories": [{"path": "engines"}]},
                {"id": "twin", "title": "Twinmotion", "namespace": "poodle"},
                {
                    "id": "addon",
                    "title": "Add-on",
                    "categories": [{"path": "addons"}],
                    "mainGameItem": {"id": "owned1"},
                },
            ],
        )
        handler = EGSHandler(registry, known_paths)

        games, errors = split_results(handler.find_all_games())

        assert errors == []
        by_id = {g.game_id: g for g in games}
        assert set(by_id) == {"4fe75bbc5a674f4f9b356b5c90567da5", "owned1", "addon"}
        assert by_id["4fe75bbc5a674f4f9b356b5c90567da5"].is_installed is True
        assert by_id["4fe75bbc5a674f4f9b356b5c90567da5"].metadata["ImageUrl"] == ["https://cdn/fn_tall.jpg"]
        assert by_id["owned1"].is_installed is False
        assert by_id["owned1"].metadata["Developers"] == ["Studio"]
        assert by_id["addon"].base_game == "owned1"

        games_only, _ = split_results(handler.find_all_games(Settings(games_only=True, base_only=True)))
        assert {g.game_id for g in games_only} == {"4fe75bbc5a674f4f9b356b5c90567da5", "owned1"}

        installed, _ = split_results(handler.find_all_games(Settings(installed_only=True)))
        assert [g.game_id for g in installed] == ["4fe75bbc5a674f4f9b356b5c90567da5"]

    def test_catalog_items_of_wrong_shape(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """Broken catalog items are reported and the remaining items are still listed."""
        _write_item(known_paths, "fortnite.item")
        _write_catalog(
            known_paths,
            [
                "not an item",
                {"id": "bad-namespace", "namespace": 3},
                {"id": "bad-images", "keyImages": ["tall.jpg"]},
                {"id": "fine", "title": "Fine Game"},
            ],
        )

        games, errors = split_results(EGSHandler(registry, known_paths).find_all_games())

        assert {g.game_id for g in games} == {"4fe75bbc5a674f4f9b356b5c90567da5", "fine"}
        assert len(errors) == 3
        assert "#0" in errors[0].message
        assert all(isinstance(error.exception, AttributeError) for error in errors[1:])

    def test_undecodable_catalog(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """A corrupt catalog is reported and installed games are still listed."""
        _write_item(known_paths, "fortnite.item")
        catalog_dir = _data_dir(known_paths) / "Catalog"
        catalog_dir.mkdir(parents=True)
        (catalog_dir / "catcache.bin").write_bytes(base64.b64encode(b"{}"))

        games, errors = split_results(EGSHandler(registry, known_paths).find_all_games())

        assert len(games) == 1
        assert isinstance(errors[0], ErrorMessage)
