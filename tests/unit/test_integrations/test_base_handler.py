# tests/unit/test_integrations/test_base_handler.py

"""Tests for the shared BaseHandler behaviour and handler wiring."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

from gamecollector.config import Config
from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Settings
from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.registry import InMemoryRegistry
from gamecollector.integrations.handlers import DolphinHandler, SteamHandler, get_all_handlers
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.integrations.steam_web_api import SteamWebAPI


class _ListHandler(BaseHandler):
    """Handler that replays a fixed list of results."""

    handler = Handler.STORE_GOG

    def __init__(self, results: list[GameResult], **kwargs) -> None:
        super().__init__(**kwargs)
        self.results = results

    def is_available(self) -> bool:
        return True

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        yield from self.results


def _game(game_id: str, name: str) -> GameData:
    return GameData(handler=Handler.STORE_GOG, game_id=game_id, game_name=name)


class TestBaseHandler:
    """Tests for lookup by ID."""

    def _handler(self, results: list[GameResult], known_paths: KnownPaths) -> _ListHandler:
        return _ListHandler(results, registry=InMemoryRegistry(), known_paths=known_paths)

    def test_platform_name(self, known_paths: KnownPaths) -> None:
        """The platform name is the handler's display value."""
        assert self._handler([], known_paths).platform_name() == "GOG Galaxy"

    def test_find_all_games_by_id(self, known_paths: KnownPaths) -> None:
        """Games are keyed case-insensitively; duplicates and errors are collected."""
        handler = self._handler(
            [
                _game("ABC", "First"),
                ErrorMessage("broken entry"),
                _game("abc", "Second"),
                _game("xyz", "Other"),
            ],
            known_paths,
        )

        games, errors = handler.find_all_games_by_id()

        assert set(games) == {"abc", "xyz"}
        assert games["abc"].game_name == "First"
        assert len(errors) == 2
        assert errors[0].message == "broken entry"
        assert "Duplicate game ID abc" in errors[1].message

    def test_find_one_game_by_id(self, known_paths: KnownPaths) -> None:
        """A single game is found regardless of case."""
        handler = self._handler([_game("1207658924", "Witcher"), ErrorMessage("ignored")], known_paths)
        assert handler.find_one_game_by_id("1207658924").game_name == "Witcher"
        assert handler.find_one_game_by_id("missing") is None

    def test_defaults(self, known_paths: KnownPaths) -> None:
        """Handlers without a known client return None."""
        handler = self._handler([], known_paths)
        assert handler.find_client() is None
        assert handler.normalize_id("AbC") == "abc"


class TestGetAllHandlers:
    """Tests for building the handler set."""

    def test_default_handlers(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """Every storefront is present; Dolphin needs a configured path."""
        handlers = get_all_handlers(registry, known_paths)

        assert len(handlers) == 14
        assert "Dolphin" not in handlers
        assert isinstance(handlers["Steam"], SteamHandler)
        assert all(handler.registry is registry for handler in handlers.values())

    def test_config_wiring(self, registry: InMemoryRegistry, known_paths: KnownPaths, tmp_path: Path) -> None:
        """API key, Steam and Dolphin paths come from the config."""
        config = Config(DATA_DIR=tmp_path / "config")
        config.STEAM_API_KEY = "key"
        config.STEAM_PATH = tmp_path / "Steam"
        config.DOLPHIN_PATH = tmp_path / "Dolphin" / "Dolphin.exe"

        handlers = get_all_handlers(registry, known_paths, config)

        assert len(handlers) == 15
        dolphin = handlers["Dolphin"]
        assert isinstance(dolphin, DolphinHandler)
        assert dolphin.dolphin_path == tmp_path / "Dolphin" / "Dolphin.exe"
        steam = handlers["Steam"]
        assert isinstance(steam._api, SteamWebAPI)
        assert steam._steam_path == tmp_path / "Steam"
