# tests/unit/test_config.py

"""Tests for settings.json and environment configuration."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gamecollector.config import Config, get_config
from gamecollector.core.game import Settings


class TestConfig:
    """Tests for Config loading and saving."""

    def test_defaults(self, tmp_path: Path) -> None:
        """Without a settings file every value has its default."""
        config = Config()
        assert config.DATA_DIR == tmp_path / "gamecollector-data"
        assert config.SETTINGS_FILE == tmp_path / "gamecollector-data" / "settings.json"
        assert config.STEAM_API_KEY is None
        assert config.DOLPHIN_PATH is None
        assert config.LOG_LEVEL == "INFO"
        assert config.to_settings() == Settings()

    def test_loads_settings_file(self, tmp_path: Path) -> None:
        """Values in settings.json are applied."""
        settings_file = tmp_path / "settings.json"
        settings_file.write_text(
            json.dumps(
                {
                    "steam_path": "/opt/steam",
                    "dolphin_path": "/opt/dolphin/Dolphin.exe",
                    "steam_api_key": "file-key",
                    "installed_only": True,
                    "games_only": True,
                }
            ),
            encoding="utf-8",
        )

        config = Config(SETTINGS_FILE=settings_file)

        assert config.STEAM_PATH == Path("/opt/steam")
        assert config.DOLPHIN_PATH == Path("/opt/dolphin/Dolphin.exe")
        assert config.STEAM_API_KEY == "file-key"
        assert config.to_settings() == Settings(installed_only=True, games_only=True)

    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables beat settings.json."""
        settings_file = tmp_path / "settings.json"
        settings_file.write_text(json.dumps({"steam_api_key": "file-key", "log_level": "WARNING"}), encoding="utf-8")
        monkeypatch.setenv("STEAM_API_KEY", "env-key")
        monkeypatch.setenv("DOLPHIN_PATH", "/emu/Dolphin.exe")
        monkeypatch.setenv("GAMECOLLECTOR_LOG_LEVEL", "debug")

        config = Config(SETTINGS_FILE=settings_file)

        assert config.STEAM_API_KEY == "env-key"
        assert config.DOLPHIN_PATH == Path("/emu/Dolphin.exe")
        assert config.LOG_LEVEL == "DEBUG"

    def test_invalid_log_level_is_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GAMECOLLECTOR_LOG_LEVEL", "chatty")
        assert Config().LOG_LEVEL == "INFO"

    def test_handler_log_levels(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Per-handler levels merge from settings.json and the environment; unknown levels are dropped."""
        settings_file = tmp_path / "settings.json"
        settings_file.write_text(
            json.dumps({"handler_log_levels": {"steam": "warning", "gog": "loud"}}), encoding="utf-8"
        )
        monkeypatch.setenv("GAMECOLLECTOR_HANDLER_LOG_LEVELS", "steam=DEBUG, itch=error,broken,xbox=noisy")

        config = Config(SETTINGS_FILE=settings_file)

        assert config.HANDLER_LOG_LEVELS == {"steam": "DEBUG", "itch": "ERROR"}

    def test_malformed_settings_file(self, tmp_path: Path) -> None:
        """A broken settings.json is logged and defaults are kept."""
        settings_file = tmp_path / "settings.json"
        settings_file.write_text("{broken", encoding="utf-8")
        config = Config(SETTINGS_FILE=settings_file)
        assert config.STEAM_API_KEY is None
        assert config.to_settings() == Settings()

    def test_save_and_reload(self, tmp_path: Path) -> None:
        """Saved settings are read back by a new Config."""
        settings_file = tmp_path / "nested" / "settings.json"
        config = Config(SETTINGS_FILE=settings_file)
        config.STEAM_USER_ID = "76561197960287930"
        config.DOLPHIN_PATH = tmp_path / "Dolphin.exe"
        config.OWNED_ONLY = True
        config.HANDLER_LOG_LEVELS["ubisoft"] = "DEBUG"
        config.save()

        reloaded = Config(SETTINGS_FILE=settings_file)
        assert reloaded.STEAM_USER_ID == "76561197960287930"
        assert reloaded.DOLPHIN_PATH == tmp_path / "Dolphin.exe"
        assert reloaded.to_settings() == Settings(owned_only=True)
        assert reloaded.HANDLER_LOG_LEVELS == {"ubisoft": "DEBUG"}

    def test_get_config_is_shared(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("gamecollector.config._config", None)
        assert get_config() is get_config()
