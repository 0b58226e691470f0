# gamecollector/config.py

"""
Configuration - environment and settings file handling.
Resolves the data directory, API keys and default enumeration filters.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from gamecollector.core.game import Settings

logger = logging.getLogger("gamecollector.config")


__all__ = ["Config", "get_config"]


def _default_data_dir() -> Path:
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "gamecollector"


_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


def _parse_handler_levels(value: str) -> dict[str, str]:
    """Parse "steam=DEBUG,gog=WARNING" into a name to level mapping.

    Entries without "=" or with an unknown level are skipped with a warning.
    """
    levels: dict[str, str] = {}
    for entry in value.split(","):
        name, sep, level = entry.partition("=")
        name, level = name.strip(), level.strip().upper()
        if not sep or not name or level not in _LOG_LEVELS:
            logger.warning("Ignoring handler log level %r", entry.strip())
            continue
        levels[name] = level
    return levels


@dataclass
class Config:
    """
    Central configuration for the library and its CLI.
    Values come from defaults, then settings.json, then environment variables.
    """

    DATA_DIR: Path | None = None
    SETTINGS_FILE: Path | None = None
    LOG_FILE: Path | None = None
    LOG_LEVEL: str = "INFO"
    # Console level per handler module, e.g. {"steam": "DEBUG"}
    HANDLER_LOG_LEVELS: dict[str, str] = field(default_factory=dict)

    # API KEYS
    STEAM_API_KEY: str | None = None

    STEAM_PATH: Path | None = None
    STEAM_USER_ID: str | None = None
    DOLPHIN_PATH: Path | None = None

    # Default enumeration filters
    INSTALLED_ONLY: bool = False
    BASE_ONLY: bool = False
    OWNED_ONLY: bool = False
    GAMES_ONLY: bool = False

    def __post_init__(self):
        """Load settings file and environment overrides after instantiation."""
        load_dotenv()

        if self.DATA_DIR is None:
            env_dir = os.getenv("GAMECOLLECTOR_DATA_DIR")
            self.DATA_DIR = Path(env_dir) if env_dir else _default_data_dir()
        if self.SETTINGS_FILE is None:
            self.SETTINGS_FILE = self.DATA_DIR / "settings.json"

        self._load_settings()

        env_key = os.getenv("STEAM_API_KEY")
        if env_key:
            self.STEAM_API_KEY = env_key
        env_user = os.getenv("STEAM_USER_ID")
        if env_user:
            self.STEAM_USER_ID = env_user
        env_dolphin = os.getenv("DOLPHIN_PATH")
        if env_dolphin:
            self.DOLPHIN_PATH = Path(env_dolphin)
        env_level = os.getenv("GAMECOLLECTOR_LOG_LEVEL", "").upper()
        if env_level in _LOG_LEVELS:
            self.LOG_LEVEL = env_level
        env_handler_levels = os.getenv("GAMECOLLECTOR_HANDLER_LOG_LEVELS")
        if env_handler_levels:
            self.HANDLER_LOG_LEVELS.update(_parse_handler_levels(env_handler_levels))

    def _load_settings(self) -> None:
        """Load settings from JSON file."""
        if not self.SETTINGS_FILE.exists():
            return

        try:
            with open(self.SETTINGS_FILE, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load settings from %s: %s", self.SETTINGS_FILE, e)
            return

        steam_path = data.get("steam_path")
        if steam_path:
            self.STEAM_PATH = Path(steam_path)
        dolphin_path = data.get("dolphin_path")
        if dolphin_path:
            self.DOLPHIN_PATH = Path(dolphin_path)
        log_file = data.get("log_file")
        if log_file:
            self.LOG_FILE = Path(log_file)

        self.STEAM_API_KEY = data.get("steam_api_key", self.STEAM_API_KEY)
        self.STEAM_USER_ID = data.get("steam_user_id", self.STEAM_USER_ID)
        self.LOG_LEVEL = data.get("log_level", self.LOG_LEVEL)
        handler_levels = data.get("handler_log_levels")
        if isinstance(handler_levels, dict):
            for name, level in handler_levels.items():
                if str(level).upper() in _LOG_LEVELS:
                    self.HANDLER_LOG_LEVELS[name] = str(level).upper()
        self.INSTALLED_ONLY = data.get("installed_only", self.INSTALLED_ONLY)
        self.BASE_ONLY = data.get("base_only", self.BASE_ONLY)
        self.OWNED_ONLY = data.get("owned_only", self.OWNED_ONLY)
        self.GAMES_ONLY = data.get("games_only", self.GAMES_ONLY)

    def save(self) -> None:
        """Save current configuration to JSON file."""
        data = {
            "steam_path": str(self.STEAM_PATH) if self.STEAM_PATH else "",
            "dolphin_path": str(self.DOLPHIN_PATH) if self.DOLPHIN_PATH else "",
            "log_file": str(self.LOG_FILE) if self.LOG_FILE else "",
            "log_level": self.LOG_LEVEL,
            "handler_log_levels": self.HANDLER_LOG_LEVELS,
            "steam_api_key": self.STEAM_API_KEY,
            "steam_user_id": self.STEAM_USER_ID,
            "installed_only": self.INSTALLED_ONLY,
            "base_only": self.BASE_ONLY,
            "owned_only": self.OWNED_ONLY,
            "games_only": self.GAMES_ONLY,
        }

        try:
            self.SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
            with open(self.SETTINGS_FILE, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error("Failed to save settings to %s: %s", self.SETTINGS_FILE, e)

    def to_settings(self) -> Settings:
        """Build enumeration Settings from the configured filters."""
        return Settings(
            installed_only=self.INSTALLED_ONLY,
            base_only=self.BASE_ONLY,
            owned_only=self.OWNED_ONLY,
            games_only=self.GAMES_ONLY,
        )


_config: Config | None = None


def get_config() -> Config:
    """Return the shared Config, creating it on first use."""
    global _config
    if _config is None:
        _config = Config()
    return _config
