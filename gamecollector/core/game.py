# gamecollector/core/game.py

"""Common data model shared by every handler.

Defines the GameData record each handler emits, the ErrorMessage that
stands in for a game when parsing fails, and the Settings flags that
filter enumeration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import TypeAlias, Union

__all__ = [
    "ErrorMessage",
    "FormatPolicy",
    "GameData",
    "GameResult",
    "Handler",
    "Problem",
    "SchemaPolicy",
    "Settings",
]


class Handler(Enum):
    """Identifies the handler that produced a game record."""

    STORE_AMAZON = "Amazon Games"
    STORE_EA_DESKTOP = "EA Desktop"
    STORE_EGS = "Epic Games Store"
    STORE_GOG = "GOG Galaxy"
    STORE_HUMBLE = "Humble App"
    STORE_ITCH = "itch"
    STORE_LEGACY = "Legacy Games"
    STORE_OCULUS = "Oculus"
    STORE_ORIGIN = "Origin"
    STORE_PARADOX = "Paradox Launcher"
    STORE_RIOT = "Riot Client"
    STORE_STEAM = "Steam"
    STORE_UBISOFT = "Ubisoft Connect"
    STORE_XBOX = "Xbox"
    EMU_DOLPHIN = "Dolphin"


class Problem(Enum):
    """Known conditions that keep a game from launching normally."""

    INSTALL_PENDING = "install_pending"
    NOT_FOUND_IN_DATA = "not_found_in_data"
    NOT_FOUND_ON_DISK = "not_found_on_disk"
    EXPIRED_TRIAL = "expired_trial"
    DOES_NOT_MEET_REQUIREMENTS = "does_not_meet_requirements"
    FAILED_TO_VERIFY = "failed_to_verify"


@dataclass(frozen=True)
class GameData:
    """A game found by one of the handlers.

    Args:
        handler: Handler that found the game.
        game_id: Vendor-specific unique ID.
        game_name: Display name of the game.
        game_path: Installation directory.
        save_path: Directory holding save data, when the vendor records one.
        launch: Executable used to start the game.
        launch_args: Arguments passed to ``launch``.
        launch_url: Protocol URL that starts the game through its client.
        icon: Icon file (often the executable itself).
        uninstall: Uninstaller executable.
        uninstall_args: Arguments passed to ``uninstall``.
        uninstall_url: Protocol URL that uninstalls the game.
        install_date: When the game was installed.
        last_run_date: When the game was last started.
        num_runs: Number of recorded launches.
        run_time: Total recorded play time.
        is_installed: Whether the game is present on disk.
        is_hidden: Whether the user hid the game in its client.
        is_owned: Whether the user still owns or may run the game.
        problems: Known problems with the game.
        tags: User-assigned tags or categories.
        my_rating: User rating, 0 when unset.
        base_game: ID of the parent game when this entry is DLC.
        metadata: Additional vendor-specific values keyed by field name.
            Not part of the record's hash.
    """

    handler: Handler
    game_id: str
    game_name: str
    game_path: Path | None = None
    save_path: Path | None = None
    launch: Path | None = None
    launch_args: str = ""
    launch_url: str = ""
    icon: Path | None = None
    uninstall: Path | None = None
    uninstall_args: str = ""
    uninstall_url: str = ""
    install_date: datetime | None = None
    last_run_date: datetime | None = None
    num_runs: int = 0
    run_time: timedelta | None = None
    is_installed: bool = True
    is_hidden: bool = False
    is_owned: bool = True
    problems: tuple[Problem, ...] = ()
    tags: tuple[str, ...] = ()
    my_rating: int = 0
    base_game: str | None = None
    metadata: dict[str, list[str]] = field(default_factory=dict, hash=False)

    @property
    def has_problem(self) -> bool:
        """True if any Problem was recorded for this game."""
        return bool(self.problems)

    @property
    def is_dlc(self) -> bool:
        """True if the entry is a DLC or add-on of another game."""
        return self.base_game is not None


@dataclass(frozen=True)
class ErrorMessage:
    """Describes why a game (or a whole source) could not be read.

    Args:
        message: Human-readable description.
        exception: The exception that caused the failure, if any.
    """

    message: str
    exception: BaseException | None = field(default=None, compare=False)

    def __str__(self) -> str:
        if self.exception is None:
            return self.message
        return f"{self.message}: {self.exception}"


GameResult: TypeAlias = Union[GameData, ErrorMessage]


@dataclass(frozen=True)
class Settings:
    """Filters applied while enumerating games.

    Args:
        installed_only: Skip games that are not installed.
        base_only: Skip DLC and add-ons.
        owned_only: Skip games the user no longer owns (expired trials,
            lapsed subscriptions).
        games_only: Skip non-game entries such as tools, assets and source code.
    """

    installed_only: bool = False
    base_only: bool = False
    owned_only: bool = False
    games_only: bool = False


class FormatPolicy(Enum):
    """How to treat vendor files whose format version is not the supported one.

    WARN logs a warning and parses the file anyway, ERROR reports the file
    as an error entry, IGNORE parses it silently.
    """

    WARN = "warn"
    ERROR = "error"
    IGNORE = "ignore"


SchemaPolicy = FormatPolicy
