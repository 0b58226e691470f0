# gamecollector/integrations/handlers/base_handler.py

"""Abstract base class for storefront and emulator handlers.

All handlers inherit from BaseHandler and implement is_available() and
find_all_games(). Lookup by ID and duplicate detection are shared.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from pathlib import Path
from typing import ClassVar

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Settings
from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.registry import Registry, default_registry

__all__ = ["BaseHandler"]

logger = logging.getLogger("gamecollector.handlers")


class BaseHandler(ABC):
    """Abstract base class for game handlers.

    Subclasses set ``handler`` and read one vendor's local metadata.
    The registry and known directories are injected so the same code
    runs against the live system and against test fixtures.

    Attributes:
        handler: Identifies the vendor in produced records.
    """

    handler: ClassVar[Handler]

    def __init__(self, registry: Registry | None = None, known_paths: KnownPaths | None = None) -> None:
        """Initialize the handler.

        Args:
            registry: Registry to read. Defaults to the live registry.
            known_paths: Well-known directories. Defaults to the current
                environment.
        """
        self.registry: Registry = registry if registry is not None else default_registry()
        self.known_paths: KnownPaths = known_paths if known_paths is not None else KnownPaths.from_environment()

    def platform_name(self) -> str:
        """Return human-readable platform name.

        Returns:
            Platform identifier string.
        """
        return self.handler.value

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this platform's data is present on this machine.

        Returns:
            True if the platform's registry keys or data files exist.
        """

    @abstractmethod
    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        """Enumerate games from this platform.

        Failures affecting a single entry yield an ErrorMessage and
        enumeration continues with the next entry.

        Args:
            settings: Filters to apply. Defaults to no filtering.

        Yields:
            A GameData or an ErrorMessage per entry.
        """

    def find_client(self) -> Path | None:
        """Return the platform's launcher executable, if known."""
        return None

    def normalize_id(self, game_id: str) -> str:
        """Return the form of an ID used for equality checks."""
        return game_id.casefold()

    def find_all_games_by_id(
        self, settings: Settings | None = None
    ) -> tuple[dict[str, GameData], list[ErrorMessage]]:
        """Enumerate games keyed by normalized ID.

        Only the first game with a given ID is kept; later ones are
        reported as errors.

        Args:
            settings: Filters to apply.

        Returns:
            Tuple of (games by normalized ID, errors).
        """
        games: dict[str, GameData] = {}
        errors: list[ErrorMessage] = []
        for result in self.find_all_games(settings):
            if isinstance(result, ErrorMessage):
                errors.append(result)
                continue

            key = self.normalize_id(result.game_id)
            if key in games:
                errors.append(ErrorMessage(f"Duplicate game ID {result.game_id} ({result.game_name})"))
                continue
            games[key] = result
        return games, errors

    def find_one_game_by_id(self, game_id: str, settings: Settings | None = None) -> GameData | None:
        """Find a single game by its ID.

        Args:
            game_id: Vendor-specific ID, compared via normalize_id().
            settings: Filters to apply.

        Returns:
            The game, or None if no game with that ID was found.
        """
        games, errors = self.find_all_games_by_id(settings)
        for error in errors:
            logger.debug("%s: %s", self.platform_name(), error)
        return games.get(self.normalize_id(game_id))
