# gamecollector/core/errors.py

"""Exception types raised by GameCollector."""

from __future__ import annotations

__all__ = ["DecryptionError", "GameCollectorError", "SchemaVersionError"]


class GameCollectorError(Exception):
    """Base class for library errors."""


class SchemaVersionError(GameCollectorError):
    """A vendor file uses a schema version the reader does not support."""

    def __init__(self, path: str, found: int, supported: int) -> None:
        super().__init__(f"{path} has schema version {found}, supported version is {supported}")
        self.path = path
        self.found = found
        self.supported = supported


class DecryptionError(GameCollectorError):
    """An encrypted vendor file could not be decrypted."""
