# gamecollector/core/results.py

"""Helpers for consuming handler result streams."""

from __future__ import annotations

from collections.abc import Iterable

from gamecollector.core.game import ErrorMessage, GameData, GameResult

__all__ = ["split_results", "to_game_dict"]


def split_results(results: Iterable[GameResult]) -> tuple[list[GameData], list[ErrorMessage]]:
    """Separate games from errors while keeping their order.

    Args:
        results: Output of a handler's find_all_games().

    Returns:
        Tuple of (games, errors).
    """
    games: list[GameData] = []
    errors: list[ErrorMessage] = []
    for result in results:
        if isinstance(result, ErrorMessage):
            errors.append(result)
        else:
            games.append(result)
    return games, errors


def to_game_dict(results: Iterable[GameResult]) -> dict[str, GameData]:
    """Index games by ID, ignoring errors and later duplicates.

    IDs are compared case-insensitively; the key is the casefolded ID.

    Args:
        results: Output of a handler's find_all_games().

    Returns:
        Dict mapping casefolded game ID to the first game with that ID.
    """
    games: dict[str, GameData] = {}
    for result in results:
        if isinstance(result, ErrorMessage):
            continue
        games.setdefault(result.game_id.casefold(), result)
    return games
