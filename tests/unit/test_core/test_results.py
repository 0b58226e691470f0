# tests/unit/test_core/test_results.py

"""Tests for result stream helpers."""

from gamecollector.core.game import ErrorMessage, GameData, Handler
from gamecollector.core.results import split_results, to_game_dict


def _game(game_id: str, name: str = "Game") -> GameData:
    return GameData(handler=Handler.STORE_ITCH, game_id=game_id, game_name=name)


class TestSplitResults:
    """Tests for split_results."""

    def test_separates_games_and_errors_in_order(self) -> None:
        """Games and errors keep their relative order."""
        error = ErrorMessage("broken")
        results = [_game("1"), error, _game("2")]
        games, errors = split_results(results)
        assert [g.game_id for g in games] == ["1", "2"]
        assert errors == [error]

    def test_empty(self) -> None:
        assert split_results([]) == ([], [])


class TestToGameDict:
    """Tests for to_game_dict."""

    def test_first_duplicate_wins_case_insensitive(self) -> None:
        """IDs differing only in case collapse to the first record."""
        games = to_game_dict([_game("ABC", "First"), ErrorMessage("x"), _game("abc", "Second")])
        assert list(games) == ["abc"]
        assert games["abc"].game_name == "First"
