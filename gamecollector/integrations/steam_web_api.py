# gamecollector/integrations/steam_web_api.py

"""Steam Web API client for owned-games lookup.

Used by the Steam handler to report owned games that are not
installed. Requires a Steam Web API key and a public profile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

logger = logging.getLogger("gamecollector.steam_web_api")

__all__ = ["OwnedGame", "SteamWebAPI"]

_TIMEOUT = 10
_OWNED_GAMES_URL = "https://api.steampowered.com/IPlayerService/GetOwnedGames/v1/"
_PLAYER_SUMMARIES_URL = "https://api.steampowered.com/ISteamUser/GetPlayerSummaries/v2/"
_ICON_URL = "https://media.steampowered.com/steamcommunity/public/images/apps/{app_id}/{icon_hash}.jpg"

# communityvisibilitystate value of a public profile
_PUBLIC_PROFILE = 3


@dataclass(frozen=True)
class OwnedGame:
    """A game from the user's Steam library.

    Attributes:
        app_id: Steam application ID.
        name: Display name.
        playtime_minutes: Total play time in minutes.
        last_played: Unix timestamp of the last session, 0 if never.
        icon_url: Community icon URL, empty if unknown.
    """

    app_id: int
    name: str
    playtime_minutes: int = 0
    last_played: int = 0
    icon_url: str = ""


class SteamWebAPI:
    """Minimal Steam Web API client.

    Attributes:
        api_key: Steam Web API key for authentication.
    """

    def __init__(self, api_key: str) -> None:
        """Initializes the SteamWebAPI client.

        Args:
            api_key: Steam Web API key. Must not be empty.

        Raises:
            ValueError: If api_key is empty or whitespace-only.
        """
        if not api_key or not api_key.strip():
            raise ValueError("Steam API key must not be empty")
        self.api_key: str = api_key.strip()

    def get_player_summary(self, steam_id: str) -> dict[str, Any] | None:
        """Fetches the public profile summary of a user.

        Args:
            steam_id: SteamID64 of the user.

        Returns:
            The player dict, or None if the user was not found.

        Raises:
            requests.RequestException: On network or HTTP errors.
        """
        data = self._get(_PLAYER_SUMMARIES_URL, {"steamids": steam_id})
        players = data.get("response", {}).get("players", [])
        return players[0] if players else None

    def is_profile_public(self, steam_id: str) -> bool:
        """Whether the profile's community visibility state is public."""
        summary = self.get_player_summary(steam_id)
        return bool(summary) and summary.get("communityvisibilitystate") == _PUBLIC_PROFILE

    def get_owned_games(self, steam_id: str) -> list[OwnedGame]:
        """Fetches all games owned by a user, including free games played.

        Args:
            steam_id: SteamID64 of the user.

        Returns:
            List of owned games; empty if the profile hides them.

        Raises:
            requests.RequestException: On network or HTTP errors.
        """
        data = self._get(
            _OWNED_GAMES_URL,
            {
                "steamid": steam_id,
                "include_appinfo": 1,
                "include_played_free_games": 1,
            },
        )
        games_data = data.get("response", {}).get("games", [])
        logger.info("Steam Web API returned %d owned games", len(games_data))

        games: list[OwnedGame] = []
        for item in games_data:
            app_id = int(item.get("appid", 0))
            if not app_id:
                continue
            icon_hash = item.get("img_icon_url", "")
            games.append(
                OwnedGame(
                    app_id=app_id,
                    name=item.get("name") or str(app_id),
                    playtime_minutes=item.get("playtime_forever", 0),
                    last_played=item.get("rtime_last_played", 0),
                    icon_url=_ICON_URL.format(app_id=app_id, icon_hash=icon_hash) if icon_hash else "",
                )
            )
        return games

    def _get(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        """Performs a GET request and decodes the JSON response.

        Raises:
            requests.RequestException: On network or HTTP errors, or an
                undecodable body.
        """
        params = {"key": self.api_key, "format": "json", **params}
        try:
            response = requests.get(url, params=params, timeout=_TIMEOUT)
            response.raise_for_status()
            return response.json()
        except requests.ConnectionError:
            logger.error("Network error calling %s", url)
            raise
        except ValueError as e:
            raise requests.RequestException(f"Invalid JSON from {url}") from e
