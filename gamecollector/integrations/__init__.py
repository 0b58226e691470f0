# gamecollector/integrations/__init__.py

from __future__ import annotations

__all__: list[str] = ["OwnedGame", "SteamWebAPI"]

from gamecollector.integrations.steam_web_api import OwnedGame, SteamWebAPI
