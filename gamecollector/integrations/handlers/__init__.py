# gamecollector/integrations/handlers/__init__.py

"""Storefront and emulator handlers.

get_all_handlers() builds one instance of every handler, wired with the
shared registry, known directories and configured credentials.
"""

from __future__ import annotations

import logging

from gamecollector.config import Config
from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.registry import Registry, default_registry
from gamecollector.integrations.handlers.amazon_handler import AmazonHandler
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.integrations.handlers.dolphin_handler import DolphinHandler
from gamecollector.integrations.handlers.ea_desktop_handler import EADesktopHandler
from gamecollector.integrations.handlers.egs_handler import EGSHandler
from gamecollector.integrations.handlers.gog_handler import GOGHandler
from gamecollector.integrations.handlers.humble_handler import HumbleHandler
from gamecollector.integrations.handlers.itch_handler import ItchHandler
from gamecollector.integrations.handlers.legacy_handler import LegacyHandler
from gamecollector.integrations.handlers.oculus_handler import OculusHandler
from gamecollector.integrations.handlers.origin_handler import OriginHandler
from gamecollector.integrations.handlers.paradox_handler import ParadoxHandler
from gamecollector.integrations.handlers.riot_handler import RiotHandler
from gamecollector.integrations.handlers.steam_handler import SteamHandler
from gamecollector.integrations.handlers.ubisoft_handler import UbisoftHandler
from gamecollector.integrations.handlers.xbox_handler import XboxHandler
from gamecollector.integrations.steam_web_api import SteamWebAPI

__all__ = [
    "AmazonHandler",
    "BaseHandler",
    "DolphinHandler",
    "EADesktopHandler",
    "EGSHandler",
    "GOGHandler",
    "HumbleHandler",
    "ItchHandler",
    "LegacyHandler",
    "OculusHandler",
    "OriginHandler",
    "ParadoxHandler",
    "RiotHandler",
    "SteamHandler",
    "UbisoftHandler",
    "XboxHandler",
    "get_all_handlers",
]

logger = logging.getLogger("gamecollector.handlers")


def get_all_handlers(
    registry: Registry | None = None,
    known_paths: KnownPaths | None = None,
    config: Config | None = None,
) -> dict[str, BaseHandler]:
    """Initialize every handler.

    The Steam Web API client is only created when an API key is
    configured; Dolphin is only included when its executable is.

    Args:
        registry: Registry shared by all handlers. Defaults to the live one.
        known_paths: Well-known directories. Defaults to the environment.
        config: Paths and credentials. Defaults to an empty Config.

    Returns:
        Dict mapping platform name to handler instance.
    """
    registry = registry if registry is not None else default_registry()
    known_paths = known_paths if known_paths is not None else KnownPaths.from_environment()

    steam_api: SteamWebAPI | None = None
    steam_path = None
    steam_user_id = None
    dolphin_path = None
    if config is not None:
        if config.STEAM_API_KEY:
            steam_api = SteamWebAPI(config.STEAM_API_KEY)
        steam_path = config.STEAM_PATH
        steam_user_id = config.STEAM_USER_ID
        dolphin_path = config.DOLPHIN_PATH

    handlers: list[BaseHandler] = [
        AmazonHandler(registry, known_paths),
        EADesktopHandler(registry, known_paths),
        EGSHandler(registry, known_paths),
        GOGHandler(registry, known_paths),
        HumbleHandler(registry, known_paths),
        ItchHandler(registry, known_paths),
        LegacyHandler(registry, known_paths),
        OculusHandler(registry, known_paths),
        OriginHandler(registry, known_paths),
        ParadoxHandler(registry, known_paths),
        RiotHandler(registry, known_paths),
        SteamHandler(registry, known_paths, steam_path=steam_path, api=steam_api, steam_user_id=steam_user_id),
        UbisoftHandler(registry, known_paths),
        XboxHandler(registry, known_paths),
    ]
    if dolphin_path is not None:
        handlers.append(DolphinHandler(registry, known_paths, dolphin_path=dolphin_path))
    else:
        logger.debug("Dolphin path not configured, skipping emulator handler")

    return {h.platform_name(): h for h in handlers}
