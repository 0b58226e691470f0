#!/usr/bin/env python3
# gamecollector/main.py

"""GameCollector - command line entry point.

Enumerates games from every available handler (or the ones selected with
--handler) and prints one line per game.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Iterable
from dataclasses import replace
from pathlib import Path

from gamecollector.config import get_config
from gamecollector.core.game import ErrorMessage, GameData, GameResult
from gamecollector.core.logging import logger, setup_logging
from gamecollector.integrations.handlers import get_all_handlers
from gamecollector.version import __app_name__, __version__

__all__ = ["build_parser", "format_game", "main"]


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="gamecollector",
        description="List games installed or owned through PC storefronts and emulators.",
    )
    parser.add_argument("--version", action="version", version=f"{__app_name__} {__version__}")
    parser.add_argument("--installed", action="store_true", help="only list installed games")
    parser.add_argument("--base", action="store_true", help="skip DLC and add-ons")
    parser.add_argument("--owned", action="store_true", help="skip games that are no longer owned")
    parser.add_argument("--games", action="store_true", help="skip tools, assets and source code")
    parser.add_argument(
        "--handler",
        action="append",
        metavar="NAME",
        help="only run this handler (repeatable), e.g. 'Steam' or 'STORE_GOG'",
    )
    parser.add_argument("--steam-api-key", metavar="KEY", help="Steam Web API key for owned games")
    parser.add_argument("--log-file", type=Path, metavar="PATH", help="also write debug logs to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


def format_game(game: GameData) -> str:
    """Render a game as a single output line."""
    line = f"{game.handler.value}: {game.game_name} [{game.game_id}]"
    if game.game_path is not None:
        line += f" {game.game_path}"
    flags = []
    if not game.is_installed:
        flags.append("not installed")
    if game.is_dlc:
        flags.append("DLC")
    if not game.is_owned:
        flags.append("not owned")
    flags.extend(problem.value for problem in game.problems)
    if flags:
        line += f" ({', '.join(flags)})"
    return line


def _matches(name: str, selected: set[str], handler_key: str) -> bool:
    return name.casefold() in selected or handler_key.casefold() in selected


def main(argv: list[str] | None = None) -> int:
    """Main command line flow.

    Args:
        argv: Arguments without the program name. Defaults to sys.argv.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)
    config = get_config()

    level = logging.DEBUG if args.verbose else getattr(logging, config.LOG_LEVEL, logging.INFO)
    setup_logging(level=level, log_file=args.log_file or config.LOG_FILE, handler_levels=config.HANDLER_LOG_LEVELS)

    if args.steam_api_key:
        config.STEAM_API_KEY = args.steam_api_key

    defaults = config.to_settings()
    settings = replace(
        defaults,
        installed_only=defaults.installed_only or args.installed,
        base_only=defaults.base_only or args.base,
        owned_only=defaults.owned_only or args.owned,
        games_only=defaults.games_only or args.games,
    )

    handlers = get_all_handlers(config=config)
    selected = {name.casefold() for name in args.handler or []}
    if selected:
        handlers = {
            name: handler for name, handler in handlers.items() if _matches(name, selected, handler.handler.name)
        }
        if not handlers:
            logger.warning("No handler matches %s", ", ".join(sorted(args.handler)))

    total = 0
    for name, handler in handlers.items():
        if not selected and not handler.is_available():
            logger.debug("* %s: not available", name)
            continue
        logger.debug("* %s", name)
        total += _print_games(name, handler.find_all_games(settings))

    logger.info("Found %d games in total", total)
    return 0


def _print_games(name: str, results: Iterable[GameResult]) -> int:
    count = 0
    for result in results:
        if isinstance(result, ErrorMessage):
            logger.warning("%s: %s", name, result)
            continue
        print(format_game(result))
        count += 1
    return count


if __name__ == "__main__":
    sys.exit(main())
