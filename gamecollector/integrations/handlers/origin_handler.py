# gamecollector/integrations/handlers/origin_handler.py

"""Handler for games installed through the legacy Origin client.

Each installed game has a *.mfst file under ProgramData/Origin/LocalContent
holding a URL query string with the content id and install path.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path, PureWindowsPath
from urllib.parse import parse_qs

from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, Settings
from gamecollector.core.logging import get_handler_logger
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.exe_finder import find_exe
from gamecollector.utils.path_utils import is_rooted

__all__ = ["OriginHandler"]

logger = get_handler_logger("origin")


class OriginHandler(BaseHandler):
    """Handler for Origin *.mfst manifests."""

    handler = Handler.STORE_ORIGIN

    def get_manifest_dir(self) -> Path:
        """Folder Origin writes its .mfst download manifests to."""
        return self.known_paths.common_application_data / "Origin" / "LocalContent"

    def is_available(self) -> bool:
        """True if the manifest directory exists."""
        return self.get_manifest_dir().is_dir()

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        manifest_dir = self.get_manifest_dir()
        if not manifest_dir.is_dir():
            yield ErrorMessage(f"Manifest folder {manifest_dir} does not exist")
            return

        mfst_files = sorted(manifest_dir.rglob("*.mfst"))
        if not mfst_files:
            yield ErrorMessage(f"Manifest folder {manifest_dir} does not contain any .mfst files")
            return

        count = 0
        for mfst_file in mfst_files:
            result = self._parse_mfst_file(mfst_file)
            if result is None:
                continue
            if isinstance(result, GameData):
                count += 1
            yield result

        logger.info("Found %d games in Origin", count)

    def _parse_mfst_file(self, mfst_file: Path) -> GameResult | None:
        """Parse a single manifest.

        Returns:
            The game, an ErrorMessage, or None for games Origin manages
            through Steam.
        """
        try:
            contents = mfst_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ErrorMessage(f"Exception while parsing {mfst_file}", e)

        query = parse_qs(contents.strip().lstrip("?"))

        # Some manifests repeat keys; the first id wins
        ids = query.get("id")
        if not ids:
            return ErrorMessage(f'Manifest {mfst_file} does not have a value "id"')
        game_id = ids[0].split(",")[0]
        if game_id.casefold().endswith("@steam"):
            logger.debug("Skipping Steam-managed Origin entry %s", game_id)
            return None

        install_paths = query.get("dipInstallPath")
        if not install_paths:
            return ErrorMessage(f'Manifest {mfst_file} does not have a value "dipInstallPath"')
        install_path = max(install_paths, key=len)
        if not is_rooted(install_path):
            return ErrorMessage(f"Manifest {mfst_file} has an invalid install path: {install_path}")

        install_path = install_path.rstrip("\\/")
        game_path = Path(install_path)
        name = PureWindowsPath(install_path).name or game_id
        exe = find_exe(game_path, name) if game_path.is_dir() else None

        metadata: dict[str, list[str]] = {}
        state = (query.get("currentstate") or [""])[0]
        if state:
            metadata["State"] = [state]

        return GameData(
            handler=self.handler,
            game_id=game_id,
            game_name=name,
            game_path=game_path,
            launch=exe,
            icon=exe,
            is_installed=game_path.is_dir(),
            metadata=metadata,
        )
