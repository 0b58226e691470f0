# tests/conftest.py
from pathlib import Path

import pytest

from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.registry import InMemoryRegistry


@pytest.fixture
def known_paths(tmp_path: Path) -> KnownPaths:
    """Well-known directories mapped below tmp_path."""
    paths = KnownPaths.under(tmp_path)
    for directory in (
        paths.common_application_data,
        paths.application_data,
        paths.local_application_data,
        paths.my_documents,
    ):
        directory.mkdir(parents=True, exist_ok=True)
    return paths


@pytest.fixture
def registry() -> InMemoryRegistry:
    """Empty in-memory registry."""
    return InMemoryRegistry()


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep tests away from the user's .env, settings and Dolphin paths."""
    for name in (
        "STEAM_API_KEY",
        "STEAM_USER_ID",
        "DOLPHIN_PATH",
        "DOLPHIN_EMU_USERPATH",
        "GAMECOLLECTOR_LOG_LEVEL",
        "GAMECOLLECTOR_HANDLER_LOG_LEVELS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GAMECOLLECTOR_DATA_DIR", str(tmp_path / "gamecollector-data"))
    monkeypatch.setattr("gamecollector.config.load_dotenv", lambda *args, **kwargs: False)
