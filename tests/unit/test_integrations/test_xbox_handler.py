# tests/unit/test_integrations/test_xbox_handler.py

"""Tests for the Xbox handler."""

from __future__ import annotations

import struct
from pathlib import Path

import pytest

from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.registry import InMemoryRegistry
from gamecollector.core.results import split_results
from gamecollector.integrations.handlers.xbox_handler import GAMING_ROOT_MAGIC, XboxHandler, parse_gaming_root

MANIFEST = """<?xml version="1.0" encoding="utf-8"?>
<Package xmlns="http://schemas.microsoft.com/appx/manifest/foundation/windows10">
  <Identity Name="{name}" Publisher="CN=Studio" Version="1.0.0.0" />
  <Properties>
    <DisplayName>{display_name}</DisplayName>
    <PublisherDisplayName>Xbox Game Studios</PublisherDisplayName>
    <Logo>Images\\StoreLogo.png</Logo>
  </Properties>
  <Applications>
    <Application Id="Game" Executable="bin\\game.exe" />
  </Applications>
</Package>
"""


def _gaming_root(*folders: str, magic: int = GAMING_ROOT_MAGIC) -> bytes:
    data = struct.pack("<II", magic, len(folders))
    for folder in folders:
        data += folder.encode("utf-16-le") + b"\x00\x00"
    return data


class TestParseGamingRoot:
    """Tests for the binary .GamingRoot format."""

    def test_reads_folders(self, tmp_path: Path) -> None:
        """Folder names are UTF-16LE strings relative to the drive root."""
        gaming_root = tmp_path / ".GamingRoot"
        gaming_root.write_bytes(_gaming_root("XboxGames", "More\\Games"))
        assert parse_gaming_root(gaming_root) == [tmp_path / "XboxGames", tmp_path / "More" / "Games"]

    def test_bad_magic(self, tmp_path: Path) -> None:
        """A wrong magic number is rejected."""
        gaming_root = tmp_path / ".GamingRoot"
        gaming_root.write_bytes(_gaming_root("XboxGames", magic=0x12345678))
        with pytest.raises(ValueError, match="magic"):
            parse_gaming_root(gaming_root)

    def test_too_many_folders(self, tmp_path: Path) -> None:
        """Implausible folder counts are rejected."""
        gaming_root = tmp_path / ".GamingRoot"
        gaming_root.write_bytes(struct.pack("<II", GAMING_ROOT_MAGIC, 300))
        with pytest.raises(ValueError, match="limit"):
            parse_gaming_root(gaming_root)

    def test_unterminated_string(self, tmp_path: Path) -> None:
        """A folder name without its terminator is rejected."""
        gaming_root = tmp_path / ".GamingRoot"
        gaming_root.write_bytes(struct.pack("<II", GAMING_ROOT_MAGIC, 1) + "XboxGames".encode("utf-16-le"))
        with pytest.raises(ValueError, match="Unterminated"):
            parse_gaming_root(gaming_root)

    def test_truncated_header(self, tmp_path: Path) -> None:
        """A file shorter than the header is rejected."""
        gaming_root = tmp_path / ".GamingRoot"
        gaming_root.write_bytes(b"RGB")
        with pytest.raises(ValueError):
            parse_gaming_root(gaming_root)


class TestXboxHandler:
    """Tests for app folder discovery and appxmanifest.xml parsing."""

    def _write_manifest(self, directory: Path, name: str, display_name: str) -> None:
        directory.mkdir(parents=True)
        (directory / "appxmanifest.xml").write_text(
            MANIFEST.format(name=name, display_name=display_name), encoding="utf-8"
        )

    def test_no_app_folders(self, registry: InMemoryRegistry, known_paths: KnownPaths) -> None:
        """Without app folders there is a single error."""
        handler = XboxHandler(registry, known_paths)
        games, errors = split_results(handler.find_all_games())
        assert not handler.is_available()
        assert games == []
        assert len(errors) == 1

    def test_games_from_gaming_root(self, registry: InMemoryRegistry, known_paths: KnownPaths, tmp_path: Path) -> None:
        """Games in .GamingRoot folders are read from their manifests."""
        (tmp_path / ".GamingRoot").write_bytes(_gaming_root("XboxGames"))
        halo_dir = tmp_path / "XboxGames" / "Halo"
        self._write_manifest(halo_dir / "Content", "Microsoft.Halo", "Halo")
        (tmp_path / "XboxGames" / "Empty").mkdir()

        handler = XboxHandler(registry, known_paths)
        games, errors = split_results(handler.find_all_games())

        assert handler.is_available()
        assert len(games) == 1
        assert len(errors) == 1
        assert "no Content folder" in errors[0].message

        game = games[0]
        assert game.game_id == "Microsoft.Halo"
        assert game.game_name == "Halo"
        assert game.game_path == halo_dir / "Content"
        assert game.launch == halo_dir / "Content" / "bin" / "game.exe"
        assert game.icon == halo_dir / "Content" / "Images" / "StoreLogo.png"
        assert game.metadata["Publishers"] == ["Xbox Game Studios"]

    def test_modifiable_windows_apps(self, registry: InMemoryRegistry, known_paths: KnownPaths, tmp_path: Path) -> None:
        """ModifiableWindowsApps is scanned with manifests directly in the game folder."""
        apps = tmp_path / "Program Files" / "ModifiableWindowsApps"
        self._write_manifest(apps / "Forza", "Microsoft.Forza", "Forza")

        games, errors = split_results(XboxHandler(registry, known_paths).find_all_games())
        assert errors == []
        assert [game.game_id for game in games] == ["Microsoft.Forza"]
        assert games[0].game_path == apps / "Forza"

    def test_broken_manifest_and_gaming_root(
        self, registry: InMemoryRegistry, known_paths: KnownPaths, tmp_path: Path
    ) -> None:
        """Unreadable manifests and .GamingRoot files are reported."""
        (tmp_path / ".GamingRoot").write_bytes(b"garbage!")
        apps = tmp_path / "Program Files" / "ModifiableWindowsApps"
        (apps / "Broken").mkdir(parents=True)
        (apps / "Broken" / "appxmanifest.xml").write_text("<Package>", encoding="utf-8")

        games, errors = split_results(XboxHandler(registry, known_paths).find_all_games())
        assert games == []
        assert len(errors) == 2
        assert "gaming root" in errors[0].message
        assert "Unable to parse manifest" in errors[1].message
