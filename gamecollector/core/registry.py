# gamecollector/core/registry.py

"""Read-only access to the Windows registry.

Handlers receive a Registry instead of calling winreg directly, so the
same code runs against the live registry on Windows and against an
InMemoryRegistry in tests or on other platforms.
"""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

if sys.platform == "win32":
    import winreg

__all__ = [
    "InMemoryRegistry",
    "Registry",
    "RegistryHive",
    "RegistryKey",
    "RegistryView",
    "WindowsRegistry",
    "default_registry",
]

logger = logging.getLogger("gamecollector.registry")


class RegistryHive(Enum):
    """Top-level registry keys, valued by their HKEY_ names."""

    CLASSES_ROOT = "HKEY_CLASSES_ROOT"
    CURRENT_USER = "HKEY_CURRENT_USER"
    LOCAL_MACHINE = "HKEY_LOCAL_MACHINE"
    USERS = "HKEY_USERS"

    @classmethod
    def from_name(cls, name: str) -> RegistryHive | None:
        """Resolve a hive from its long or short name (e.g. "HKLM").

        Args:
            name: Hive name as written in vendor files.

        Returns:
            The matching hive, or None.
        """
        upper = name.upper()
        for hive in cls:
            if upper == hive.value:
                return hive
        return _SHORT_HIVE_NAMES.get(upper)


_SHORT_HIVE_NAMES: dict[str, RegistryHive] = {
    "HKCR": RegistryHive.CLASSES_ROOT,
    "HKCU": RegistryHive.CURRENT_USER,
    "HKLM": RegistryHive.LOCAL_MACHINE,
    "HKU": RegistryHive.USERS,
}


class RegistryView(Enum):
    """Which registry view to open on 64-bit Windows."""

    DEFAULT = "default"
    REGISTRY32 = "32"
    REGISTRY64 = "64"


class RegistryKey(ABC):
    """A single opened registry key."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Full path of the key, including the hive name."""

    @abstractmethod
    def get_sub_key_names(self) -> list[str]:
        """Return the names of the direct sub-keys."""

    @abstractmethod
    def open_sub_key(self, path: str) -> RegistryKey | None:
        """Open a sub-key by relative path (backslash-separated).

        Returns:
            The sub-key, or None if it does not exist.
        """

    @abstractmethod
    def get_value_names(self) -> list[str]:
        """Return the names of the values stored in this key."""

    @abstractmethod
    def get_value(self, name: str) -> Any | None:
        """Return a raw value, or None if it does not exist."""

    def get_string(self, name: str) -> str | None:
        value = self.get_value(name)
        return value if isinstance(value, str) else None

    def get_int(self, name: str) -> int | None:
        value = self.get_value(name)
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value


class Registry(ABC):
    """Entry point to a registry tree."""

    @abstractmethod
    def open_base_key(self, hive: RegistryHive, view: RegistryView = RegistryView.DEFAULT) -> RegistryKey:
        """Open the root key of a hive."""

    def open_key(
        self,
        hive: RegistryHive,
        path: str,
        view: RegistryView = RegistryView.DEFAULT,
    ) -> RegistryKey | None:
        """Open a key below a hive root.

        Args:
            hive: Hive to start from.
            path: Backslash-separated key path.
            view: 32/64-bit registry view.

        Returns:
            The key, or None if it does not exist.
        """
        return self.open_base_key(hive, view).open_sub_key(path)


class _WindowsRegistryKey(RegistryKey):
    def __init__(self, hive: RegistryHive, path: str, access: int) -> None:
        self._hive = hive
        self._path = path
        self._access = access

    @property
    def name(self) -> str:
        return f"{self._hive.value}\\{self._path}" if self._path else self._hive.value

    def _open(self):
        return winreg.OpenKey(_WINREG_HIVES[self._hive], self._path, 0, self._access)

    def get_sub_key_names(self) -> list[str]:
        names: list[str] = []
        try:
            with self._open() as key:
                count = winreg.QueryInfoKey(key)[0]
                for i in range(count):
                    names.append(winreg.EnumKey(key, i))
        except OSError as e:
            logger.debug("Failed to enumerate sub-keys of %s: %s", self.name, e)
        return names

    def open_sub_key(self, path: str) -> RegistryKey | None:
        path = path.strip("\\")
        full = f"{self._path}\\{path}" if self._path else path
        try:
            with winreg.OpenKey(_WINREG_HIVES[self._hive], full, 0, self._access):
                pass
        except OSError:
            return None
        return _WindowsRegistryKey(self._hive, full, self._access)

    def get_value_names(self) -> list[str]:
        names: list[str] = []
        try:
            with self._open() as key:
                count = winreg.QueryInfoKey(key)[1]
                for i in range(count):
                    names.append(winreg.EnumValue(key, i)[0])
        except OSError as e:
            logger.debug("Failed to enumerate values of %s: %s", self.name, e)
        return names

    def get_value(self, name: str) -> Any | None:
        try:
            with self._open() as key:
                return winreg.QueryValueEx(key, name)[0]
        except OSError:
            return None


if sys.platform == "win32":
    _WINREG_HIVES = {
        RegistryHive.CLASSES_ROOT: winreg.HKEY_CLASSES_ROOT,
        RegistryHive.CURRENT_USER: winreg.HKEY_CURRENT_USER,
        RegistryHive.LOCAL_MACHINE: winreg.HKEY_LOCAL_MACHINE,
        RegistryHive.USERS: winreg.HKEY_USERS,
    }


class WindowsRegistry(Registry):
    """The live Windows registry, read through winreg."""

    def __init__(self) -> None:
        if sys.platform != "win32":
            raise OSError("The Windows registry is only available on Windows")

    def open_base_key(self, hive: RegistryHive, view: RegistryView = RegistryView.DEFAULT) -> RegistryKey:
        access = winreg.KEY_READ
        if view is RegistryView.REGISTRY32:
            access |= winreg.KEY_WOW64_32KEY
        elif view is RegistryView.REGISTRY64:
            access |= winreg.KEY_WOW64_64KEY
        return _WindowsRegistryKey(hive, "", access)


class _MemoryKey(RegistryKey):
    def __init__(self, name: str) -> None:
        self._name = name
        self._sub_keys: dict[str, _MemoryKey] = {}
        self._values: dict[str, tuple[str, Any]] = {}

    @property
    def name(self) -> str:
        return self._name

    def get_sub_key_names(self) -> list[str]:
        return [key.name.rsplit("\\", 1)[-1] for key in self._sub_keys.values()]

    def open_sub_key(self, path: str) -> RegistryKey | None:
        key: _MemoryKey | None = self
        for part in _split_path(path):
            key = key._sub_keys.get(part.casefold())
            if key is None:
                return None
        return key

    def get_value_names(self) -> list[str]:
        return [name for name, _ in self._values.values()]

    def get_value(self, name: str) -> Any | None:
        entry = self._values.get(name.casefold())
        return entry[1] if entry else None

    def create_sub_key(self, path: str) -> _MemoryKey:
        key = self
        for part in _split_path(path):
            child = key._sub_keys.get(part.casefold())
            if child is None:
                child = _MemoryKey(f"{key.name}\\{part}")
                key._sub_keys[part.casefold()] = child
            key = child
        return key

    def set_value(self, name: str, value: Any) -> None:
        self._values[name.casefold()] = (name, value)


def _split_path(path: str) -> list[str]:
    return [part for part in path.split("\\") if part]


class InMemoryRegistry(Registry):
    """A registry held in memory.

    Lookups are case-insensitive like the real registry. The 32/64-bit
    view is ignored: all views share one tree per hive.
    """

    def __init__(self) -> None:
        self._roots: dict[RegistryHive, _MemoryKey] = {hive: _MemoryKey(hive.value) for hive in RegistryHive}

    def open_base_key(self, hive: RegistryHive, view: RegistryView = RegistryView.DEFAULT) -> RegistryKey:
        return self._roots[hive]

    def add_key(self, hive: RegistryHive, path: str) -> _MemoryKey:
        """Create a key (and any missing parents).

        Returns:
            The created or existing key.
        """
        return self._roots[hive].create_sub_key(path)

    def add_value(self, hive: RegistryHive, path: str, name: str, value: Any) -> None:
        """Set a value, creating the key if needed."""
        self.add_key(hive, path).set_value(name, value)


def default_registry() -> Registry:
    """Return the live registry on Windows, an empty one elsewhere."""
    if sys.platform == "win32":
        return WindowsRegistry()
    return InMemoryRegistry()
