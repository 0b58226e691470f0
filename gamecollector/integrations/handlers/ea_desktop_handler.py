# gamecollector/integrations/handlers/ea_desktop_handler.py

"""Handler for the EA app (formerly EA Desktop).

EA Desktop keeps its install list in an AES-encrypted JSON file whose key
is derived from the machine's hardware identifiers. The file lives in an
"all users" folder named after a SHA3-256 hash.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from Cryptodome.Cipher import AES
from Cryptodome.Util.Padding import unpad

from gamecollector.core.errors import DecryptionError, SchemaVersionError
from gamecollector.core.game import ErrorMessage, GameData, GameResult, Handler, SchemaPolicy, Settings
from gamecollector.core.known_paths import KnownPaths
from gamecollector.core.logging import get_handler_logger
from gamecollector.core.registry import Registry, RegistryHive, RegistryView
from gamecollector.integrations.handlers.base_handler import BaseHandler
from gamecollector.utils.hardware_info import HardwareInfo, HardwareInfoProvider, WmiHardwareInfoProvider
from gamecollector.utils.path_utils import is_rooted, to_path

__all__ = [
    "EADesktopHandler",
    "create_decryption_iv",
    "create_decryption_key",
    "decrypt_install_info",
]

logger = get_handler_logger("ea_desktop")

_ALL_USERS_GENERIC_ID = "allUsersGenericId"
_ALL_USERS_GENERIC_ID_IS = "allUsersGenericIdIS"
ALL_USERS_FOLDER_NAME = hashlib.sha3_256(_ALL_USERS_GENERIC_ID.encode("utf-8")).hexdigest()
INSTALL_INFO_FILE_NAME = "IS"
SUPPORTED_SCHEMA_VERSION = 21

# The encrypted payload starts after a 64-byte header
_HEADER_SIZE = 64

_CLIENT_KEY = r"Software\Electronic Arts\EA Desktop"


def create_decryption_key(hardware_info: HardwareInfo) -> bytes:
    """Derive the AES-256 key from the machine's hardware identity.

    Args:
        hardware_info: Identifiers of the machine that wrote the file.

    Returns:
        32-byte key.
    """
    seed = _ALL_USERS_GENERIC_ID_IS + hardware_info.identity_hash()
    return hashlib.sha3_256(seed.encode("utf-8")).digest()


def create_decryption_iv() -> bytes:
    """Return the fixed 16-byte IV."""
    return hashlib.sha3_256(_ALL_USERS_GENERIC_ID_IS.encode("utf-8")).digest()[:16]


def decrypt_install_info(data: bytes, hardware_info: HardwareInfo) -> str:
    """Decrypt the contents of an IS file.

    Args:
        data: Raw file contents, header included.
        hardware_info: Identifiers used to derive the key.

    Returns:
        The decrypted JSON text.

    Raises:
        DecryptionError: If the data is too short, the key is wrong or the
            plaintext is not UTF-8.
    """
    ciphertext = data[_HEADER_SIZE:]
    if not ciphertext or len(ciphertext) % AES.block_size:
        raise DecryptionError(f"Install info data has an invalid length of {len(data)} bytes")

    cipher = AES.new(create_decryption_key(hardware_info), AES.MODE_CBC, iv=create_decryption_iv())
    try:
        plaintext = unpad(cipher.decrypt(ciphertext), AES.block_size)
        return plaintext.decode("utf-8")
    except ValueError as e:
        raise DecryptionError("Unable to decrypt install info; the hardware identity may not match") from e


class EADesktopHandler(BaseHandler):
    """Handler for EA Desktop.

    Attributes:
        schema_policy: What to do when the install info file's schema
            version is not SUPPORTED_SCHEMA_VERSION.
    """

    handler = Handler.STORE_EA_DESKTOP

    def __init__(
        self,
        registry: Registry | None = None,
        known_paths: KnownPaths | None = None,
        hardware_info_provider: HardwareInfoProvider | None = None,
        schema_policy: SchemaPolicy = SchemaPolicy.WARN,
    ) -> None:
        super().__init__(registry, known_paths)
        self.hardware_info_provider = hardware_info_provider or WmiHardwareInfoProvider()
        self.schema_policy = schema_policy

    def get_data_folder(self) -> Path:
        """Folder EA Desktop keeps machine-wide data in."""
        return self.known_paths.common_application_data / "EA Desktop"

    def get_install_info_file(self) -> Path:
        """Path to the encrypted install info file."""
        return self.get_data_folder() / ALL_USERS_FOLDER_NAME / INSTALL_INFO_FILE_NAME

    def is_available(self) -> bool:
        """True if the encrypted install info file exists."""
        return self.get_install_info_file().is_file()

    def find_client(self) -> Path | None:
        """EADesktop.exe as registered under LauncherAppPath."""
        key = self.registry.open_key(RegistryHive.CURRENT_USER, _CLIENT_KEY, RegistryView.REGISTRY64)
        if key is None:
            return None
        return to_path(key.get_string("LauncherAppPath"))

    def find_all_games(self, settings: Settings | None = None) -> Iterator[GameResult]:
        settings = settings or Settings()
        data_folder = self.get_data_folder()
        if not data_folder.is_dir():
            yield ErrorMessage(f"Data folder {data_folder} does not exist")
            return

        install_info_file = self.get_install_info_file()
        if not install_info_file.is_file():
            yield ErrorMessage(f"File does not exist: {install_info_file}")
            return

        try:
            plaintext = decrypt_install_info(
                install_info_file.read_bytes(), self.hardware_info_provider.get_hardware_info()
            )
        except (OSError, DecryptionError) as e:
            yield ErrorMessage(f"Exception while decrypting file {install_info_file}", e)
            return

        yield from self.parse_install_info(plaintext, install_info_file, settings)

    def parse_install_info(
        self, plaintext: str, install_info_file: Path, settings: Settings | None = None
    ) -> Iterator[GameResult]:
        """Turn decrypted install info JSON into game records.

        Args:
            plaintext: Decrypted JSON text.
            install_info_file: Source file, used in messages.
            settings: Filters to apply.

        Yields:
            A GameData or an ErrorMessage per install info entry.
        """
        settings = settings or Settings()
        try:
            contents = json.loads(plaintext)
        except ValueError as e:
            yield ErrorMessage(f"Unable to deserialize install info file {install_info_file}", e)
            return
        if not isinstance(contents, dict):
            yield ErrorMessage(f"Unable to deserialize install info file {install_info_file}")
            return

        schema = contents.get("schema")
        schema_version = schema.get("version") if isinstance(schema, dict) else None
        if not isinstance(schema_version, int):
            yield ErrorMessage(f"Install info file {install_info_file} does not have a schema version")
            return
        if schema_version != SUPPORTED_SCHEMA_VERSION:
            error = SchemaVersionError(str(install_info_file), schema_version, SUPPORTED_SCHEMA_VERSION)
            if self.schema_policy is SchemaPolicy.ERROR:
                yield ErrorMessage("Unsupported install info schema", error)
                return
            if self.schema_policy is SchemaPolicy.WARN:
                logger.warning("%s", error)

        install_infos = contents.get("installInfos")
        if not install_infos or not isinstance(install_infos, list):
            yield ErrorMessage(f"Install info file {install_info_file} does not have any infos")
            return

        count = 0
        for index, install_info in enumerate(install_infos):
            if not isinstance(install_info, dict):
                yield ErrorMessage(f"InstallInfo #{index} in {install_info_file} is not an object")
                continue
            try:
                result = self._install_info_to_game(install_info, index, settings)
            except (AttributeError, TypeError, ValueError) as e:
                result = ErrorMessage(f"Exception while parsing InstallInfo #{index} in {install_info_file}", e)
            if result is None:
                continue
            if isinstance(result, GameData):
                count += 1
            yield result

        logger.info("Found %d games in EA Desktop", count)

    def _install_info_to_game(self, install_info: dict[str, Any], index: int, settings: Settings) -> GameResult | None:
        software_id = install_info.get("softwareId")
        if not software_id:
            return ErrorMessage(f'InstallInfo #{index} does not have the value "softwareId"')

        base_slug = install_info.get("baseSlug") or ""
        is_dlc = bool(install_info.get("dlcSubPath"))
        base_install_path = install_info.get("baseInstallPath") or ""
        executable_check = install_info.get("executableCheck") or ""
        is_installed = is_rooted(base_install_path) and bool(executable_check)

        registry_key = ""
        executable: Path | None = None
        if is_installed:
            install_check = install_info.get("installCheck") or ""
            if install_check.startswith("["):
                _, relative = _split_check(install_check)
                if not (Path(base_install_path) / relative).exists():
                    is_installed = False

            if is_installed and executable_check.startswith("["):
                check_key, relative = _split_check(executable_check)
                if check_key == "":
                    # "[]" marks content without a registry entry of its own
                    is_dlc = True
                registry_key = check_key or ""
                executable = Path(base_install_path) / relative
                if not executable.exists():
                    is_installed = False

        if is_dlc and settings.base_only:
            logger.debug("Skipping EA Desktop DLC %s", software_id)
            return None
        if not is_installed and settings.installed_only:
            return None

        uninstall_properties = install_info.get("localUninstallProperties") or {}
        name = self._display_name_from_registry(registry_key) if registry_key else None

        return GameData(
            handler=self.handler,
            game_id=software_id,
            game_name=name or base_slug or software_id,
            game_path=to_path(base_install_path),
            launch=executable,
            icon=executable,
            uninstall=to_path(uninstall_properties.get("uninstallCommand")),
            uninstall_args=uninstall_properties.get("uninstallParameters") or "",
            is_installed=is_installed,
            base_game="" if is_dlc else None,
            metadata={"BaseSlug": [base_slug]} if base_slug else {},
        )

    def _display_name_from_registry(self, registry_key: str) -> str | None:
        """Read DisplayName from the key a check path points at.

        The check path names a value (HIVE\\path\\to\\key\\value); the
        DisplayName is read from the key holding that value.
        """
        hive_name, _, rest = registry_key.partition("\\")
        key_path = rest.rpartition("\\")[0]
        hive = RegistryHive.from_name(hive_name)
        if hive is None or not key_path:
            return None
        key = self.registry.open_key(hive, key_path, RegistryView.REGISTRY32)
        return key.get_string("DisplayName") if key is not None else None


def _split_check(check: str) -> tuple[str | None, str]:
    """Split "[registry path]relative" into its two parts.

    The registry part is None when the closing bracket is missing; the
    whole check is then the relative path.
    """
    end = check.find("]")
    if end < 0:
        return None, check.lstrip("\\/")
    return check[1:end], check[end + 1 :].lstrip("\\/")
