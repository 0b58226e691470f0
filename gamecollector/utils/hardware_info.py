# gamecollector/utils/hardware_info.py

"""Hardware identity used to derive the EA Desktop decryption key.

EA Desktop encrypts its install-info file with a key derived from
motherboard, BIOS, disk, GPU and CPU identifiers. The values are read
through WMI on Windows; tests inject a FixedHardwareInfoProvider.
"""

from __future__ import annotations

import hashlib
import logging
import os
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass

__all__ = [
    "FixedHardwareInfoProvider",
    "HardwareInfo",
    "HardwareInfoProvider",
    "WmiHardwareInfoProvider",
]

logger = logging.getLogger("gamecollector.hardware_info")

_WMI_TIMEOUT = 15


@dataclass(frozen=True)
class HardwareInfo:
    """Identifiers EA Desktop feeds into its key derivation.

    Attributes:
        baseboard_manufacturer: Win32_BaseBoard.Manufacturer.
        baseboard_serial: Win32_BaseBoard.SerialNumber.
        bios_manufacturer: Win32_BIOS.Manufacturer.
        bios_serial: Win32_BIOS.SerialNumber.
        volume_serial: Serial number of the system volume.
        video_controller_pnp_id: Win32_VideoController.PNPDeviceID.
        processor_manufacturer: Win32_Processor.Manufacturer.
        processor_id: Win32_Processor.ProcessorId.
        processor_name: Win32_Processor.Name.
    """

    baseboard_manufacturer: str = ""
    baseboard_serial: str = ""
    bios_manufacturer: str = ""
    bios_serial: str = ""
    volume_serial: int = 0
    video_controller_pnp_id: str = ""
    processor_manufacturer: str = ""
    processor_id: str = ""
    processor_name: str = ""

    def identity_string(self) -> str:
        """Join the identifiers in the order EA Desktop hashes them."""
        parts = (
            self.baseboard_manufacturer,
            self.baseboard_serial,
            self.bios_manufacturer,
            self.bios_serial,
            format(self.volume_serial, "X"),
            self.video_controller_pnp_id,
            self.processor_manufacturer,
            self.processor_id,
            self.processor_name,
        )
        return "".join(f"{part};" for part in parts)

    def identity_hash(self) -> str:
        """Return the lowercase hex SHA-1 of identity_string()."""
        return hashlib.sha1(self.identity_string().encode("utf-8")).hexdigest()


class HardwareInfoProvider(ABC):
    @abstractmethod
    def get_hardware_info(self) -> HardwareInfo:
        """Collect the current machine's identifiers."""


class FixedHardwareInfoProvider(HardwareInfoProvider):
    """Returns a preset HardwareInfo."""

    def __init__(self, info: HardwareInfo) -> None:
        self._info = info

    def get_hardware_info(self) -> HardwareInfo:
        return self._info


class WmiHardwareInfoProvider(HardwareInfoProvider):
    """Reads identifiers from WMI through PowerShell's Get-CimInstance."""

    def get_hardware_info(self) -> HardwareInfo:
        system_drive = os.environ.get("SystemDrive", "C:")
        volume_serial = self._query("Win32_LogicalDisk", "VolumeSerialNumber", f"DeviceID='{system_drive}'")
        try:
            serial = int(volume_serial, 16) if volume_serial else 0
        except ValueError:
            serial = 0

        return HardwareInfo(
            baseboard_manufacturer=self._query("Win32_BaseBoard", "Manufacturer"),
            baseboard_serial=self._query("Win32_BaseBoard", "SerialNumber"),
            bios_manufacturer=self._query("Win32_BIOS", "Manufacturer"),
            bios_serial=self._query("Win32_BIOS", "SerialNumber"),
            volume_serial=serial,
            video_controller_pnp_id=self._query("Win32_VideoController", "PNPDeviceID"),
            processor_manufacturer=self._query("Win32_Processor", "Manufacturer"),
            processor_id=self._query("Win32_Processor", "ProcessorId"),
            processor_name=self._query("Win32_Processor", "Name"),
        )

    @staticmethod
    def _query(class_name: str, property_name: str, condition: str = "") -> str:
        """Return the first instance's property value, or "" on failure."""
        if sys.platform != "win32":
            return ""

        command = f"Get-CimInstance -ClassName {class_name}"
        if condition:
            command += f' -Filter "{condition}"'
        command += f" | Select-Object -First 1 -ExpandProperty {property_name}"

        try:
            result = subprocess.run(
                ["powershell", "-NoProfile", "-NonInteractive", "-Command", command],
                capture_output=True,
                text=True,
                timeout=_WMI_TIMEOUT,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("WMI query %s.%s failed: %s", class_name, property_name, e)
            return ""
        return result.stdout.strip()
