# tests/unit/test_utils/test_hardware_info.py

"""Tests for the hardware identity used by EA Desktop."""

from __future__ import annotations

import hashlib
import sys
from unittest.mock import patch

import pytest

from gamecollector.utils.hardware_info import FixedHardwareInfoProvider, HardwareInfo, WmiHardwareInfoProvider

_INFO = HardwareInfo(
    baseboard_manufacturer="ASUSTeK COMPUTER INC.",
    baseboard_serial="BSN12345",
    bios_manufacturer="American Megatrends Inc.",
    bios_serial="System Serial Number",
    volume_serial=0xA1B2C3D4,
    video_controller_pnp_id="PCI\\VEN_10DE&DEV_2484",
    processor_manufacturer="GenuineIntel",
    processor_id="BFEBFBFF000906EA",
    processor_name="Intel(R) Core(TM) i7-8700K CPU @ 3.70GHz",
)


class TestHardwareInfo:
    """Tests for the identity string and hash."""

    def test_identity_string(self) -> None:
        """Fields are joined with a trailing semicolon each; the volume serial is upper hex."""
        assert _INFO.identity_string() == (
            "ASUSTeK COMPUTER INC.;BSN12345;American Megatrends Inc.;System Serial Number;A1B2C3D4;"
            "PCI\\VEN_10DE&DEV_2484;GenuineIntel;BFEBFBFF000906EA;Intel(R) Core(TM) i7-8700K CPU @ 3.70GHz;"
        )

    def test_empty_identity(self) -> None:
        assert HardwareInfo().identity_string() == ";;;;0;;;;;"

    def test_identity_hash(self) -> None:
        """The hash is the lowercase SHA-1 hex digest of the identity string."""
        expected = hashlib.sha1(_INFO.identity_string().encode("utf-8")).hexdigest()
        assert _INFO.identity_hash() == expected
        assert len(expected) == 40


class TestProviders:
    """Tests for HardwareInfoProvider implementations."""

    def test_fixed_provider(self) -> None:
        assert FixedHardwareInfoProvider(_INFO).get_hardware_info() is _INFO

    @pytest.mark.skipif(sys.platform == "win32", reason="WMI is queried on Windows")
    def test_wmi_off_windows_is_empty(self) -> None:
        """Off Windows no process is started and every field is empty."""
        with patch("gamecollector.utils.hardware_info.subprocess.run") as run:
            info = WmiHardwareInfoProvider().get_hardware_info()
        run.assert_not_called()
        assert info == HardwareInfo()
