"""Per-platform network driver lookups."""

from __future__ import annotations

import abc
import asyncio
import logging
import platform
from typing import Any

from hostwatch.commands import run_command
from hostwatch.models import InterfaceInfo

ETHTOOL_NOTE = "Install ethtool for detailed driver info"
UNSUPPORTED_NOTE = "Platform not fully supported for driver info"


def parse_ethtool_output(output: str | None) -> dict[str, str]:
    """Parse ``ethtool -i`` output into a map with lower-cased keys."""
    info: dict[str, str] = {}
    if not output:
        return info
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        key = key.strip()
        value = value.strip()
        if sep and key and value:
            info[key.lower()] = value
    return info


class DriverInfoProvider(abc.ABC):
    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    async def lookup(self, iface: InterfaceInfo) -> dict[str, Any]:
        """Describe the driver behind ``iface``; failures become ``{"error": ...}``."""
        try:
            return await self._describe(iface)
        except Exception as exc:
            self.logger.debug("Driver lookup failed for %s: %s", iface.name, exc)
            return {"error": f"Could not get driver info: {exc}"}

    @abc.abstractmethod
    async def _describe(self, iface: InterfaceInfo) -> dict[str, Any]:
        ...


class WindowsDriverInfo(DriverInfoProvider):
    async def _describe(self, iface: InterfaceInfo) -> dict[str, Any]:
        # Driver versions are not exposed by Get-NetAdapter without admin rights.
        return {
            "description": iface.description or "Unknown",
            "manufacturer": iface.manufacturer or "Unknown",
            "version": "N/A",
        }


class MacDriverInfo(DriverInfoProvider):
    async def _describe(self, iface: InterfaceInfo) -> dict[str, Any]:
        return {"description": iface.description or "Unknown", "version": "N/A"}


class LinuxDriverInfo(DriverInfoProvider):
    def __init__(self, ethtool_path: str = "ethtool") -> None:
        super().__init__()
        self.ethtool_path = ethtool_path

    async def _describe(self, iface: InterfaceInfo) -> dict[str, Any]:
        output = await asyncio.to_thread(
            run_command, [self.ethtool_path, "-i", iface.name]
        )
        info = parse_ethtool_output(output)
        if info:
            return info
        return {"description": iface.description or "Unknown", "note": ETHTOOL_NOTE}


class UnknownDriverInfo(DriverInfoProvider):
    async def _describe(self, iface: InterfaceInfo) -> dict[str, Any]:
        return {"description": iface.description or "Unknown", "note": UNSUPPORTED_NOTE}


def driver_info_provider_for(
    system: str | None = None, ethtool_path: str = "ethtool"
) -> DriverInfoProvider:
    """Pick the driver lookup for ``system`` (defaults to ``platform.system()``)."""
    system = (system or platform.system()).lower()
    if system == "windows":
        return WindowsDriverInfo()
    if system == "darwin":
        return MacDriverInfo()
    if system == "linux":
        return LinuxDriverInfo(ethtool_path)
    return UnknownDriverInfo()
