"""OS and hardware information providers.

``SystemInfoProvider`` is the capability the adapters depend on; every
method is blocking and may raise. ``PsutilProvider`` is the concrete
implementation backed by psutil plus a few platform tools and files.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
import ipaddress
import json
import logging
import math
import os
import platform
import socket
import struct
import sys
import time
from typing import Any

import psutil

from hostwatch.commands import read_file, run_command
from hostwatch.config import CollectorConfig
from hostwatch.models import (
    CpuLoad,
    InterfaceInfo,
    InterfaceStats,
    MemoryStats,
    OsInterfaceAddress,
)

_DUPLEX = {
    psutil.NIC_DUPLEX_FULL: "full",
    psutil.NIC_DUPLEX_HALF: "half",
    psutil.NIC_DUPLEX_UNKNOWN: "unknown",
}

_RTF_GATEWAY = 0x2


class SystemInfoProvider(abc.ABC):
    """Capability set queried by the metric adapters."""

    @abc.abstractmethod
    def cpu_load(self) -> CpuLoad:
        """Current CPU load split into user/system/idle percentages."""

    @abc.abstractmethod
    def memory(self) -> MemoryStats:
        """Total/used/free physical memory in bytes."""

    @abc.abstractmethod
    def interfaces(self) -> list[InterfaceInfo]:
        """All network interfaces with their operational state, in OS order."""

    @abc.abstractmethod
    def interface_stats(self, name: str) -> InterfaceStats | None:
        """Traffic counters for one interface, or None when the OS has none."""

    @abc.abstractmethod
    def default_gateway(self) -> str | None:
        """Address of the default IPv4 gateway."""

    @abc.abstractmethod
    def dns_servers(self) -> list[str]:
        """Configured DNS resolvers."""

    @abc.abstractmethod
    def hostname(self) -> str:
        """Host name."""

    @abc.abstractmethod
    def uptime_seconds(self) -> int:
        """Seconds since boot."""

    @abc.abstractmethod
    def load_average(self) -> tuple[float, float, float]:
        """1, 5 and 15 minute load averages."""

    @abc.abstractmethod
    def cpu_count(self) -> int | None:
        """Cheap logical CPU count used when the load query fails."""

    @abc.abstractmethod
    def raw_memory(self) -> MemoryStats:
        """Lower-fidelity memory figures straight from the OS."""

    @abc.abstractmethod
    def raw_interfaces(self) -> list[OsInterfaceAddress]:
        """Plain per-address interface listing without link state."""

    def platform_id(self) -> str:
        return sys.platform

    def architecture(self) -> str:
        return platform.machine()


@dataclass
class NetSample:
    timestamp: float
    counters: Any


@dataclass
class LoadAverage:
    """Exponentially weighted moving average for load calculation."""
    load_1m: float = 0.0
    load_5m: float = 0.0
    load_15m: float = 0.0
    last_update: float = 0.0

    def update(self, load_pct: float, timestamp: float) -> None:
        """Update load averages with a new sample.

        Uses exponential smoothing similar to Unix load average calculation.
        The smoothing factors approximate 1/e decay over the respective periods.
        """
        if self.last_update == 0:
            self.load_1m = load_pct
            self.load_5m = load_pct
            self.load_15m = load_pct
            self.last_update = timestamp
            return

        elapsed = timestamp - self.last_update
        if elapsed <= 0:
            return

        # exp(-elapsed/period) gives the weight for the old value
        alpha_1m = 1 - math.exp(-elapsed / 60)
        alpha_5m = 1 - math.exp(-elapsed / 300)
        alpha_15m = 1 - math.exp(-elapsed / 900)

        self.load_1m = alpha_1m * load_pct + (1 - alpha_1m) * self.load_1m
        self.load_5m = alpha_5m * load_pct + (1 - alpha_5m) * self.load_5m
        self.load_15m = alpha_15m * load_pct + (1 - alpha_15m) * self.load_15m
        self.last_update = timestamp


@dataclass
class ProviderState:
    last_net: dict[str, NetSample] = field(default_factory=dict)
    load_avg: LoadAverage = field(default_factory=LoadAverage)
    last_cpu_pct: float = 0.0


def parse_meminfo(content: str | None) -> dict[str, int] | None:
    """Parse /proc/meminfo and return values in bytes."""
    if not content:
        return None

    result: dict[str, int] = {}
    for line in content.splitlines():
        parts = line.split()
        if len(parts) >= 2:
            key = parts[0].rstrip(":")
            try:
                # Values are in kB
                result[key] = int(parts[1]) * 1024
            except ValueError:
                pass
    return result


def parse_proc_net_route(content: str | None) -> str | None:
    """Return the default gateway from the contents of /proc/net/route."""
    if not content:
        return None
    for line in content.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 4 or fields[1] != "00000000":
            continue
        try:
            flags = int(fields[3], 16)
            if not flags & _RTF_GATEWAY:
                continue
            # Stored as a little-endian hex word
            return socket.inet_ntoa(struct.pack("<L", int(fields[2], 16)))
        except (ValueError, struct.error, OSError):
            continue
    return None


def parse_route_get(output: str | None) -> str | None:
    """Return the gateway line of ``route -n get default`` (macOS/BSD)."""
    if not output:
        return None
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() == "gateway" and value.strip():
            return value.strip()
    return None


def parse_resolv_conf(content: str | None) -> list[str]:
    servers: list[str] = []
    if not content:
        return servers
    for line in content.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "nameserver" and parts[1] not in servers:
            servers.append(parts[1])
    return servers


def parse_hardware_ports(output: str | None) -> dict[str, str]:
    """Map device names to port names from ``networksetup -listallhardwareports``."""
    ports: dict[str, str] = {}
    if not output:
        return ports
    current_port = None
    for line in output.splitlines():
        if line.startswith("Hardware Port:"):
            current_port = line.split(":", 1)[1].strip()
        elif line.startswith("Device:") and current_port:
            ports[line.split(":", 1)[1].strip()] = current_port
            current_port = None
    return ports


def _is_loopback(address: str) -> bool:
    if not address:
        return False
    try:
        return ipaddress.ip_address(address.split("%", 1)[0]).is_loopback
    except ValueError:
        return False


def _load_json_list(output: str | None) -> list[dict[str, Any]]:
    """ConvertTo-Json emits a bare object for a single result."""
    if not output or not output.strip():
        return []
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        return []
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    return []


class PsutilProvider(SystemInfoProvider):
    def __init__(self, config: CollectorConfig | None = None) -> None:
        self.config = config or CollectorConfig()
        self.state = ProviderState()
        self.logger = logging.getLogger(self.__class__.__name__)
        self._system = platform.system().lower()
        # The first non-blocking sample is always 0.0, so take it now.
        try:
            psutil.cpu_percent(interval=None)
            psutil.cpu_times_percent(interval=None)
        except Exception:
            self.logger.debug("Failed to prime CPU counters.")

    def cpu_load(self) -> CpuLoad:
        usage = float(psutil.cpu_percent(interval=None))
        times = psutil.cpu_times_percent(interval=None)
        self.state.last_cpu_pct = usage
        return CpuLoad(
            usage_pct=usage,
            user_pct=float(times.user),
            system_pct=float(times.system),
            idle_pct=float(times.idle),
            cores=psutil.cpu_count(logical=True) or 0,
        )

    def memory(self) -> MemoryStats:
        vm = psutil.virtual_memory()
        total = int(vm.total)
        free = int(vm.available)
        return MemoryStats(total_b=total, used_b=max(total - free, 0), free_b=free)

    def interfaces(self) -> list[InterfaceInfo]:
        addrs = psutil.net_if_addrs()
        # Raises OSError in containers without ioctl support; the caller
        # treats that as an enumeration failure.
        if_stats = psutil.net_if_stats()
        descriptions = self._interface_descriptions()
        result: list[InterfaceInfo] = []

        for name, addr_list in addrs.items():
            mac = ""
            ip4 = ""
            ip6 = ""
            for addr in addr_list:
                if addr.family == socket.AF_INET:
                    ip4 = ip4 or addr.address
                elif addr.family == socket.AF_INET6:
                    ip6 = ip6 or addr.address.split("%", 1)[0]
                elif addr.family == psutil.AF_LINK:
                    mac = mac or addr.address

            stats = if_stats.get(name)
            flags = (getattr(stats, "flags", "") or "").split(",")
            internal = "loopback" in flags or _is_loopback(ip4) or _is_loopback(ip6)
            description, manufacturer = descriptions.get(name, (None, None))

            result.append(
                InterfaceInfo(
                    name=name,
                    description=description,
                    manufacturer=manufacturer,
                    mac=mac,
                    ip4=ip4,
                    ip6=ip6,
                    internal=internal,
                    operstate="up" if stats is not None and stats.isup else "down",
                    speed_mbps=stats.speed if stats is not None and stats.speed > 0 else None,
                    duplex=_DUPLEX.get(stats.duplex, "unknown") if stats is not None else "unknown",
                    mtu=int(stats.mtu) if stats is not None and stats.mtu else 0,
                )
            )
        return result

    def interface_stats(self, name: str) -> InterfaceStats | None:
        counters = psutil.net_io_counters(pernic=True)
        current = counters.get(name)
        if current is None:
            return None

        now = time.monotonic()
        rx_sec = 0.0
        tx_sec = 0.0
        elapsed_ms = 0
        previous = self.state.last_net.get(name)
        if previous is not None:
            elapsed = now - previous.timestamp
            if elapsed > 0:
                rx_sec = max(current.bytes_recv - previous.counters.bytes_recv, 0) / elapsed
                tx_sec = max(current.bytes_sent - previous.counters.bytes_sent, 0) / elapsed
                elapsed_ms = int(elapsed * 1000)
        self.state.last_net[name] = NetSample(timestamp=now, counters=current)

        try:
            stats = psutil.net_if_stats().get(name)
            operstate = ("up" if stats.isup else "down") if stats is not None else "unknown"
        except OSError:
            operstate = "unknown"

        return InterfaceStats(
            name=name,
            operstate=operstate,
            rx_bytes=int(current.bytes_recv),
            rx_dropped=int(current.dropin),
            rx_errors=int(current.errin),
            tx_bytes=int(current.bytes_sent),
            tx_dropped=int(current.dropout),
            tx_errors=int(current.errout),
            rx_sec=rx_sec,
            tx_sec=tx_sec,
            ms=elapsed_ms,
        )

    def default_gateway(self) -> str | None:
        if self._system == "linux":
            return parse_proc_net_route(read_file("/proc/net/route"))
        if self._system == "windows":
            output = self._powershell(
                "(Get-NetRoute -DestinationPrefix '0.0.0.0/0' -ErrorAction SilentlyContinue"
                " | Sort-Object RouteMetric | Select-Object -First 1).NextHop"
            )
            return output.strip() if output and output.strip() else None
        if self._system in ("darwin", "freebsd", "openbsd", "netbsd"):
            return parse_route_get(
                run_command([self.config.route_path, "-n", "get", "default"])
            )
        return None

    def dns_servers(self) -> list[str]:
        if self._system == "windows":
            output = self._powershell(
                "Get-DnsClientServerAddress -AddressFamily IPv4"
                " | Select-Object -ExpandProperty ServerAddresses"
            )
            servers: list[str] = []
            for line in (output or "").splitlines():
                line = line.strip()
                if line and line not in servers:
                    servers.append(line)
            return servers
        return parse_resolv_conf(read_file(self.config.resolv_conf_path))

    def hostname(self) -> str:
        return socket.gethostname()

    def uptime_seconds(self) -> int:
        return max(int(time.time() - psutil.boot_time()), 0)

    def load_average(self) -> tuple[float, float, float]:
        if hasattr(os, "getloadavg"):
            load_1m, load_5m, load_15m = os.getloadavg()
            return float(load_1m), float(load_5m), float(load_15m)
        # Windows: emulate from CPU usage samples
        load_avg = self.state.load_avg
        load_avg.update(self.state.last_cpu_pct, time.time())
        return (
            round(load_avg.load_1m, 2),
            round(load_avg.load_5m, 2),
            round(load_avg.load_15m, 2),
        )

    def cpu_count(self) -> int | None:
        return os.cpu_count()

    def raw_memory(self) -> MemoryStats:
        if self._system == "linux":
            meminfo = parse_meminfo(read_file("/proc/meminfo"))
            if meminfo and meminfo.get("MemTotal"):
                total = meminfo["MemTotal"]
                free = meminfo.get("MemAvailable", meminfo.get("MemFree", 0))
                return MemoryStats(total_b=total, used_b=max(total - free, 0), free_b=free)
        try:
            page_size = os.sysconf("SC_PAGE_SIZE")
            total = os.sysconf("SC_PHYS_PAGES") * page_size
            free = os.sysconf("SC_AVPHYS_PAGES") * page_size
        except (AttributeError, ValueError, OSError) as exc:
            raise RuntimeError(f"No OS memory source available: {exc}") from exc
        return MemoryStats(total_b=total, used_b=max(total - free, 0), free_b=free)

    def raw_interfaces(self) -> list[OsInterfaceAddress]:
        result: list[OsInterfaceAddress] = []
        for name, addr_list in psutil.net_if_addrs().items():
            for addr in addr_list:
                if addr.family == socket.AF_INET:
                    family = "IPv4"
                elif addr.family == socket.AF_INET6:
                    family = "IPv6"
                else:
                    continue
                result.append(
                    OsInterfaceAddress(
                        name=name,
                        address=addr.address,
                        netmask=addr.netmask,
                        family=family,
                        internal=_is_loopback(addr.address),
                    )
                )
        return result

    def _interface_descriptions(self) -> dict[str, tuple[str | None, str | None]]:
        """Human-readable adapter descriptions (and vendor on Windows) by name."""
        descriptions: dict[str, tuple[str | None, str | None]] = {}
        if self._system == "windows":
            output = self._powershell(
                "Get-NetAdapter -ErrorAction SilentlyContinue"
                " | Select-Object Name, InterfaceDescription, DriverProvider"
                " | ConvertTo-Json"
            )
            for adapter in _load_json_list(output):
                name = adapter.get("Name")
                if name:
                    descriptions[name] = (
                        adapter.get("InterfaceDescription"),
                        adapter.get("DriverProvider"),
                    )
        elif self._system == "darwin":
            output = run_command([self.config.networksetup_path, "-listallhardwareports"])
            for device, port in parse_hardware_ports(output).items():
                descriptions[device] = (port, None)
        return descriptions

    def _powershell(self, command: str) -> str | None:
        return run_command([self.config.powershell_path, "-NoProfile", "-Command", command])
