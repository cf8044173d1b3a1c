"""Typed records returned by system information providers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CpuLoad:
    usage_pct: float
    user_pct: float
    system_pct: float
    idle_pct: float
    cores: int


@dataclass(frozen=True)
class MemoryStats:
    total_b: int
    used_b: int
    free_b: int


@dataclass(frozen=True)
class InterfaceInfo:
    name: str
    description: str | None
    manufacturer: str | None
    mac: str
    ip4: str
    ip6: str
    internal: bool
    operstate: str
    speed_mbps: int | None
    duplex: str
    mtu: int


@dataclass(frozen=True)
class InterfaceStats:
    name: str
    operstate: str
    rx_bytes: int
    rx_dropped: int
    rx_errors: int
    tx_bytes: int
    tx_dropped: int
    tx_errors: int
    rx_sec: float
    tx_sec: float
    ms: int


@dataclass(frozen=True)
class OsInterfaceAddress:
    """One address of an interface as reported by the plain OS listing."""

    name: str
    address: str
    netmask: str | None
    family: str
    internal: bool
