"""Metric source adapters.

Each adapter queries one subsystem through a ``SystemInfoProvider`` and
returns a JSON-ready record. Adapters never raise: a failed query is
logged as a warning and replaced by a degraded record of the same shape,
usually carrying an ``error`` string.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any, Callable

from hostwatch.drivers import DriverInfoProvider, driver_info_provider_for
from hostwatch.formatting import format_bytes, percent_of, round_percent
from hostwatch.interfaces import UNKNOWN, classify_interface
from hostwatch.models import InterfaceInfo, InterfaceStats, MemoryStats
from hostwatch.provider import SystemInfoProvider

MEMORY_FALLBACK_ERROR = "Using fallback OS API"
NETWORK_FALLBACK_ERROR = "Using fallback network info"
LIMITED_INFO_ERROR = "Limited info available"
UNKNOWN_GATEWAY = "Unknown"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_message(exc: BaseException) -> str:
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return "Query timed out"
    return str(exc) or exc.__class__.__name__


def _stats_record(stats: InterfaceStats) -> dict[str, Any]:
    return {
        "iface": stats.name,
        "operstate": stats.operstate,
        "rx_bytes": stats.rx_bytes,
        "rx_dropped": stats.rx_dropped,
        "rx_errors": stats.rx_errors,
        "tx_bytes": stats.tx_bytes,
        "tx_dropped": stats.tx_dropped,
        "tx_errors": stats.tx_errors,
        "rx_sec": stats.rx_sec,
        "tx_sec": stats.tx_sec,
        "ms": stats.ms,
    }


def _memory_record(stats: MemoryStats) -> dict[str, Any]:
    return {
        "total": format_bytes(stats.total_b),
        "used": format_bytes(stats.used_b),
        "free": format_bytes(stats.free_b),
        "usage": percent_of(stats.used_b, stats.total_b),
        "raw": {
            "total": stats.total_b,
            "used": stats.used_b,
            "free": stats.free_b,
        },
    }


class MetricAdapters:
    def __init__(
        self,
        provider: SystemInfoProvider,
        driver_info: DriverInfoProvider | None = None,
        timeout_s: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.provider = provider
        self.driver_info = driver_info or driver_info_provider_for()
        self.timeout_s = timeout_s
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    async def _query(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking provider call in a worker thread, bounded by the timeout."""
        call = asyncio.to_thread(func, *args)
        if self.timeout_s is None:
            return await call
        return await asyncio.wait_for(call, self.timeout_s)

    async def cpu(self) -> dict[str, Any]:
        try:
            load = await self._query(self.provider.cpu_load)
            return {
                "usage": round_percent(load.usage_pct),
                "cores": int(load.cores),
                "user": float(load.user_pct),
                "system": float(load.system_pct),
                "idle": float(load.idle_pct),
            }
        except Exception as exc:
            message = error_message(exc)
            self.logger.warning("Could not get CPU usage: %s", message)
            return {"usage": 0, "cores": await self._fallback_cores(), "error": message}

    async def _fallback_cores(self) -> int:
        try:
            return int(await self._query(self.provider.cpu_count) or 0)
        except Exception:
            self.logger.debug("CPU count unavailable.")
            return 0

    async def memory(self) -> dict[str, Any]:
        try:
            stats = await self._query(self.provider.memory)
            return _memory_record(stats)
        except Exception as exc:
            self.logger.warning("Could not get memory usage: %s", error_message(exc))

        try:
            record = _memory_record(await self._query(self.provider.raw_memory))
            record["error"] = MEMORY_FALLBACK_ERROR
        except Exception as exc:
            message = error_message(exc)
            self.logger.warning("OS memory fallback failed: %s", message)
            record = _memory_record(MemoryStats(total_b=0, used_b=0, free_b=0))
            record["error"] = f"Memory information unavailable: {message}"
        return record

    async def network(self) -> dict[str, Any]:
        enumerated, gateway, dns_servers = await asyncio.gather(
            self._enumerate_interfaces(),
            self.default_gateway(),
            self.dns_servers(),
        )
        record: dict[str, Any] = {
            "interfaces": [],
            "defaultGateway": gateway,
            "dnsServers": dns_servers,
            "platform": await self._platform_id(),
        }
        if enumerated is None:
            record["interfaces"] = await self._fallback_interfaces()
            record["error"] = NETWORK_FALLBACK_ERROR
            return record

        active = [
            iface for iface in enumerated
            if not iface.internal and iface.operstate == "up"
        ]
        # gather keeps the order of its arguments
        record["interfaces"] = list(
            await asyncio.gather(*(self.interface(iface) for iface in active))
        )
        return record

    async def _enumerate_interfaces(self) -> list[InterfaceInfo] | None:
        try:
            return list(await self._query(self.provider.interfaces))
        except Exception as exc:
            self.logger.warning("Could not get network info: %s", error_message(exc))
            return None

    async def _fallback_interfaces(self) -> list[dict[str, Any]]:
        try:
            addresses = await self._query(self.provider.raw_interfaces)
        except Exception as exc:
            self.logger.warning("OS interface fallback failed: %s", error_message(exc))
            return []
        return [
            {
                "name": addr.name,
                "type": UNKNOWN,
                "address": addr.address,
                "netmask": addr.netmask,
                "family": addr.family,
                "error": LIMITED_INFO_ERROR,
            }
            for addr in addresses
            if not addr.internal and addr.family == "IPv4"
        ]

    async def _platform_id(self) -> str:
        try:
            return await self._query(self.provider.platform_id)
        except Exception:
            return "unknown"

    async def interface(self, iface: InterfaceInfo) -> dict[str, Any]:
        iface_type = classify_interface(iface.name, iface.description)
        try:
            stats, driver = await asyncio.gather(
                self._query(self.provider.interface_stats, iface.name),
                self._driver(iface),
            )
            return {
                "name": iface.name,
                "type": iface_type,
                "mac": iface.mac,
                "ip4": iface.ip4,
                "ip6": iface.ip6,
                "speed": iface.speed_mbps,
                "duplex": iface.duplex,
                "mtu": iface.mtu,
                "driver": driver,
                "stats": _stats_record(stats) if stats is not None else None,
                "lastUpdated": utc_now(),
            }
        except Exception as exc:
            message = error_message(exc)
            self.logger.warning("Could not get details for interface %s: %s", iface.name, message)
            return {
                "name": iface.name,
                "type": iface_type,
                "mac": iface.mac,
                "ip4": iface.ip4,
                "error": message,
            }

    async def _driver(self, iface: InterfaceInfo) -> dict[str, Any]:
        lookup = self.driver_info.lookup(iface)
        if self.timeout_s is None:
            return await lookup
        try:
            return await asyncio.wait_for(lookup, self.timeout_s)
        except asyncio.TimeoutError as exc:
            self.logger.warning("Driver lookup for %s timed out", iface.name)
            return {"error": f"Could not get driver info: {error_message(exc)}"}

    async def default_gateway(self) -> str:
        try:
            gateway = await self._query(self.provider.default_gateway)
        except Exception as exc:
            self.logger.warning("Could not get default gateway: %s", error_message(exc))
            return UNKNOWN_GATEWAY
        return gateway or UNKNOWN_GATEWAY

    async def dns_servers(self) -> list[str]:
        try:
            servers = await self._query(self.provider.dns_servers)
        except Exception as exc:
            self.logger.warning("Could not get DNS servers: %s", error_message(exc))
            return []
        return [str(server) for server in servers or []]
