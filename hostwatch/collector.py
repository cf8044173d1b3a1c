from __future__ import annotations

import asyncio
import logging
from typing import Any

from hostwatch.adapters import MetricAdapters, error_message, utc_now
from hostwatch.config import CollectorConfig
from hostwatch.drivers import DriverInfoProvider, driver_info_provider_for
from hostwatch.provider import SystemInfoProvider

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


def error_snapshot(message: str, timestamp: str | None = None) -> dict[str, Any]:
    return {
        "timestamp": timestamp or utc_now(),
        "status": STATUS_ERROR,
        "error": message,
    }


class TelemetryCollector:
    """Builds one telemetry snapshot per ``collect()`` call.

    CPU, memory and network adapters run concurrently; their failures are
    absorbed into degraded sub-records. Anything else that goes wrong while
    assembling the snapshot turns into a ``status: error`` snapshot, so
    ``collect()`` itself never raises.
    """

    def __init__(
        self,
        provider: SystemInfoProvider,
        config: CollectorConfig | None = None,
        logger: logging.Logger | None = None,
        driver_info: DriverInfoProvider | None = None,
    ) -> None:
        self.provider = provider
        self.config = config or CollectorConfig()
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        driver_info = driver_info or driver_info_provider_for(
            ethtool_path=self.config.ethtool_path
        )
        self.adapters = MetricAdapters(
            provider,
            driver_info=driver_info,
            timeout_s=self.config.adapter_timeout_s,
            logger=self.logger,
        )

    async def collect(self) -> dict[str, Any]:
        self.logger.debug("Collecting telemetry snapshot.")
        timestamp = utc_now()
        try:
            cpu, memory, network = await asyncio.gather(
                self.adapters.cpu(),
                self.adapters.memory(),
                self.adapters.network(),
            )
            system = await asyncio.to_thread(self._read_system)
            snapshot: dict[str, Any] = {
                "timestamp": timestamp,
                "status": STATUS_SUCCESS,
                "system": system,
                "cpu": cpu,
                "memory": memory,
                "network": network,
            }
        except Exception as exc:
            self.logger.error("Error collecting telemetry: %s", error_message(exc), exc_info=True)
            return error_snapshot(error_message(exc), timestamp)

        self.logger.info("Telemetry collected at %s", timestamp)
        return snapshot

    def _read_system(self) -> dict[str, Any]:
        load_1m, load_5m, load_15m = self.provider.load_average()
        return {
            "platform": self.provider.platform_id(),
            "arch": self.provider.architecture(),
            "hostname": self.provider.hostname(),
            "uptime": int(self.provider.uptime_seconds()),
            "loadavg": [float(load_1m), float(load_5m), float(load_15m)],
        }
