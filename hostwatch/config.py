from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import configparser

DEFAULT_INTERVAL_MS = 30000
DEFAULT_ADAPTER_TIMEOUT_S = 10.0


@dataclass(frozen=True)
class ScheduleConfig:
    interval_ms: int


@dataclass(frozen=True)
class CollectorConfig:
    # Seconds; None disables the per-adapter timeout.
    adapter_timeout_s: float | None = DEFAULT_ADAPTER_TIMEOUT_S
    ethtool_path: str = "ethtool"
    powershell_path: str = "powershell"
    route_path: str = "route"
    networksetup_path: str = "networksetup"
    resolv_conf_path: str = "/etc/resolv.conf"


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    log_dir: str | None


@dataclass(frozen=True)
class AppConfig:
    schedule: ScheduleConfig
    collector: CollectorConfig
    logging: LoggingConfig


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _get_timeout(value: float) -> float | None:
    return value if value > 0 else None


def load_config(path: str | Path | None = None) -> AppConfig:
    parser = configparser.ConfigParser()
    if path is not None:
        read_files = parser.read(path)
        if not read_files:
            raise FileNotFoundError(f"Config file not found: {path}")

    schedule = ScheduleConfig(
        interval_ms=parser.getint("schedule", "interval_ms", fallback=DEFAULT_INTERVAL_MS),
    )

    # Every key falls back so a partial file (or no file) still loads.
    collector = CollectorConfig(
        adapter_timeout_s=_get_timeout(
            parser.getfloat(
                "collector", "adapter_timeout_s", fallback=DEFAULT_ADAPTER_TIMEOUT_S
            )
        ),
        ethtool_path=parser.get("collector", "ethtool_path", fallback="ethtool"),
        powershell_path=parser.get("collector", "powershell_path", fallback="powershell"),
        route_path=parser.get("collector", "route_path", fallback="route"),
        networksetup_path=parser.get(
            "collector", "networksetup_path", fallback="networksetup"
        ),
        resolv_conf_path=parser.get(
            "collector", "resolv_conf_path", fallback="/etc/resolv.conf"
        ),
    )

    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        log_dir=_get_optional(parser.get("logging", "log_dir", fallback=None)),
    )

    return AppConfig(schedule=schedule, collector=collector, logging=logging_config)
