"""hostwatch local system telemetry collector."""

from hostwatch.collector import TelemetryCollector
from hostwatch.config import AppConfig, load_config
from hostwatch.formatting import format_bytes
from hostwatch.interfaces import classify_interface
from hostwatch.provider import PsutilProvider, SystemInfoProvider
from hostwatch.scheduler import CollectionScheduler, SchedulerState
from hostwatch.schema import validate_payload

__all__ = [
    "AppConfig",
    "CollectionScheduler",
    "PsutilProvider",
    "SchedulerState",
    "SystemInfoProvider",
    "TelemetryCollector",
    "classify_interface",
    "format_bytes",
    "load_config",
    "validate_payload",
]
