"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import pytest

from hostwatch.collector import TelemetryCollector
from hostwatch.config import CollectorConfig
from tests.fakes import FakeProvider, StaticDriverInfo


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "windows: mark test as Windows-specific"
    )
    config.addinivalue_line(
        "markers", "linux: mark test as Linux-specific"
    )
    config.addinivalue_line(
        "markers", "darwin: mark test as macOS-specific"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


@pytest.fixture
def provider():
    """A provider returning a healthy Linux host."""
    return FakeProvider()


@pytest.fixture
def collector_config():
    return CollectorConfig(adapter_timeout_s=None)


@pytest.fixture
def collector(provider, collector_config):
    return TelemetryCollector(
        provider, collector_config, driver_info=StaticDriverInfo()
    )
