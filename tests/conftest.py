"""
Pytest configuration and shared fixtures for the BizClaw device agent tests.

This file contains:
- Registration of the in-memory fake device fixtures
- Test hooks and configuration
"""

import sys
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Register additional fixture modules
pytest_plugins = [
    "tests.conftest_fake_device",
]


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Point every BIZCLAW_* path at the test's temp dir and drop cached config."""
    from bizclaw_device.core.config import reset_device_config

    monkeypatch.setenv("BIZCLAW_HOME", str(tmp_path / "bizclaw_home"))
    monkeypatch.delenv("BIZCLAW_NATIVE_LIBRARY", raising=False)
    reset_device_config()
    yield
    reset_device_config()


def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "automation: mark test as automation layer related"
    )
    config.addinivalue_line(
        "markers", "daemon: mark test as daemon supervision related"
    )
    config.addinivalue_line(
        "markers", "api: mark test as HTTP API related"
    )


def pytest_collection_modifyitems(config, items):
    """Add component markers based on the test module name."""
    for item in items:
        module = Path(str(item.fspath)).name
        if module.startswith(("test_tree_reader", "test_dispatcher", "test_adb_backend")):
            item.add_marker(pytest.mark.automation)
        if module.startswith(("test_supervisor", "test_wake_lease", "test_native_bridge", "test_boot")):
            item.add_marker(pytest.mark.daemon)
        if module.startswith("test_device_api"):
            item.add_marker(pytest.mark.api)


def pytest_report_header(config):
    """Add custom header to pytest report."""
    return [
        "BizClaw Device Agent Test Suite",
        f"Project Root: {project_root}",
    ]
