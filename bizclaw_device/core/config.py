"""
BizClaw Device Agent Configuration
==================================

Environment-aware configuration for the automation layer and the daemon
supervisor. Every value has a default and can be overridden with a
``BIZCLAW_*`` environment variable.

Usage:
    from bizclaw_device.core.config import get_device_config

    config = get_device_config()
    depth = config.automation.max_tree_depth
    ceiling = config.daemon.wake_lease_ceiling
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.environ.get(key, ""))
    except (ValueError, TypeError):
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.environ.get(key, ""))
    except (ValueError, TypeError):
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _bizclaw_home() -> Path:
    return Path(os.getenv("BIZCLAW_HOME", str(Path.home() / ".bizclaw")))


@dataclass
class AutomationConfig:
    """Limits and timings for tree capture and primitive actions."""

    # Tree traversal limits
    max_tree_depth: int = field(default_factory=lambda: _env_int("BIZCLAW_MAX_TREE_DEPTH", 15))
    max_snapshot_elements: int = field(default_factory=lambda: _env_int("BIZCLAW_MAX_SNAPSHOT_ELEMENTS", 50))

    # Default gesture durations (milliseconds)
    tap_duration_ms: int = field(default_factory=lambda: _env_int("BIZCLAW_TAP_DURATION_MS", 100))
    swipe_duration_ms: int = field(default_factory=lambda: _env_int("BIZCLAW_SWIPE_DURATION_MS", 300))

    # Upper bound when a caller opts into waiting for gesture completion
    gesture_wait_timeout: float = field(default_factory=lambda: _env_float("BIZCLAW_GESTURE_WAIT_TIMEOUT", 5.0))

    # "fixed" sleeps the step delay, "stable" polls until the screen settles
    settle_mode: str = field(default_factory=lambda: os.getenv("BIZCLAW_SETTLE_MODE", "fixed"))
    settle_samples: int = field(default_factory=lambda: _env_int("BIZCLAW_SETTLE_SAMPLES", 2))
    settle_interval: float = field(default_factory=lambda: _env_float("BIZCLAW_SETTLE_INTERVAL", 0.25))
    settle_max_wait: float = field(default_factory=lambda: _env_float("BIZCLAW_SETTLE_MAX_WAIT", 4.0))


@dataclass
class WorkflowDelays:
    """Fixed heuristic delays (seconds) before workflow steps."""

    app_launch: float = field(default_factory=lambda: _env_float("BIZCLAW_DELAY_APP_LAUNCH", 2.0))
    screen_transition: float = field(default_factory=lambda: _env_float("BIZCLAW_DELAY_SCREEN_TRANSITION", 1.5))
    composer_open: float = field(default_factory=lambda: _env_float("BIZCLAW_DELAY_COMPOSER_OPEN", 1.0))
    after_typing: float = field(default_factory=lambda: _env_float("BIZCLAW_DELAY_AFTER_TYPING", 0.5))
    before_send: float = field(default_factory=lambda: _env_float("BIZCLAW_DELAY_BEFORE_SEND", 0.3))

    # Scales every delay, 0 disables waiting entirely (dry runs and tests)
    scale: float = field(default_factory=lambda: _env_float("BIZCLAW_DELAY_SCALE", 1.0))


@dataclass
class DaemonSettings:
    """Settings for the background worker and its native engine."""

    native_library: Optional[str] = field(default_factory=lambda: os.getenv("BIZCLAW_NATIVE_LIBRARY"))
    config_path: str = field(default_factory=lambda: os.getenv(
        "BIZCLAW_ENGINE_CONFIG", str(_bizclaw_home() / "bizclaw.toml")
    ))
    data_dir: str = field(default_factory=lambda: os.getenv(
        "BIZCLAW_DATA_DIR", str(_bizclaw_home() / "data")
    ))
    host: str = field(default_factory=lambda: os.getenv("BIZCLAW_ENGINE_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: _env_int("BIZCLAW_ENGINE_PORT", 3001))

    # Wake lease: 10 minute ceiling, renewed well before expiry
    wake_lease_ceiling: float = field(default_factory=lambda: _env_float("BIZCLAW_WAKE_LEASE_CEILING", 600.0))
    wake_lease_renew_interval: float = field(default_factory=lambda: _env_float("BIZCLAW_WAKE_LEASE_RENEW", 240.0))

    # Niceness applied while running (negative values need privileges)
    elevated_nice: int = field(default_factory=lambda: _env_int("BIZCLAW_ELEVATED_NICE", -5))
    manage_priority: bool = field(default_factory=lambda: _env_bool("BIZCLAW_MANAGE_PRIORITY", True))

    preferences_path: Path = field(default_factory=lambda: Path(os.getenv(
        "BIZCLAW_PREFERENCES", str(_bizclaw_home() / "device_prefs.json")
    )))


@dataclass
class AdbSettings:
    """Settings for the adb/uiautomator automation backend."""

    adb_binary: str = field(default_factory=lambda: os.getenv("BIZCLAW_ADB", "adb"))
    serial: Optional[str] = field(default_factory=lambda: os.getenv("BIZCLAW_ADB_SERIAL"))
    command_timeout: float = field(default_factory=lambda: _env_float("BIZCLAW_ADB_TIMEOUT", 15.0))
    dump_path: str = field(default_factory=lambda: os.getenv("BIZCLAW_ADB_DUMP_PATH", "/sdcard/bizclaw_window.xml"))


@dataclass
class ApiSettings:
    host: str = field(default_factory=lambda: os.getenv("BIZCLAW_API_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: _env_int("BIZCLAW_API_PORT", 8765))


@dataclass
class DeviceAgentConfig:
    """Root configuration object."""

    automation: AutomationConfig = field(default_factory=AutomationConfig)
    delays: WorkflowDelays = field(default_factory=WorkflowDelays)
    daemon: DaemonSettings = field(default_factory=DaemonSettings)
    adb: AdbSettings = field(default_factory=AdbSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    log_level: str = field(default_factory=lambda: os.getenv("BIZCLAW_LOG_LEVEL", "INFO"))
    location_enabled: bool = field(default_factory=lambda: _env_bool("BIZCLAW_LOCATION_ENABLED", False))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "automation": {
                "max_tree_depth": self.automation.max_tree_depth,
                "max_snapshot_elements": self.automation.max_snapshot_elements,
                "settle_mode": self.automation.settle_mode,
            },
            "delays": {
                "app_launch": self.delays.app_launch,
                "screen_transition": self.delays.screen_transition,
                "scale": self.delays.scale,
            },
            "daemon": {
                "native_library": self.daemon.native_library,
                "host": self.daemon.host,
                "port": self.daemon.port,
                "wake_lease_ceiling": self.daemon.wake_lease_ceiling,
                "preferences_path": str(self.daemon.preferences_path),
            },
            "adb": {"serial": self.adb.serial, "binary": self.adb.adb_binary},
            "log_level": self.log_level,
        }


_device_config: Optional[DeviceAgentConfig] = None


def get_device_config() -> DeviceAgentConfig:
    """Get the singleton configuration, loading it from the environment once."""
    global _device_config
    if _device_config is None:
        _device_config = DeviceAgentConfig()
        logger.debug(f"[DeviceConfig] Loaded: {_device_config.to_dict()}")
    return _device_config


def reset_device_config() -> None:
    """Drop the cached configuration so the next access re-reads the environment."""
    global _device_config
    _device_config = None
