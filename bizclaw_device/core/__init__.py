"""
Core: configuration, logging, log sanitisation and device capabilities.
"""

from .capabilities import CapabilityReporter, DeviceStatus, oem_battery_killer_warning
from .config import DeviceAgentConfig, get_device_config, reset_device_config
from .logging_config import configure_logging, event

__all__ = [
    "CapabilityReporter",
    "DeviceStatus",
    "oem_battery_killer_warning",
    "DeviceAgentConfig",
    "get_device_config",
    "reset_device_config",
    "configure_logging",
    "event",
]
