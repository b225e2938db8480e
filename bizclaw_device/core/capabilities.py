"""
Device Capabilities
===================

Snapshot of what the agent can rely on on this device: hardware, battery,
storage, network, location and whether the background worker is up. Sent to
the remote agent as JSON for diagnostics and tool planning.

Also carries the per-manufacturer advice for vendors known to kill
background workers aggressively.
"""

import json
import logging
import os
import platform
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import psutil

from .config import get_device_config
from .secure_logging import mask_sensitive

logger = logging.getLogger(__name__)

GB = 1024 ** 3
MB = 1024 ** 2

_DMI_DIR = Path("/sys/devices/virtual/dmi/id")
_MACHINE_ID_FILES = (Path("/etc/machine-id"), Path("/var/lib/dbus/machine-id"))

# Interface name prefixes, checked in order
_WIFI_PREFIXES = ("wlan", "wlp", "wl", "wifi")
_CELLULAR_PREFIXES = ("rmnet", "ccmni", "wwan", "pdp", "v4-rmnet")
_ETHERNET_PREFIXES = ("eth", "enp", "eno", "ens", "en")

OEM_BATTERY_WARNINGS = (
    (("xiaomi", "redmi"), "Xiaomi/Redmi: Bật AutoStart + tắt Battery Optimization cho BizClaw"),
    (("samsung",), "Samsung: Thêm BizClaw vào 'Unmonitored apps' trong Device Care"),
    (("huawei", "honor"), "Huawei/Honor: Tắt 'Manage automatically' cho BizClaw trong Battery"),
    (("oppo", "realme"), "OPPO/Realme: Bật AutoStart + 'Allow background activity' cho BizClaw"),
    (("vivo",), "Vivo: Bật 'Allow AutoStart' + 'High background power' cho BizClaw"),
    (("oneplus",), "OnePlus: Tắt Battery Optimization cho BizClaw"),
)


@dataclass
class DeviceInfo:
    manufacturer: str
    model: str
    os_version: str
    cpu_cores: int
    total_ram_mb: int
    free_ram_mb: int
    device_id: str


@dataclass
class BatteryInfo:
    level: int
    is_charging: bool
    temperature_celsius: Optional[float] = None


@dataclass
class StorageInfo:
    total_gb: float
    free_gb: float
    used_percent: int


@dataclass
class NetworkInfo:
    type: str
    is_connected: bool
    interface: Optional[str] = None


@dataclass
class DeviceStatus:
    device: DeviceInfo
    battery: BatteryInfo
    storage: StorageInfo
    network: NetworkInfo
    location_available: bool
    daemon_running: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def _read_text(path: Path) -> Optional[str]:
    try:
        value = path.read_text(encoding="utf-8").strip()
        return value or None
    except OSError:
        return None


def classify_interface(name: str) -> str:
    lowered = name.lower()
    if lowered.startswith(_WIFI_PREFIXES):
        return "wifi"
    if lowered.startswith(_CELLULAR_PREFIXES):
        return "cellular"
    if lowered.startswith(_ETHERNET_PREFIXES):
        return "ethernet"
    return "unknown"


def oem_battery_killer_warning(manufacturer: str) -> Optional[str]:
    """Setup advice for manufacturers whose power management kills background work."""
    lowered = (manufacturer or "").lower()
    for markers, warning in OEM_BATTERY_WARNINGS:
        if any(marker in lowered for marker in markers):
            return warning
    return None


class CapabilityReporter:
    """Collects a ``DeviceStatus`` from the host via psutil.

    ``daemon_running`` is any zero-argument callable; the CLI and API pass the
    supervisor's ``is_running`` property.
    """

    def __init__(
        self,
        daemon_running: Callable[[], bool] = lambda: False,
        storage_path: Optional[str] = None,
        location_enabled: Optional[bool] = None,
        manufacturer: Optional[str] = None,
        model: Optional[str] = None,
    ):
        self._daemon_running = daemon_running
        self.storage_path = storage_path or os.path.abspath(os.sep)
        self.location_enabled = (
            get_device_config().location_enabled if location_enabled is None else location_enabled
        )
        self._manufacturer = manufacturer
        self._model = model

    # ─── Device ───────────────────────────────────────────────────

    def manufacturer(self) -> str:
        return self._manufacturer or _read_text(_DMI_DIR / "sys_vendor") or platform.system() or "unknown"

    def model(self) -> str:
        return self._model or _read_text(_DMI_DIR / "product_name") or platform.machine() or "unknown"

    def device_id(self) -> str:
        for path in _MACHINE_ID_FILES:
            value = _read_text(path)
            if value:
                return mask_sensitive(value, visible_prefix=8)
        return "unknown"

    def device_info(self) -> DeviceInfo:
        mem = psutil.virtual_memory()
        return DeviceInfo(
            manufacturer=self.manufacturer(),
            model=self.model(),
            os_version=f"{platform.system()} {platform.release()}".strip(),
            cpu_cores=psutil.cpu_count(logical=True) or 1,
            total_ram_mb=int(mem.total // MB),
            free_ram_mb=int(mem.available // MB),
            device_id=self.device_id(),
        )

    # ─── Battery ──────────────────────────────────────────────────

    def battery_info(self) -> BatteryInfo:
        sensors_battery = getattr(psutil, "sensors_battery", None)
        battery = sensors_battery() if sensors_battery else None
        if battery is None:
            # No battery (desktop, emulator) reads as mains powered
            return BatteryInfo(level=-1, is_charging=True)
        return BatteryInfo(
            level=int(round(battery.percent)),
            is_charging=bool(battery.power_plugged),
            temperature_celsius=self._battery_temperature(),
        )

    def _battery_temperature(self) -> Optional[float]:
        sensors_temperatures = getattr(psutil, "sensors_temperatures", None)
        if sensors_temperatures is None:
            return None
        try:
            readings = sensors_temperatures()
        except (OSError, RuntimeError):
            return None
        for name, entries in readings.items():
            if "batt" in name.lower() and entries:
                return float(entries[0].current)
        return None

    # ─── Storage ──────────────────────────────────────────────────

    def storage_info(self) -> StorageInfo:
        usage = psutil.disk_usage(self.storage_path)
        return StorageInfo(
            total_gb=round(usage.total / GB, 2),
            free_gb=round(usage.free / GB, 2),
            used_percent=int(usage.percent),
        )

    # ─── Network ──────────────────────────────────────────────────

    def network_info(self) -> NetworkInfo:
        try:
            stats = psutil.net_if_stats()
        except OSError as e:
            logger.debug(f"net_if_stats failed: {e}")
            return NetworkInfo(type="none", is_connected=False)

        candidates = [
            name for name, st in sorted(stats.items())
            if st.isup and not name.startswith("lo")
        ]
        if not candidates:
            return NetworkInfo(type="none", is_connected=False)

        # Prefer wifi, then cellular, then ethernet
        ranked = sorted(
            candidates,
            key=lambda n: {"wifi": 0, "cellular": 1, "ethernet": 2}.get(classify_interface(n), 3),
        )
        best = ranked[0]
        return NetworkInfo(type=classify_interface(best), is_connected=True, interface=best)

    # ─── Full status ──────────────────────────────────────────────

    def is_location_available(self) -> bool:
        return bool(self.location_enabled)

    def full_status(self) -> DeviceStatus:
        return DeviceStatus(
            device=self.device_info(),
            battery=self.battery_info(),
            storage=self.storage_info(),
            network=self.network_info(),
            location_available=self.is_location_available(),
            daemon_running=bool(self._daemon_running()),
        )

    def oem_battery_killer_warning(self) -> Optional[str]:
        return oem_battery_killer_warning(self.manufacturer())
