"""
Daemon: supervision of the background worker and the native engine bridge.
"""

from .boot import BootTrigger, current_boot_id
from .native_bridge import (
    DaemonConfig,
    DaemonStatus,
    MessageResponse,
    NativeCallResult,
    NativeEngine,
    NativeLibrary,
    NativeLibraryError,
)
from .preferences import DevicePreferences, PreferenceStore
from .priority import ProcessPriority
from .supervisor import DaemonState, DaemonSupervisor, get_daemon_supervisor
from .wake_lease import WakeLease

__all__ = [
    "BootTrigger",
    "current_boot_id",
    "DaemonConfig",
    "DaemonStatus",
    "MessageResponse",
    "NativeCallResult",
    "NativeEngine",
    "NativeLibrary",
    "NativeLibraryError",
    "DevicePreferences",
    "PreferenceStore",
    "ProcessPriority",
    "DaemonState",
    "DaemonSupervisor",
    "get_daemon_supervisor",
    "WakeLease",
]
