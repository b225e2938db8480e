"""
Cold-boot trigger: start the worker after a device reboot when the user
enabled auto-start. Acts at most once per boot.
"""

import logging
from typing import Callable, Optional

import psutil

from ..core.logging_config import event
from .preferences import PreferenceStore
from .supervisor import DaemonSupervisor

logger = logging.getLogger(__name__)


def current_boot_id() -> str:
    """Identifier of the current boot (boot timestamp in whole seconds)."""
    return str(int(psutil.boot_time()))


class BootTrigger:
    def __init__(
        self,
        supervisor: DaemonSupervisor,
        preferences: Optional[PreferenceStore] = None,
        boot_id: Callable[[], str] = current_boot_id,
    ):
        self.supervisor = supervisor
        self.preferences = preferences or supervisor.preferences
        self._boot_id = boot_id

    async def on_boot_completed(self) -> bool:
        """Returns True when the worker was started for this boot."""
        boot_id = self._boot_id()
        prefs = self.preferences.load()
        if prefs.last_boot_id == boot_id:
            logger.debug(f"Boot {boot_id} already handled")
            return False

        try:
            self.preferences.update(last_boot_id=boot_id)
        except OSError as e:
            # Still honour the flag; the trigger may act again on a re-delivered boot event
            logger.error(f"Failed to record boot {boot_id}: {e}", extra=event("BOOT"))
        if not prefs.auto_start_on_boot:
            logger.info("Boot completed, auto-start disabled", extra=event("BOOT"))
            return False

        started = await self.supervisor.start()
        if started:
            logger.info("🔄 Auto-started daemon after boot", extra=event("BOOT"))
        else:
            logger.error(f"Auto-start after boot failed: {self.supervisor.last_error}", extra=event("BOOT"))
        return started
