"""
Process priority while the worker runs.

Raising priority (lower niceness) needs privileges on most systems. When the
OS refuses, the worker keeps running at its current priority.
"""

import logging
from typing import Optional

import psutil

logger = logging.getLogger(__name__)


class ProcessPriority:
    def __init__(self, elevated_nice: int = -5, pid: Optional[int] = None, enabled: bool = True):
        self.elevated_nice = elevated_nice
        self.enabled = enabled
        self._process = psutil.Process(pid)
        self._original_nice: Optional[int] = None

    @property
    def elevated(self) -> bool:
        return self._original_nice is not None

    def current(self) -> Optional[int]:
        try:
            return self._process.nice()
        except (psutil.Error, OSError):
            return None

    def elevate(self) -> bool:
        if not self.enabled or self.elevated:
            return self.elevated
        try:
            self._original_nice = self._process.nice()
            self._process.nice(self.elevated_nice)
            logger.debug(f"Priority elevated: nice {self._original_nice} -> {self.elevated_nice}")
            return True
        except (psutil.AccessDenied, PermissionError) as e:
            logger.info(f"Priority elevation not permitted, staying at current priority: {e}")
        except (psutil.Error, OSError) as e:
            logger.warning(f"Priority elevation failed: {e}")
        self._original_nice = None
        return False

    def restore(self) -> None:
        if self._original_nice is None:
            return
        try:
            self._process.nice(self._original_nice)
            logger.debug(f"Priority restored: nice {self._original_nice}")
        except (psutil.Error, OSError) as e:
            logger.warning(f"Priority restore failed: {e}")
        finally:
            self._original_nice = None
