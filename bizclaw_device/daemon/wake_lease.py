"""
Wake lease with a hard ceiling.

A lease keeps the background worker eligible for CPU time. It expires on its
own once ``ceiling_seconds`` pass without a renewal, so a worker that wedges
cannot pin the device awake forever. Only the supervisor's keep-alive loop
renews it.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from ..core.logging_config import event

logger = logging.getLogger(__name__)

DEFAULT_CEILING_SECONDS = 600.0


@dataclass
class WakeLease:
    ceiling_seconds: float = DEFAULT_CEILING_SECONDS
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    acquired_at: Optional[float] = None
    last_renewed_at: Optional[float] = None
    renewal_count: int = 0
    released: bool = False

    def __post_init__(self):
        if self.ceiling_seconds <= 0:
            raise ValueError(f"ceiling_seconds must be positive, got {self.ceiling_seconds}")

    def acquire(self) -> "WakeLease":
        now = self.clock()
        self.acquired_at = now
        self.last_renewed_at = now
        self.renewal_count = 0
        self.released = False
        logger.info(f"🔋 Wake lease acquired ({self.ceiling_seconds:.0f}s ceiling)", extra=event("LEASE"))
        return self

    def renew(self) -> bool:
        """Push the expiry out by a full ceiling. A released or expired lease stays dead."""
        if self.released or self.acquired_at is None or self.is_expired():
            return False
        self.last_renewed_at = self.clock()
        self.renewal_count += 1
        logger.debug(f"Wake lease renewed (#{self.renewal_count})", extra=event("LEASE"))
        return True

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        if self.acquired_at is not None:
            logger.info(f"🔋 Wake lease released after {self.renewal_count} renewal(s)", extra=event("LEASE"))

    @property
    def held(self) -> bool:
        return self.acquired_at is not None and not self.released

    def remaining(self) -> float:
        if not self.held:
            return 0.0
        return max(0.0, self.last_renewed_at + self.ceiling_seconds - self.clock())

    def is_expired(self) -> bool:
        if not self.held:
            return True
        return self.clock() - self.last_renewed_at >= self.ceiling_seconds

    def is_alive(self) -> bool:
        return self.held and not self.is_expired()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "held": self.held,
            "alive": self.is_alive(),
            "ceiling_seconds": self.ceiling_seconds,
            "remaining_seconds": round(self.remaining(), 1),
            "renewal_count": self.renewal_count,
        }
