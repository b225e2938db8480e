"""
BizClaw Daemon Supervisor
=========================

Keeps the native engine running as a long-lived background worker.

State machine:

    STOPPED --start()--> STARTING --native ok--> RUNNING --stop()--> STOPPING --> STOPPED
                             |
                             +--native fault--> STOPPED

While RUNNING the worker holds a ``WakeLease`` (10 minute ceiling) that only
the keep-alive loop renews, and runs at elevated priority when the OS allows
it. Every exit path releases the lease and restores priority.

Self-healing:
- ``on_task_removed()``: the host dropped the worker's task; restart only if
  it was RUNNING, reusing the engine when it is still up. After an explicit
  ``stop()`` a removal does nothing.
- ``relaunch()``: after the process itself was reclaimed, replay the last
  persisted lifecycle command.
"""

import asyncio
import logging
import os
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from ..core.config import DaemonSettings, get_device_config
from ..core.logging_config import event
from ..core.secure_logging import sanitize_for_log
from .native_bridge import DaemonConfig, MessageResponse, NativeEngine
from .preferences import PreferenceStore
from .priority import ProcessPriority
from .wake_lease import WakeLease

logger = logging.getLogger(__name__)


class DaemonState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class DaemonSupervisor:
    """Lifecycle owner for the background worker.

    All lifecycle transitions are serialized through one ``asyncio.Lock``;
    blocking native calls run in a worker thread.
    """

    def __init__(
        self,
        settings: Optional[DaemonSettings] = None,
        engine: Optional[NativeEngine] = None,
        preferences: Optional[PreferenceStore] = None,
        priority: Optional[ProcessPriority] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_terminate: Optional[Callable[[], Any]] = None,
    ):
        self.settings = settings or get_device_config().daemon
        self.engine = engine or NativeEngine(self.settings.native_library)
        self.preferences = preferences or PreferenceStore(self.settings.preferences_path)
        self.priority = priority or ProcessPriority(
            self.settings.elevated_nice, enabled=self.settings.manage_priority
        )
        self.on_terminate = on_terminate
        self._clock = clock
        self._sleep = sleep

        self._state = DaemonState.STOPPED
        self._lock = asyncio.Lock()
        self._lease: Optional[WakeLease] = None
        self._keep_alive_task: Optional[asyncio.Task] = None
        self._started_at: Optional[float] = None
        self.last_error: Optional[str] = None
        self.start_count = 0
        self.restart_count = 0

    @property
    def state(self) -> DaemonState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == DaemonState.RUNNING

    def _transition(self, new_state: DaemonState, reason: str = "") -> None:
        old = self._state
        self._state = new_state
        suffix = f" ({reason})" if reason else ""
        logger.info(f"Daemon {old.value} -> {new_state.value}{suffix}", extra=event("DAEMON"))

    def daemon_config(self) -> DaemonConfig:
        s = self.settings
        return DaemonConfig(config_path=s.config_path, data_dir=s.data_dir, host=s.host, port=s.port)

    # ─── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> bool:
        """Bring the worker up. Returns True when it is running afterwards."""
        async with self._lock:
            return await self._start_locked()

    async def _start_locked(self) -> bool:
        if self._state in (DaemonState.RUNNING, DaemonState.STARTING):
            logger.debug(f"start() ignored, daemon already {self._state.value}")
            return True

        self._transition(DaemonState.STARTING)
        started = False
        try:
            self.priority.elevate()
            self._lease = WakeLease(self.settings.wake_lease_ceiling, clock=self._clock).acquire()
            await self.preferences.record_command("start")
            result = await asyncio.to_thread(self.engine.start, self.daemon_config())
            started = result.ok
            if not started:
                self.last_error = result.error
        except Exception as e:
            # Bad settings (lease ceiling, port) or an unwritable preferences file
            self.last_error = f"{type(e).__name__}: {e}"
            logger.error(f"Daemon start aborted: {self.last_error}", extra=event("DAEMON"))
        finally:
            if not started:
                self._teardown()
                self._transition(DaemonState.STOPPED, f"start failed: {self.last_error}")

        if not started:
            return False

        self.start_count += 1
        self._started_at = self._clock()
        self.last_error = None
        self._transition(DaemonState.RUNNING)
        self._keep_alive_task = asyncio.create_task(self._keep_alive(), name="bizclaw-keep-alive")
        logger.info(f"🤖 Daemon started on {self.settings.host}:{self.settings.port}", extra=event("DAEMON"))
        return True

    async def stop(self) -> bool:
        """Take the worker down and release everything it holds."""
        async with self._lock:
            if self._state == DaemonState.STOPPED:
                await self.preferences.record_command("stop")
                return True

            self._transition(DaemonState.STOPPING)
            await self._cancel_keep_alive()
            try:
                result = await asyncio.to_thread(self.engine.stop)
                if not result.ok:
                    self.last_error = result.error
            finally:
                self._teardown()
                self._transition(DaemonState.STOPPED)

            await self.preferences.record_command("stop")
            logger.info("🛑 Daemon stopped", extra=event("DAEMON"))

        self._notify_terminate()
        return result.ok

    def _teardown(self) -> None:
        if self._lease is not None:
            self._lease.release()
        self.priority.restore()
        self._started_at = None

    def _notify_terminate(self) -> None:
        if self.on_terminate is None:
            return
        try:
            self.on_terminate()
        except Exception as e:
            logger.warning(f"Terminate hook failed: {e}")

    async def on_task_removed(self) -> bool:
        """The host removed the worker's task. Restart only a worker that was running.

        Returns True when the worker is running afterwards. An engine that
        survived the removal is kept; only a dead one is started again.
        """
        async with self._lock:
            if self._state != DaemonState.RUNNING:
                logger.debug(f"Task removed while {self._state.value}, not restarting")
                return False

            logger.warning("Task removed while running, restarting worker", extra=event("DAEMON"))
            self.restart_count += 1
            await self._cancel_keep_alive()

            # The engine refuses a second start while it is still up
            current = await asyncio.to_thread(self.engine.status)
            if current.ok and current.value.running:
                return await self._resume_running()

            self._teardown()
            self._state = DaemonState.STOPPED
            return await self._start_locked()

    async def _resume_running(self) -> bool:
        """Re-take the lease and priority around an engine that is still running."""
        try:
            if self._lease is not None:
                self._lease.release()
            self.priority.elevate()
            self._lease = WakeLease(self.settings.wake_lease_ceiling, clock=self._clock).acquire()
        except Exception as e:
            self.last_error = f"{type(e).__name__}: {e}"
            logger.error(f"Worker resume failed: {self.last_error}", extra=event("DAEMON"))
            await asyncio.to_thread(self.engine.stop)
            self._teardown()
            self._transition(DaemonState.STOPPED, "resume failed")
            return False

        self._keep_alive_task = asyncio.create_task(self._keep_alive(), name="bizclaw-keep-alive")
        logger.info("🤖 Engine still running, worker resumed", extra=event("DAEMON"))
        return True

    async def relaunch(self) -> bool:
        """Process was recreated: replay the last persisted lifecycle command."""
        prefs = self.preferences.load()
        if prefs.last_command == "start":
            logger.info("Relaunch: replaying last command 'start'", extra=event("DAEMON"))
            return await self.start()
        logger.debug(f"Relaunch: last command {prefs.last_command!r}, staying stopped")
        return False

    # ─── Wake lease ───────────────────────────────────────────────

    async def _keep_alive(self) -> None:
        interval = min(self.settings.wake_lease_renew_interval, self.settings.wake_lease_ceiling / 2)
        while self._state == DaemonState.RUNNING:
            await self._sleep(interval)
            if self._state != DaemonState.RUNNING:
                break
            if not self.renew_wake_lease():
                logger.warning("Wake lease expired before renewal, acquiring a new one", extra=event("LEASE"))
                self._lease = WakeLease(self.settings.wake_lease_ceiling, clock=self._clock).acquire()

    async def _cancel_keep_alive(self) -> None:
        task, self._keep_alive_task = self._keep_alive_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def renew_wake_lease(self) -> bool:
        """Extend the lease by a full ceiling. Called by the keep-alive loop."""
        if self._lease is None:
            return False
        return self._lease.renew()

    def is_wake_lease_alive(self) -> bool:
        return self._lease is not None and self._lease.is_alive()

    # ─── Native calls ─────────────────────────────────────────────

    async def send_message(self, text: str) -> MessageResponse:
        if self._state != DaemonState.RUNNING:
            return MessageResponse(success=False, response="Daemon not running")
        logger.info(f"Message to engine: {sanitize_for_log(text, 80)!r}", extra=event("DAEMON"))
        result = await asyncio.to_thread(self.engine.send_message, text)
        if not result.ok:
            return MessageResponse(success=False, response=f"Engine fault: {result.error}")
        return result.value

    async def version(self) -> Optional[str]:
        result = await asyncio.to_thread(self.engine.version)
        return result.value if result.ok else None

    async def status(self) -> Dict[str, Any]:
        engine_status = None
        if self._state == DaemonState.RUNNING:
            result = await asyncio.to_thread(self.engine.status)
            engine_status = result.value.to_dict() if result.ok else {"running": False, "error": result.error}

        uptime = self._clock() - self._started_at if self._started_at is not None else 0.0
        return {
            "state": self._state.value,
            "running": self.is_running,
            "pid": os.getpid(),
            "uptime_secs": round(uptime, 1),
            "wake_lease": self._lease.to_dict() if self._lease else None,
            "priority_elevated": self.priority.elevated,
            "engine": engine_status,
            "native_faults": self.engine.fault_count,
            "last_error": self.last_error,
            "start_count": self.start_count,
            "restart_count": self.restart_count,
        }


_supervisor: Optional[DaemonSupervisor] = None


def get_daemon_supervisor() -> DaemonSupervisor:
    """Get or create the process-wide supervisor."""
    global _supervisor
    if _supervisor is None:
        _supervisor = DaemonSupervisor()
    return _supervisor


def reset_daemon_supervisor() -> None:
    global _supervisor
    _supervisor = None
