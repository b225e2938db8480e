"""
Native Engine Bridge
====================

The BizClaw engine ships as a shared library exposing five calls that take
and return JSON strings:

    bizclaw_start_daemon(config_json) -> result json
    bizclaw_stop_daemon()             -> result json
    bizclaw_get_status()              -> status json
    bizclaw_send_message(message)     -> response json
    bizclaw_get_version()             -> version string

Returned strings are owned by the library and handed back through
``bizclaw_free_string``.

Nothing raised on either side of this boundary may reach the supervisor:
``NativeEngine`` turns a missing library, a ctypes error or malformed JSON
into a ``NativeCallResult`` with ``ok=False``.
"""

import ctypes
import json
import logging
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..core.logging_config import event

logger = logging.getLogger(__name__)


@dataclass
class DaemonConfig:
    """Startup parameters handed to the engine."""
    config_path: str
    data_dir: str
    host: str = "127.0.0.1"
    port: int = 3001

    def __post_init__(self):
        if not 0 < int(self.port) < 65536:
            raise ValueError(f"port out of range: {self.port}")
        self.port = int(self.port)

    def to_json(self) -> str:
        return json.dumps(asdict(self))


@dataclass
class DaemonStatus:
    running: bool = False
    uptime_secs: int = 0
    agent_count: int = 0
    active_sessions: int = 0
    total_requests: int = 0
    memory_bytes: int = 0
    version: str = ""
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DaemonStatus":
        return cls(
            running=bool(data.get("running", False)),
            uptime_secs=int(data.get("uptime_secs", 0) or 0),
            agent_count=int(data.get("agent_count", 0) or 0),
            active_sessions=int(data.get("active_sessions", 0) or 0),
            total_requests=int(data.get("total_requests", 0) or 0),
            memory_bytes=int(data.get("memory_bytes", 0) or 0),
            version=str(data.get("version", "") or ""),
            error=data.get("error"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MessageResponse:
    success: bool = False
    response: str = ""
    agent: str = ""
    tokens_used: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessageResponse":
        return cls(
            success=bool(data.get("success", False)),
            response=str(data.get("response", "") or ""),
            agent=str(data.get("agent", "") or ""),
            tokens_used=int(data.get("tokens_used", 0) or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NativeCallResult:
    """Outcome of one call across the native boundary."""
    ok: bool
    call: str
    value: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "call": self.call, "error": self.error}


class NativeLibraryError(RuntimeError):
    """The engine library could not be loaded or reported a failure."""


class NativeLibrary:
    """Thin ctypes binding over the engine's exported symbols.

    Methods raise on failure; fault isolation lives in ``NativeEngine``.
    """

    def __init__(self, path: str):
        self.path = str(path)
        if not Path(self.path).exists():
            raise NativeLibraryError(f"native library not found: {self.path}")
        self._lib = ctypes.CDLL(self.path)

        # Returned char* must stay a raw pointer so it can be freed
        for name in ("bizclaw_start_daemon", "bizclaw_stop_daemon", "bizclaw_get_status",
                     "bizclaw_send_message", "bizclaw_get_version"):
            fn = getattr(self._lib, name)
            fn.restype = ctypes.c_void_p
        self._lib.bizclaw_start_daemon.argtypes = [ctypes.c_char_p]
        self._lib.bizclaw_stop_daemon.argtypes = []
        self._lib.bizclaw_get_status.argtypes = []
        self._lib.bizclaw_send_message.argtypes = [ctypes.c_char_p]
        self._lib.bizclaw_get_version.argtypes = []
        self._lib.bizclaw_free_string.argtypes = [ctypes.c_void_p]
        self._lib.bizclaw_free_string.restype = None

    def _take_string(self, pointer: Optional[int]) -> str:
        if not pointer:
            raise NativeLibraryError("native call returned NULL")
        try:
            return ctypes.string_at(pointer).decode("utf-8")
        finally:
            self._lib.bizclaw_free_string(pointer)

    def start_daemon(self, config_json: str) -> str:
        return self._take_string(self._lib.bizclaw_start_daemon(config_json.encode("utf-8")))

    def stop_daemon(self) -> str:
        return self._take_string(self._lib.bizclaw_stop_daemon())

    def get_status(self) -> str:
        return self._take_string(self._lib.bizclaw_get_status())

    def send_message(self, message: str) -> str:
        return self._take_string(self._lib.bizclaw_send_message(message.encode("utf-8")))

    def get_version(self) -> str:
        return self._take_string(self._lib.bizclaw_get_version())


def _check_result_json(raw: str) -> Dict[str, Any]:
    """Decode a start/stop result: ``{"ok": true}`` or ``{"ok": false, "error": "..."}``."""
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise NativeLibraryError(f"unexpected result payload: {raw[:80]!r}")
    if not data.get("ok", False):
        raise NativeLibraryError(str(data.get("error") or "engine reported failure"))
    return data


class NativeEngine:
    """Fault-isolated facade over the native engine.

    The library is loaded lazily on first use. Tests pass any object with
    the ``NativeLibrary`` methods via ``library``.
    """

    def __init__(self, library_path: Optional[str] = None, library: Optional[Any] = None,
                 loader: Callable[[str], Any] = NativeLibrary):
        self.library_path = library_path
        self._library = library
        self._loader = loader
        self._lock = threading.Lock()
        self.fault_count = 0
        self.last_error: Optional[str] = None

    def _load(self) -> Any:
        if self._library is None:
            if not self.library_path:
                raise NativeLibraryError("no native library configured (set BIZCLAW_NATIVE_LIBRARY)")
            self._library = self._loader(self.library_path)
            logger.info(f"Loaded native engine from {self.library_path}", extra=event("DAEMON"))
        return self._library

    @property
    def loaded(self) -> bool:
        return self._library is not None

    def _guarded(self, call: str, fn: Callable[[Any], Any]) -> NativeCallResult:
        with self._lock:
            try:
                value = fn(self._load())
                return NativeCallResult(ok=True, call=call, value=value)
            except Exception as e:
                self.fault_count += 1
                self.last_error = f"{type(e).__name__}: {e}"
                logger.error(f"Native {call} faulted: {self.last_error}", extra=event("NATIVE_FAULT"))
                return NativeCallResult(ok=False, call=call, error=self.last_error)

    def start(self, config: DaemonConfig) -> NativeCallResult:
        return self._guarded("start_daemon", lambda lib: _check_result_json(lib.start_daemon(config.to_json())))

    def stop(self) -> NativeCallResult:
        return self._guarded("stop_daemon", lambda lib: _check_result_json(lib.stop_daemon()))

    def status(self) -> NativeCallResult:
        return self._guarded("get_status", lambda lib: DaemonStatus.from_dict(json.loads(lib.get_status())))

    def send_message(self, message: str) -> NativeCallResult:
        return self._guarded(
            "send_message", lambda lib: MessageResponse.from_dict(json.loads(lib.send_message(message)))
        )

    def version(self) -> NativeCallResult:
        return self._guarded("get_version", lambda lib: str(lib.get_version()).strip())
