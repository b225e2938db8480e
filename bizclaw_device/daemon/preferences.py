"""
Persisted device preferences.

A small JSON document that survives reboots and process reclamation:

- ``auto_start_on_boot``: start the worker when the device finishes booting
- ``last_command``: ``"start"`` or ``"stop"``, replayed on relaunch
- ``last_boot_id``: boot the boot trigger last acted on
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

import aiofiles

logger = logging.getLogger(__name__)

VALID_COMMANDS = ("start", "stop")


@dataclass
class DevicePreferences:
    auto_start_on_boot: bool = False
    last_command: Optional[str] = None
    last_boot_id: Optional[str] = None


class PreferenceStore:
    """Load/save ``DevicePreferences`` at a fixed path.

    A missing or corrupt file reads as defaults. Writes go through a temp
    file and ``os.replace`` so a reclaimed process never leaves half a file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> DevicePreferences:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return DevicePreferences()
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable preferences at {self.path}, using defaults: {e}")
            return DevicePreferences()
        if not isinstance(data, dict):
            return DevicePreferences()

        command = data.get("last_command")
        boot_id = data.get("last_boot_id")
        auto_start = data.get("auto_start_on_boot")
        return DevicePreferences(
            # Only a JSON boolean counts; "false" or 1 from a hand-edited file do not
            auto_start_on_boot=auto_start if isinstance(auto_start, bool) else False,
            last_command=command if command in VALID_COMMANDS else None,
            last_boot_id=str(boot_id) if boot_id is not None else None,
        )

    def save(self, prefs: DevicePreferences) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".prefs.", suffix=".tmp")
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                json.dump(asdict(prefs), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    async def save_async(self, prefs: DevicePreferences) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(asdict(prefs), indent=2))
        os.replace(tmp_path, self.path)

    def update(self, **changes) -> DevicePreferences:
        prefs = self.load()
        for key, value in changes.items():
            if not hasattr(prefs, key):
                raise AttributeError(f"unknown preference: {key}")
            setattr(prefs, key, value)
        self.save(prefs)
        return prefs

    async def record_command(self, command: str) -> None:
        """Remember the last lifecycle command for relaunch. Failures are logged, not raised."""
        if command not in VALID_COMMANDS:
            raise ValueError(f"unknown command: {command}")
        try:
            prefs = self.load()
            prefs.last_command = command
            await self.save_async(prefs)
        except OSError as e:
            logger.error(f"Failed to persist last command {command!r}: {e}")

    def set_auto_start(self, enabled: bool) -> DevicePreferences:
        return self.update(auto_start_on_boot=bool(enabled))
