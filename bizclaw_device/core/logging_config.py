"""
Device Agent Console Logging
============================

Colorized console logging for automation and daemon events, so a workflow
run can be followed step by step on a terminal attached to the device host.

Records may carry extra fields:
- ``event_type``: selects the icon and colour (STEP_START, STEP_OK, ...)
- ``workflow``: name of the workflow the record belongs to
- ``package``: foreground application identifier
"""

import logging
import sys
import threading
from datetime import datetime
from typing import Optional

import colorama
from colorama import Fore, Style

colorama.init(autoreset=True)


class DeviceLogFormatter(logging.Formatter):
    """Formatter with icons and colours keyed by event type."""

    ICONS = {
        'CAPTURE': '📸',
        'UNAVAILABLE': '🚫',
        'ACTION': '👆',
        'STEP_START': '▶️',
        'STEP_OK': '✅',
        'STEP_FAILED': '❌',
        'WORKFLOW': '🧭',
        'DAEMON': '🤖',
        'LEASE': '🔋',
        'NATIVE_FAULT': '🚨',
        'BOOT': '🔄',
    }

    COLORS = {
        'CAPTURE': Fore.CYAN,
        'UNAVAILABLE': Fore.YELLOW,
        'ACTION': Fore.WHITE,
        'STEP_START': Fore.BLUE,
        'STEP_OK': Fore.GREEN,
        'STEP_FAILED': Fore.RED,
        'WORKFLOW': Fore.MAGENTA,
        'DAEMON': Fore.GREEN + Style.BRIGHT,
        'LEASE': Fore.YELLOW,
        'NATIVE_FAULT': Fore.RED + Style.BRIGHT,
        'BOOT': Fore.CYAN + Style.BRIGHT,
    }

    LEVEL_COLORS = {
        logging.DEBUG: Style.DIM,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.RED + Style.BRIGHT,
    }

    def format(self, record):
        event_type = getattr(record, 'event_type', '')
        icon = self.ICONS.get(event_type, '')
        color = self.COLORS.get(event_type) or self.LEVEL_COLORS.get(record.levelno, '')

        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        parts = [
            f"{Fore.BLUE}{timestamp}{Style.RESET_ALL}",
            f"{Style.DIM}{record.name}{Style.RESET_ALL}",
        ]
        message = record.getMessage()
        parts.append(f"{icon} {color}{message}{Style.RESET_ALL}" if icon else f"{color}{message}{Style.RESET_ALL}")

        workflow = getattr(record, 'workflow', '')
        if workflow:
            parts.append(f"{Fore.MAGENTA}[{workflow}]{Style.RESET_ALL}")

        package = getattr(record, 'package', '')
        if package:
            parts.append(f"{Fore.YELLOW}({package}){Style.RESET_ALL}")

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


_configured = False
_configure_lock = threading.Lock()


def configure_logging(level: Optional[str] = None, stream=None) -> None:
    """Install the colour formatter on the ``bizclaw_device`` logger tree.

    Safe to call more than once; later calls only adjust the level.
    """
    global _configured

    if level is None:
        from .config import get_device_config
        level = get_device_config().log_level

    root = logging.getLogger("bizclaw_device")
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    with _configure_lock:
        if _configured:
            return
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(DeviceLogFormatter())
        root.handlers = [handler]
        root.propagate = False
        _configured = True


def event(event_type: str, **fields) -> dict:
    """Build the ``extra`` mapping for a logging call.

    Example:
        logger.info("Step 2 ok", extra=event("STEP_OK", workflow="facebook.post"))
    """
    extra = {'event_type': event_type}
    extra.update(fields)
    return extra
