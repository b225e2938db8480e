"""
ADB Automation Backend
======================

Drives an Android device through ``adb``: the element tree comes from
``uiautomator dump`` and actions are injected with ``input`` / ``am`` /
``monkey`` shell commands.

Each call to ``root_in_active_window()`` issues a fresh dump, so the nodes it
returns describe the screen at that moment. Node actions are translated to
coordinates inside the node's bounds.

Text entry: ``input text`` only handles ASCII. Anything else (Vietnamese
labels and messages, emoji) is sent through the ADBKeyboard IME broadcast,
which has to be installed and selected on the device.
"""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from ..core.config import AdbSettings, get_device_config
from .backend import AccessibilityNode, AutomationBackend, GestureCallback
from .models import ElementBounds, GestureDescription, GlobalAction, NodeAction

logger = logging.getLogger(__name__)

BOUNDS_PATTERN = re.compile(r"\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]")

EDITABLE_CLASS_MARKERS = ("EditText", "AutoCompleteTextView", "SearchView")

KEYCODE_HOME = 3
KEYCODE_BACK = 4
KEYCODE_ENTER = 66
KEYCODE_DEL = 67
KEYCODE_MOVE_END = 123
KEYCODE_APP_SWITCH = 187


class AdbError(RuntimeError):
    """An adb command failed or timed out."""


def quote_input_text(text: str) -> str:
    """Shell argument for ``input text``: spaces become ``%s``, then the whole
    string is single-quoted for the device shell."""
    return shlex.quote(text.replace(" ", "%s"))


def parse_bounds(raw: str) -> ElementBounds:
    match = BOUNDS_PATTERN.match(raw or "")
    if not match:
        return ElementBounds()
    return ElementBounds(*(int(g) for g in match.groups()))


class AdbNode(AccessibilityNode):
    """Node of a parsed uiautomator dump."""

    def __init__(self, backend: "AdbBackend", element: ET.Element, parent: Optional["AdbNode"] = None):
        self._backend = backend
        self._attrs = dict(element.attrib)
        self._parent = parent
        self._bounds = parse_bounds(self._attrs.get("bounds", ""))
        self._children: List[AdbNode] = [
            AdbNode(backend, child, self) for child in element if child.tag == "node"
        ]

    def _flag(self, name: str) -> bool:
        return self._attrs.get(name, "false").lower() == "true"

    @property
    def text(self) -> str:
        return self._attrs.get("text", "")

    @property
    def content_description(self) -> str:
        return self._attrs.get("content-desc", "")

    @property
    def class_name(self) -> str:
        return self._attrs.get("class", "")

    @property
    def hint_text(self) -> str:
        return self._attrs.get("hint", "")

    @property
    def is_clickable(self) -> bool:
        return self._flag("clickable") or self._flag("long-clickable")

    @property
    def is_editable(self) -> bool:
        return any(marker in self.class_name for marker in EDITABLE_CLASS_MARKERS)

    @property
    def is_scrollable(self) -> bool:
        return self._flag("scrollable")

    @property
    def is_focused(self) -> bool:
        return self._flag("focused")

    @property
    def bounds(self) -> ElementBounds:
        return self._bounds

    @property
    def package_name(self) -> str:
        return self._attrs.get("package", "")

    @property
    def parent(self) -> Optional["AdbNode"]:
        return self._parent

    @property
    def children(self) -> Sequence["AdbNode"]:
        return self._children

    def perform_action(self, action: NodeAction, arguments: Optional[dict] = None) -> bool:
        x, y = self._bounds.center
        try:
            if action == NodeAction.CLICK:
                self._backend.shell(f"input tap {x} {y}")
            elif action == NodeAction.FOCUS:
                # uiautomator has no focus command; the click that follows focuses the field
                return self._flag("focusable") or self.is_editable
            elif action == NodeAction.SET_TEXT:
                text = (arguments or {}).get("text", "")
                self._backend.replace_text(self, text)
            elif action == NodeAction.IME_ENTER:
                self._backend.shell(f"input keyevent {KEYCODE_ENTER}")
            elif action in (NodeAction.SCROLL_FORWARD, NodeAction.SCROLL_BACKWARD):
                top = self._bounds.top + self._bounds.height // 4
                bottom = self._bounds.bottom - self._bounds.height // 4
                start, end = (bottom, top) if action == NodeAction.SCROLL_FORWARD else (top, bottom)
                self._backend.shell(f"input swipe {x} {start} {x} {end} 300")
            else:
                return False
            return True
        except AdbError as e:
            logger.warning(f"⚠️  adb {action.value} failed: {e}")
            return False


class AdbBackend(AutomationBackend):
    """Automation backend for a device reachable through adb."""

    name = "adb"

    def __init__(self, settings: Optional[AdbSettings] = None, runner=None):
        self.settings = settings or get_device_config().adb
        self._runner = runner or subprocess.run
        self._gesture_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="bizclaw-gesture")
        if self.settings.serial:
            self.name = f"adb:{self.settings.serial}"

    # ─── Command plumbing ─────────────────────────────────────────

    def _base_command(self) -> List[str]:
        command = [self.settings.adb_binary]
        if self.settings.serial:
            command += ["-s", self.settings.serial]
        return command

    def _run(self, args: List[str]) -> str:
        command = self._base_command() + args
        try:
            completed = self._runner(
                command,
                capture_output=True,
                timeout=self.settings.command_timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise AdbError(f"{' '.join(args[:3])}: {e}") from e

        stdout = completed.stdout.decode("utf-8", errors="replace") if isinstance(completed.stdout, bytes) else (completed.stdout or "")
        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace") if isinstance(completed.stderr, bytes) else (completed.stderr or "")
            raise AdbError(f"exit {completed.returncode}: {stderr.strip() or stdout.strip()}")
        return stdout

    def shell(self, command: str) -> str:
        return self._run(["shell", command])

    # ─── Tree ─────────────────────────────────────────────────────

    def dump_hierarchy(self) -> str:
        path = shlex.quote(self.settings.dump_path)
        return self._run(["exec-out", f"uiautomator dump {path} >/dev/null && cat {path}"])

    def root_in_active_window(self) -> Optional[AdbNode]:
        try:
            xml_content = self.dump_hierarchy()
        except AdbError as e:
            logger.debug(f"uiautomator dump failed: {e}")
            return None
        return self.parse_hierarchy(xml_content)

    def parse_hierarchy(self, xml_content: str) -> Optional[AdbNode]:
        start = xml_content.find("<hierarchy")
        if start == -1:
            return None
        try:
            hierarchy = ET.fromstring(xml_content[start:].strip())
        except ET.ParseError as e:
            logger.warning(f"⚠️  Malformed uiautomator dump: {e}")
            return None

        roots = [child for child in hierarchy if child.tag == "node"]
        if not roots:
            return None
        return AdbNode(self, roots[0])

    # ─── Input ────────────────────────────────────────────────────

    def replace_text(self, node: AdbNode, text: str) -> None:
        x, y = node.bounds.center
        self.shell(f"input tap {x} {y}")
        existing = node.text if node.text != node.hint_text else ""
        if existing:
            self.shell(f"input keyevent {KEYCODE_MOVE_END}")
            self.shell("input keyevent " + " ".join([str(KEYCODE_DEL)] * len(existing)))
        self.send_text(text)

    def send_text(self, text: str) -> None:
        if not text:
            return
        if text.isascii():
            self.shell(f"input text {quote_input_text(text)}")
        else:
            self.shell(f"am broadcast -a ADB_INPUT_TEXT --es msg {shlex.quote(text)}")

    def perform_global_action(self, action: GlobalAction) -> bool:
        commands = {
            GlobalAction.BACK: f"input keyevent {KEYCODE_BACK}",
            GlobalAction.HOME: f"input keyevent {KEYCODE_HOME}",
            GlobalAction.RECENTS: f"input keyevent {KEYCODE_APP_SWITCH}",
            GlobalAction.NOTIFICATIONS: "cmd statusbar expand-notifications",
        }
        try:
            self.shell(commands[action])
            return True
        except AdbError as e:
            logger.warning(f"⚠️  Global action {action.value} failed: {e}")
            return False

    def dispatch_gesture(self, gesture: GestureDescription, on_complete: Optional[GestureCallback] = None) -> bool:
        if not gesture.strokes:
            return False

        def _perform() -> None:
            completed = True
            try:
                for stroke in gesture.strokes:
                    x1, y1 = (int(v) for v in stroke.start)
                    x2, y2 = (int(v) for v in (stroke.end or stroke.start))
                    self.shell(f"input swipe {x1} {y1} {x2} {y2} {stroke.duration_ms}")
            except AdbError as e:
                logger.warning(f"⚠️  Gesture failed: {e}")
                completed = False
            if on_complete is not None:
                on_complete(completed)

        try:
            self._gesture_pool.submit(_perform)
        except RuntimeError:
            return False
        return True

    def launch_app(self, package_name: str) -> bool:
        try:
            self.shell(f"monkey -p {shlex.quote(package_name)} -c android.intent.category.LAUNCHER 1")
            return True
        except AdbError as e:
            logger.warning(f"⚠️  Launch of {package_name} failed: {e}")
            return False

    def open_url(self, url: str) -> bool:
        try:
            self.shell(f"am start -a android.intent.action.VIEW -d {shlex.quote(url)}")
            return True
        except AdbError as e:
            logger.warning(f"⚠️  Opening URL failed: {e}")
            return False

    def close(self) -> None:
        self._gesture_pool.shutdown(wait=False)
