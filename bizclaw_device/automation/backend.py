"""
Automation backend contract.

An ``AutomationBackend`` is whatever grants access to the foreground
application's accessibility tree (an on-device accessibility service, an adb
bridge, a test double). ``AccessibilityNode`` is a live view of one node in
that tree: its attributes may change between two reads because the tree is
owned by another application.

``AutomationContext`` is the explicit handle the reader, the dispatcher and
the workflow engine receive. A backend becomes usable by binding it to a
context and stops being usable when it is unbound; there is no module-level
"current instance".
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Iterator, List, Optional, Sequence

from .models import ElementBounds, GestureDescription, GlobalAction, NodeAction

logger = logging.getLogger(__name__)

GestureCallback = Callable[[bool], None]


class AccessibilityNode(ABC):
    """Live node of the externally-owned element tree."""

    @property
    @abstractmethod
    def text(self) -> str: ...

    @property
    @abstractmethod
    def content_description(self) -> str: ...

    @property
    @abstractmethod
    def class_name(self) -> str: ...

    @property
    @abstractmethod
    def hint_text(self) -> str: ...

    @property
    @abstractmethod
    def is_clickable(self) -> bool: ...

    @property
    @abstractmethod
    def is_editable(self) -> bool: ...

    @property
    @abstractmethod
    def is_scrollable(self) -> bool: ...

    @property
    @abstractmethod
    def is_focused(self) -> bool: ...

    @property
    @abstractmethod
    def bounds(self) -> ElementBounds: ...

    @property
    @abstractmethod
    def package_name(self) -> str: ...

    @property
    @abstractmethod
    def parent(self) -> Optional["AccessibilityNode"]: ...

    @property
    @abstractmethod
    def children(self) -> Sequence["AccessibilityNode"]: ...

    @abstractmethod
    def perform_action(self, action: NodeAction, arguments: Optional[dict] = None) -> bool:
        """Ask the backend to perform ``action``; True when it was accepted."""

    def walk(self) -> Iterator["AccessibilityNode"]:
        """Depth-first pre-order traversal starting at this node."""
        stack: List[AccessibilityNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(list(node.children)))

    def find_by_text(self, query: str) -> List["AccessibilityNode"]:
        """Nodes whose text or description contains ``query`` (case-insensitive).

        Results follow traversal order. Backends with a native text search
        override this.
        """
        needle = query.lower()
        if not needle:
            return []
        return [
            node for node in self.walk()
            if needle in node.text.lower() or needle in node.content_description.lower()
        ]

    def find_input_focus(self) -> Optional["AccessibilityNode"]:
        for node in self.walk():
            if node.is_focused:
                return node
        return None


class AutomationBackend(ABC):
    """Access point to the device's accessibility tree and input injection."""

    name: str = "backend"

    @abstractmethod
    def root_in_active_window(self) -> Optional[AccessibilityNode]:
        """Root of the focused window, or None when no window is active."""

    @abstractmethod
    def perform_global_action(self, action: GlobalAction) -> bool: ...

    @abstractmethod
    def dispatch_gesture(self, gesture: GestureDescription, on_complete: Optional[GestureCallback] = None) -> bool:
        """Queue a gesture. Returns whether it was accepted; ``on_complete``
        later receives True when it finished or False when it was cancelled."""

    @abstractmethod
    def launch_app(self, package_name: str) -> bool: ...

    @abstractmethod
    def open_url(self, url: str) -> bool: ...


class AutomationContext:
    """Handle to the currently bound backend.

    Usage:
        context = AutomationContext()
        context.bind(AdbBackend())
        ...
        context.unbind()
    """

    def __init__(self, backend: Optional[AutomationBackend] = None):
        self._lock = threading.Lock()
        self._backend: Optional[AutomationBackend] = None
        if backend is not None:
            self.bind(backend)

    @property
    def backend(self) -> Optional[AutomationBackend]:
        return self._backend

    @property
    def is_bound(self) -> bool:
        return self._backend is not None

    def bind(self, backend: AutomationBackend) -> None:
        with self._lock:
            self._backend = backend
        logger.info(f"♿ Automation backend bound: {backend.name}")

    def unbind(self) -> None:
        with self._lock:
            backend, self._backend = self._backend, None
        if backend is not None:
            logger.info(f"♿ Automation backend unbound: {backend.name}")

    def active_root(self) -> Optional[AccessibilityNode]:
        """Root of the active window, or None when unbound or no window is focused."""
        backend = self._backend
        if backend is None:
            return None
        try:
            return backend.root_in_active_window()
        except Exception as e:
            logger.warning(f"⚠️  Could not read active window from {backend.name}: {e}")
            return None
