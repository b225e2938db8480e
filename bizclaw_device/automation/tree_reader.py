"""
Element Tree Reader
===================

Turns the live, externally-owned accessibility tree into a bounded
``ScreenSnapshot``. Traversal is depth-first, stops descending below the
configured depth and keeps at most the configured number of elements, so
capture cost stays bounded even on very large trees.

A node is kept when it has text, is clickable or is editable; everything
else is layout structure.

``capture()`` returning None is a normal outcome (automation permission not
granted, or no window focused). Callers poll or back off.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from ..core.config import AutomationConfig, get_device_config
from ..core.logging_config import event
from .backend import AccessibilityNode, AutomationContext
from .models import ScreenElement, ScreenSnapshot

logger = logging.getLogger(__name__)


def node_to_element(node: AccessibilityNode) -> ScreenElement:
    """Copy the attributes of a live node into an immutable element."""
    class_name = node.class_name or ""
    return ScreenElement(
        text=node.text or "",
        content_description=node.content_description or "",
        class_name=class_name.rsplit(".", 1)[-1],
        is_clickable=bool(node.is_clickable),
        is_editable=bool(node.is_editable),
        is_scrollable=bool(node.is_scrollable),
        hint=node.hint_text or "",
        bounds=node.bounds,
    )


def is_meaningful(element: ScreenElement) -> bool:
    return bool(element.text) or element.is_clickable or element.is_editable


def editable_nodes(root: AccessibilityNode) -> List[AccessibilityNode]:
    """Every editable node under ``root`` in traversal order."""
    return [node for node in root.walk() if node.is_editable]


def focused_editable(root: AccessibilityNode) -> Optional[AccessibilityNode]:
    """Node holding input focus if it is editable, else the first editable field."""
    focused = root.find_input_focus()
    if focused is not None and focused.is_editable:
        return focused
    fields = editable_nodes(root)
    return fields[0] if fields else None


def first_scrollable(root: AccessibilityNode) -> Optional[AccessibilityNode]:
    for node in root.walk():
        if node.is_scrollable:
            return node
    return None


class ElementTreeReader:
    """Captures snapshots from the backend bound to ``context``."""

    def __init__(self, context: AutomationContext, config: Optional[AutomationConfig] = None):
        self.context = context
        self.config = config or get_device_config().automation

    def capture(self) -> Optional[ScreenSnapshot]:
        """Snapshot of the active window, or None when unavailable."""
        root = self.context.active_root()
        if root is None:
            logger.debug("No active window to capture", extra=event("UNAVAILABLE"))
            return None

        try:
            return self._build_snapshot(root)
        except Exception as e:
            # The tree can disappear mid-walk when the target app re-renders
            logger.warning(f"⚠️  Tree capture aborted: {e}", extra=event("UNAVAILABLE"))
            return None

    def _build_snapshot(self, root: AccessibilityNode) -> ScreenSnapshot:
        max_depth = self.config.max_tree_depth
        cap = self.config.max_snapshot_elements

        kept: List[ScreenElement] = []
        retained = 0
        stack = [(root, 0)]
        while stack:
            node, depth = stack.pop()
            if node is None or depth > max_depth:
                continue
            element = node_to_element(node)
            if is_meaningful(element):
                retained += 1
                if len(kept) < cap:
                    kept.append(element)
            stack.extend((child, depth + 1) for child in reversed(list(node.children)))

        package = root.package_name or "unknown"
        logger.debug(
            f"Captured {len(kept)}/{retained} elements",
            extra=event("CAPTURE", package=package),
        )
        return ScreenSnapshot(package_name=package, element_count=retained, elements=tuple(kept))

    def wait_until_stable(
        self,
        samples: Optional[int] = None,
        interval: Optional[float] = None,
        max_wait: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> Optional[ScreenSnapshot]:
        """Re-capture until the content hash repeats ``samples`` times in a row.

        Gives up after ``max_wait`` seconds and returns the latest snapshot
        (None when the window stayed unavailable).
        """
        samples = max(1, samples or self.config.settle_samples)
        interval = self.config.settle_interval if interval is None else interval
        max_wait = self.config.settle_max_wait if max_wait is None else max_wait

        deadline = clock() + max_wait
        last: Optional[ScreenSnapshot] = None
        last_print: Optional[str] = None
        streak = 0
        while True:
            snapshot = self.capture()
            fingerprint = snapshot.fingerprint() if snapshot is not None else None
            if fingerprint is not None and fingerprint == last_print:
                streak += 1
            else:
                streak = 1 if fingerprint is not None else 0
            last, last_print = snapshot, fingerprint

            if streak >= samples or clock() >= deadline:
                return last
            sleep(interval)
