"""
Matcher / Action Dispatcher
===========================

Resolves textual queries against the live tree and issues primitive
actions: click, type, scroll, gestures and global navigation.

Every primitive returns a boolean (or an empty result) and never raises.
When no backend is bound, or the backend has no active window, primitives
fail immediately without side effects.

Matching is first-match-wins in traversal order. When the same text appears
twice on screen the earlier node in the tree is acted on; there is no
ranking by visibility or position.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import List, Optional

from ..core.config import AutomationConfig, get_device_config
from ..core.logging_config import event
from ..core.secure_logging import sanitize_for_log
from .backend import AccessibilityNode, AutomationContext
from .models import GestureDescription, GlobalAction, NodeAction, ScreenElement
from .tree_reader import ElementTreeReader, editable_nodes, first_scrollable, focused_editable, node_to_element

logger = logging.getLogger(__name__)


@dataclass
class GestureResult:
    """Outcome of a gesture dispatch.

    ``accepted`` reflects only that the backend queued the gesture. The
    ``completion`` future resolves to True when the gesture finished and to
    False when it was cancelled. Truthiness follows ``accepted``.
    """
    accepted: bool
    completion: Future = field(default_factory=Future)

    def __bool__(self) -> bool:
        return self.accepted

    @property
    def done(self) -> bool:
        return self.completion.done()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the gesture completes; False on cancel or timeout."""
        if not self.accepted:
            return False
        try:
            return bool(self.completion.result(timeout=timeout))
        except FutureTimeout:
            return False

    @classmethod
    def rejected(cls) -> "GestureResult":
        result = cls(accepted=False)
        result.completion.set_result(False)
        return result


class ActionDispatcher:
    """Primitive actions against the backend bound to ``context``."""

    def __init__(self, context: AutomationContext, config: Optional[AutomationConfig] = None):
        self.context = context
        self.config = config or get_device_config().automation
        self.reader = ElementTreeReader(context, self.config)

    # ─── Text matching ────────────────────────────────────────────

    def find_by_text(self, query: str) -> List[ScreenElement]:
        root = self.context.active_root()
        if root is None:
            return []
        try:
            return [node_to_element(node) for node in root.find_by_text(query)]
        except Exception as e:
            logger.warning(f"⚠️  find_by_text failed: {e}")
            return []

    def click_by_text(self, query: str) -> bool:
        """Click the first node matching ``query``, or its nearest clickable ancestor."""
        root = self.context.active_root()
        if root is None:
            return False

        try:
            candidates = root.find_by_text(query)
            for node in candidates:
                current: Optional[AccessibilityNode] = node
                while current is not None:
                    if current.is_clickable and current.perform_action(NodeAction.CLICK):
                        logger.info(f"Clicked '{sanitize_for_log(query, 60)}'", extra=event("ACTION"))
                        return True
                    current = current.parent
        except Exception as e:
            logger.warning(f"⚠️  click_by_text failed: {e}")
            return False

        logger.debug(f"No clickable match for '{sanitize_for_log(query, 60)}'")
        return False

    def type_into_field(self, hint: str, text: str) -> bool:
        """Set text on the first editable field whose hint, text or description contains ``hint``.

        Only the first matching field is tried; its set-text result is returned.
        """
        root = self.context.active_root()
        if root is None:
            return False

        needle = hint.lower()
        try:
            for node in editable_nodes(root):
                haystacks = (node.hint_text or "", node.text or "", node.content_description or "")
                if any(needle in value.lower() for value in haystacks):
                    node.perform_action(NodeAction.FOCUS)
                    node.perform_action(NodeAction.CLICK)
                    result = node.perform_action(NodeAction.SET_TEXT, {"text": text})
                    logger.info(
                        f"Typed into field '{sanitize_for_log(hint, 40)}': {'ok' if result else 'rejected'}",
                        extra=event("ACTION"),
                    )
                    return bool(result)
        except Exception as e:
            logger.warning(f"⚠️  type_into_field failed: {e}")
        return False

    def type_text(self, text: str) -> bool:
        """Set text on the element that currently holds input focus."""
        root = self.context.active_root()
        if root is None:
            return False
        try:
            field_node = focused_editable(root)
            if field_node is None:
                return False
            return bool(field_node.perform_action(NodeAction.SET_TEXT, {"text": text}))
        except Exception as e:
            logger.warning(f"⚠️  type_text failed: {e}")
            return False

    def press_enter(self) -> bool:
        """Submit (IME action) on the focused editable element."""
        root = self.context.active_root()
        if root is None:
            return False
        try:
            field_node = focused_editable(root)
            if field_node is None:
                return False
            return bool(field_node.perform_action(NodeAction.IME_ENTER))
        except Exception as e:
            logger.warning(f"⚠️  press_enter failed: {e}")
            return False

    def scroll_down(self) -> bool:
        return self._scroll(NodeAction.SCROLL_FORWARD)

    def scroll_up(self) -> bool:
        return self._scroll(NodeAction.SCROLL_BACKWARD)

    def _scroll(self, action: NodeAction) -> bool:
        root = self.context.active_root()
        if root is None:
            return False
        try:
            node = first_scrollable(root)
            return bool(node is not None and node.perform_action(action))
        except Exception as e:
            logger.warning(f"⚠️  scroll failed: {e}")
            return False

    # ─── Gestures ─────────────────────────────────────────────────

    def tap_at(self, x: float, y: float, duration_ms: Optional[int] = None, wait: bool = False) -> GestureResult:
        duration = self.config.tap_duration_ms if duration_ms is None else duration_ms
        return self._dispatch(GestureDescription.tap(x, y, duration), wait)

    def swipe(
        self,
        start_x: float,
        start_y: float,
        end_x: float,
        end_y: float,
        duration_ms: Optional[int] = None,
        wait: bool = False,
    ) -> GestureResult:
        duration = self.config.swipe_duration_ms if duration_ms is None else duration_ms
        return self._dispatch(GestureDescription.line(start_x, start_y, end_x, end_y, duration), wait)

    def _dispatch(self, gesture: GestureDescription, wait: bool) -> GestureResult:
        backend = self.context.backend
        if backend is None:
            return GestureResult.rejected()

        result = GestureResult(accepted=False)

        def _on_complete(completed: bool) -> None:
            if not result.completion.done():
                result.completion.set_result(bool(completed))

        try:
            result.accepted = bool(backend.dispatch_gesture(gesture, _on_complete))
        except Exception as e:
            logger.warning(f"⚠️  Gesture dispatch failed: {e}")
            result.accepted = False

        if not result.accepted:
            _on_complete(False)
            return result

        if wait:
            result.wait(timeout=self.config.gesture_wait_timeout)
        return result

    # ─── Global navigation ────────────────────────────────────────

    def press_back(self) -> bool:
        return self._global(GlobalAction.BACK)

    def press_home(self) -> bool:
        return self._global(GlobalAction.HOME)

    def open_recents(self) -> bool:
        return self._global(GlobalAction.RECENTS)

    def open_notifications(self) -> bool:
        return self._global(GlobalAction.NOTIFICATIONS)

    def _global(self, action: GlobalAction) -> bool:
        backend = self.context.backend
        if backend is None:
            return False
        try:
            return bool(backend.perform_global_action(action))
        except Exception as e:
            logger.warning(f"⚠️  Global action {action.value} failed: {e}")
            return False

    # ─── Apps ─────────────────────────────────────────────────────

    def launch_app(self, package_name: str) -> bool:
        backend = self.context.backend
        if backend is None:
            return False
        try:
            return bool(backend.launch_app(package_name))
        except Exception as e:
            logger.warning(f"⚠️  Could not launch {package_name}: {e}")
            return False

    def open_url(self, url: str) -> bool:
        backend = self.context.backend
        if backend is None:
            return False
        try:
            return bool(backend.open_url(url))
        except Exception as e:
            logger.warning(f"⚠️  Could not open URL: {e}")
            return False

    # ─── Screen summary ───────────────────────────────────────────

    def describe_screen(self) -> Optional[str]:
        """Human-readable listing of the text-bearing elements on screen."""
        snapshot = self.reader.capture()
        if snapshot is None:
            return None
        lines = [
            f"App: {snapshot.package_name}",
            f"Elements: {snapshot.element_count}",
            "---",
        ]
        lines.extend(f"{e.kind_label} {e.text}" for e in snapshot.elements if e.text)
        return "\n".join(lines)
