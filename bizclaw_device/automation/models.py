"""
Automation data model.

Snapshots are immutable values captured per query. Nothing here holds a
reference to a live accessibility node, so a snapshot stays safe to read
after the foreground application has re-rendered.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class NodeAction(Enum):
    """Actions performed on a single accessibility node."""
    CLICK = "click"
    FOCUS = "focus"
    SET_TEXT = "set_text"
    IME_ENTER = "ime_enter"
    SCROLL_FORWARD = "scroll_forward"
    SCROLL_BACKWARD = "scroll_backward"


class GlobalAction(Enum):
    """OS-level navigation actions."""
    BACK = "back"
    HOME = "home"
    RECENTS = "recents"
    NOTIFICATIONS = "notifications"


class FailureKind(Enum):
    """Why an automation or daemon operation did not succeed."""
    UNAVAILABLE = "unavailable"    # no backend bound or no active window; transient
    STEP_FAILED = "step_failed"    # a workflow step exhausted its candidates
    ERROR = "error"                # unexpected exception caught at the workflow boundary
    NATIVE_FAULT = "native_fault"  # fault caught at the native engine boundary


@dataclass(frozen=True)
class ElementBounds:
    """Screen rectangle of a node."""
    left: int = 0
    top: int = 0
    right: int = 0
    bottom: int = 0

    def __post_init__(self):
        # Backends occasionally report inverted rectangles for off-screen nodes
        if self.left > self.right:
            left, right = self.right, self.left
            object.__setattr__(self, "left", left)
            object.__setattr__(self, "right", right)
        if self.top > self.bottom:
            top, bottom = self.bottom, self.top
            object.__setattr__(self, "top", top)
            object.__setattr__(self, "bottom", bottom)

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def center(self) -> Tuple[int, int]:
        return ((self.left + self.right) // 2, (self.top + self.bottom) // 2)

    def to_dict(self) -> Dict[str, int]:
        return {"left": self.left, "top": self.top, "right": self.right, "bottom": self.bottom}


@dataclass(frozen=True)
class ScreenElement:
    """One UI node as it looked at capture time."""
    text: str = ""
    content_description: str = ""
    class_name: str = ""
    is_clickable: bool = False
    is_editable: bool = False
    is_scrollable: bool = False
    hint: str = ""
    bounds: ElementBounds = field(default_factory=ElementBounds)

    @property
    def kind_label(self) -> str:
        if self.is_editable:
            return "[INPUT]"
        if self.is_clickable:
            return "[BUTTON]"
        if self.is_scrollable:
            return "[SCROLL]"
        return "[TEXT]"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "content_description": self.content_description,
            "class_name": self.class_name,
            "is_clickable": self.is_clickable,
            "is_editable": self.is_editable,
            "is_scrollable": self.is_scrollable,
            "hint": self.hint,
            "bounds": self.bounds.to_dict(),
        }


@dataclass(frozen=True)
class ScreenSnapshot:
    """Bounded, point-in-time capture of the foreground element tree.

    ``element_count`` is the number of retained elements before truncation;
    ``elements`` holds at most the configured cap (50 by default).
    """
    package_name: str
    element_count: int
    elements: Tuple[ScreenElement, ...] = ()

    def __post_init__(self):
        if not isinstance(self.elements, tuple):
            object.__setattr__(self, "elements", tuple(self.elements))
        if len(self.elements) > self.element_count:
            raise ValueError(
                f"snapshot holds {len(self.elements)} elements but element_count is {self.element_count}"
            )

    def text_lines(self) -> List[str]:
        return [e.text for e in self.elements if e.text]

    def fingerprint(self) -> str:
        """Content hash used to decide whether the screen has settled."""
        digest = hashlib.sha1()
        digest.update(self.package_name.encode("utf-8"))
        for element in self.elements:
            digest.update(
                f"{element.text}|{element.content_description}|{element.class_name}|"
                f"{element.bounds.left},{element.bounds.top},{element.bounds.right},{element.bounds.bottom}"
                .encode("utf-8")
            )
        return digest.hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package_name": self.package_name,
            "element_count": self.element_count,
            "elements": [e.to_dict() for e in self.elements],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


@dataclass(frozen=True)
class GestureStroke:
    """Pointer path for one finger: start point, optional end point, timing."""
    start: Tuple[float, float]
    end: Optional[Tuple[float, float]] = None
    start_time_ms: int = 0
    duration_ms: int = 100

    @property
    def is_tap(self) -> bool:
        return self.end is None or self.end == self.start


@dataclass(frozen=True)
class GestureDescription:
    strokes: Tuple[GestureStroke, ...]

    @classmethod
    def tap(cls, x: float, y: float, duration_ms: int = 100) -> "GestureDescription":
        return cls(strokes=(GestureStroke(start=(x, y), duration_ms=duration_ms),))

    @classmethod
    def line(cls, x1: float, y1: float, x2: float, y2: float, duration_ms: int = 300) -> "GestureDescription":
        return cls(strokes=(GestureStroke(start=(x1, y1), end=(x2, y2), duration_ms=duration_ms),))
