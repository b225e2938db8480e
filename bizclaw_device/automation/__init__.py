"""
Automation layer: snapshots of the foreground element tree and the
primitive actions that workflows are built from.
"""

from .backend import AccessibilityNode, AutomationBackend, AutomationContext
from .dispatcher import ActionDispatcher, GestureResult
from .models import (
    ElementBounds,
    FailureKind,
    GestureDescription,
    GestureStroke,
    GlobalAction,
    NodeAction,
    ScreenElement,
    ScreenSnapshot,
)
from .tree_reader import ElementTreeReader

__all__ = [
    "AccessibilityNode",
    "AutomationBackend",
    "AutomationContext",
    "ActionDispatcher",
    "GestureResult",
    "ElementBounds",
    "FailureKind",
    "GestureDescription",
    "GestureStroke",
    "GlobalAction",
    "NodeAction",
    "ScreenElement",
    "ScreenSnapshot",
    "ElementTreeReader",
]
