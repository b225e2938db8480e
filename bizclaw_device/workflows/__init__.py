"""
Workflows: multi-step app automation exposed as single tool calls.
"""

from .apps import AppController
from .engine import StepKind, Workflow, WorkflowEngine, WorkflowResult, WorkflowStep
from .tools import DeviceTool, DeviceToolRegistry, ToolCategory

__all__ = [
    "AppController",
    "StepKind",
    "Workflow",
    "WorkflowEngine",
    "WorkflowResult",
    "WorkflowStep",
    "DeviceTool",
    "DeviceToolRegistry",
    "ToolCategory",
]
