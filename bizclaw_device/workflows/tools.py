"""
Device Tool Registry
====================

Exposes app workflows to the tool-calling agent as named operations that
take a small fixed set of string arguments and return
``{"success": bool, "message": str}``.

    registry = DeviceToolRegistry(AppController(engine))
    result = await registry.invoke("messenger.reply", {"contact_name": "Lan", "message": "Hi"})

``invoke`` never raises: unknown tools, missing arguments and unexpected
errors all come back as failure results.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from ..automation.models import FailureKind
from ..core.secure_logging import sanitize_for_log
from .apps import AppController
from .engine import WorkflowResult

logger = logging.getLogger(__name__)


class ToolCategory(Enum):
    """Categories for tool classification."""
    SOCIAL = "social"
    MESSAGING = "messaging"
    SCREEN = "screen"
    SYSTEM = "system"


@dataclass
class DeviceTool:
    """A registered tool and its argument contract."""
    name: str
    description: str
    category: ToolCategory
    handler: Callable[..., Awaitable[WorkflowResult]]
    arguments: List[str] = field(default_factory=list)
    optional_arguments: Dict[str, Any] = field(default_factory=dict)
    mutating: bool = True

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "arguments": list(self.arguments),
            "optional_arguments": dict(self.optional_arguments),
            "mutating": self.mutating,
        }


class DeviceToolRegistry:
    """Name -> tool mapping for the workflow invocation surface."""

    def __init__(self, controller: AppController):
        self.controller = controller
        self._tools: Dict[str, DeviceTool] = {}
        self._register_standard_tools()

    def _register_standard_tools(self) -> None:
        c = self.controller
        self.register(DeviceTool(
            "facebook.post", "Post content to the Facebook feed",
            ToolCategory.SOCIAL, c.facebook_post, ["content"],
        ))
        self.register(DeviceTool(
            "facebook.comment", "Comment on the post currently open in Facebook",
            ToolCategory.SOCIAL, c.facebook_comment, ["comment"],
        ))
        self.register(DeviceTool(
            "messenger.reply", "Send a Messenger message to a contact",
            ToolCategory.MESSAGING, c.messenger_reply, ["contact_name", "message"],
        ))
        self.register(DeviceTool(
            "messenger.read", "Read the last messages of the open Messenger conversation",
            ToolCategory.MESSAGING, c.messenger_read_messages, [], {"limit": 10}, mutating=False,
        ))
        self.register(DeviceTool(
            "zalo.send", "Send a Zalo message to a contact",
            ToolCategory.MESSAGING, c.zalo_send_message, ["contact_name", "message"],
        ))
        self.register(DeviceTool(
            "screen.read", "Describe what is on the current screen",
            ToolCategory.SCREEN, c.read_current_screen, [], mutating=False,
        ))
        self.register(DeviceTool(
            "screen.click", "Click an element by its visible text",
            ToolCategory.SCREEN, c.click_element, ["text"],
        ))
        self.register(DeviceTool(
            "screen.scroll", "Scroll the current screen up or down",
            ToolCategory.SCREEN, c.scroll, [], {"direction": "down"},
        ))
        self.register(DeviceTool(
            "device.navigate", "Global navigation: back, home, recents, notifications",
            ToolCategory.SYSTEM, c.navigate, ["action"],
        ))
        self.register(DeviceTool(
            "app.open", "Open an app by package name",
            ToolCategory.SYSTEM, c.open_app, ["package_name"],
        ))
        self.register(DeviceTool(
            "url.open", "Open a URL in the default browser",
            ToolCategory.SYSTEM, c.open_url, ["url"],
        ))

    def register(self, tool: DeviceTool) -> None:
        if tool.name in self._tools:
            logger.debug(f"Replacing tool {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[DeviceTool]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return sorted(self._tools)

    def describe(self) -> List[Dict[str, Any]]:
        return [self._tools[name].describe() for name in self.names()]

    async def invoke(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        result = await self.invoke_result(name, arguments)
        return {"success": result.success, "message": result.message}

    async def invoke_result(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> WorkflowResult:
        tool = self._tools.get(name)
        if tool is None:
            return WorkflowResult.error(f"Unknown tool: {sanitize_for_log(name, 60)}", workflow=name)

        arguments = dict(arguments or {})
        missing = [arg for arg in tool.arguments if not str(arguments.get(arg, "") or "").strip()]
        if missing:
            return WorkflowResult.error(f"Missing argument(s) for {name}: {', '.join(missing)}", workflow=name)

        call_args = [str(arguments[arg]) for arg in tool.arguments]
        call_kwargs = {}
        for key, default in tool.optional_arguments.items():
            value = arguments.get(key, default)
            try:
                call_kwargs[key] = type(default)(value)
            except (TypeError, ValueError):
                return WorkflowResult.error(f"Invalid value for {key}: {sanitize_for_log(value, 40)}", workflow=name)

        logger.info(f"🛠️  Tool call {name}")
        try:
            return await tool.handler(*call_args, **call_kwargs)
        except Exception as e:
            logger.error(f"❌ Tool {name} raised: {e}", exc_info=True)
            return WorkflowResult.error(f"{name} failed: {e}", failure=FailureKind.ERROR, workflow=name)
