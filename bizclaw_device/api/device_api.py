"""
BizClaw Device API
==================

HTTP surface for the tool-calling agent and the status display.

Endpoints:
- GET  /api/device/health              - Liveness
- GET  /api/device/tools               - Registered workflow tools
- POST /api/device/tools/{name}        - Invoke a tool
- GET  /api/device/screen              - Current screen snapshot
- GET  /api/device/status              - Capability bundle
- GET  /api/device/daemon              - Supervisor status
- POST /api/device/daemon/start        - Start the background worker
- POST /api/device/daemon/stop         - Stop the background worker
- POST /api/device/daemon/message      - Send a message to the engine
- PUT  /api/device/daemon/auto-start   - Toggle start-on-boot

Workflow and engine failures come back as HTTP 200 with ``success: false``;
only an unknown tool is a 404.

Usage:
    curl -X POST http://127.0.0.1:8765/api/device/tools/messenger.reply \\
        -H "Content-Type: application/json" \\
        -d '{"arguments": {"contact_name": "Lan", "message": "Chào bạn"}}'
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from .. import __version__
from ..core.capabilities import CapabilityReporter
from ..core.secure_logging import sanitize_for_log
from ..daemon.supervisor import DaemonSupervisor
from ..workflows.tools import DeviceToolRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/device", tags=["device"])


# ============================================================================
# Request/Response Models
# ============================================================================

class ToolInvokeRequest(BaseModel):
    """Arguments for a tool call."""
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Tool arguments by name")


class ToolInvokeResponse(BaseModel):
    success: bool
    message: str
    failure: Optional[str] = None
    workflow: str = ""
    failed_step: Optional[int] = None
    steps_completed: int = 0
    duration_ms: float = 0.0


class ToolDescription(BaseModel):
    name: str
    description: str
    category: str
    arguments: List[str] = []
    optional_arguments: Dict[str, Any] = {}
    mutating: bool = True


class DaemonActionResponse(BaseModel):
    success: bool
    state: str
    error: Optional[str] = None


class MessageRequest(BaseModel):
    text: str = Field(..., min_length=1, description="Message for the engine's default agent")


class MessageReply(BaseModel):
    success: bool
    response: str
    agent: str = ""
    tokens_used: int = 0


class AutoStartRequest(BaseModel):
    enabled: bool


# ============================================================================
# Helper Functions
# ============================================================================

def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{name} not configured")
    return value


def get_registry(request: Request) -> DeviceToolRegistry:
    return _state(request, "registry")


def get_supervisor(request: Request) -> DaemonSupervisor:
    return _state(request, "supervisor")


def get_reporter(request: Request) -> CapabilityReporter:
    return _state(request, "reporter")


# ============================================================================
# Endpoints
# ============================================================================

@router.get("/health")
async def health() -> Dict[str, Any]:
    return {"status": "ok", "version": __version__}


@router.get("/tools", response_model=List[ToolDescription])
async def list_tools(request: Request):
    return get_registry(request).describe()


@router.post("/tools/{name}", response_model=ToolInvokeResponse)
async def invoke_tool(name: str, body: ToolInvokeRequest, request: Request):
    registry = get_registry(request)
    if registry.get(name) is None:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {sanitize_for_log(name, 60)}")
    result = await registry.invoke_result(name, body.arguments)
    return ToolInvokeResponse(**result.to_dict())


@router.get("/screen")
async def read_screen(request: Request) -> Dict[str, Any]:
    engine = get_registry(request).controller.engine
    if not engine.context.is_bound:
        return {"available": False, "snapshot": None}
    snapshot = await engine.call(engine.dispatcher.reader.capture)
    if snapshot is None:
        return {"available": False, "snapshot": None}
    return {"available": True, "snapshot": snapshot.to_dict()}


@router.get("/status")
async def device_status(request: Request) -> Dict[str, Any]:
    reporter = get_reporter(request)
    status = await asyncio.to_thread(reporter.full_status)
    payload = status.to_dict()
    payload["oem_warning"] = reporter.oem_battery_killer_warning()
    return payload


@router.get("/daemon")
async def daemon_status(request: Request) -> Dict[str, Any]:
    return await get_supervisor(request).status()


@router.post("/daemon/start", response_model=DaemonActionResponse)
async def start_daemon(request: Request):
    supervisor = get_supervisor(request)
    ok = await supervisor.start()
    return DaemonActionResponse(success=ok, state=supervisor.state.value, error=None if ok else supervisor.last_error)


@router.post("/daemon/stop", response_model=DaemonActionResponse)
async def stop_daemon(request: Request):
    supervisor = get_supervisor(request)
    ok = await supervisor.stop()
    return DaemonActionResponse(success=ok, state=supervisor.state.value, error=None if ok else supervisor.last_error)


@router.post("/daemon/message", response_model=MessageReply)
async def send_message(body: MessageRequest, request: Request):
    reply = await get_supervisor(request).send_message(body.text)
    return MessageReply(**reply.to_dict())


@router.put("/daemon/auto-start")
async def set_auto_start(body: AutoStartRequest, request: Request) -> Dict[str, Any]:
    prefs = get_supervisor(request).preferences.set_auto_start(body.enabled)
    return {"auto_start_on_boot": prefs.auto_start_on_boot}


def create_app(
    registry: Optional[DeviceToolRegistry] = None,
    supervisor: Optional[DaemonSupervisor] = None,
    reporter: Optional[CapabilityReporter] = None,
) -> FastAPI:
    """Build the FastAPI application with its collaborators on ``app.state``."""
    app = FastAPI(title="BizClaw Device Agent", version=__version__)
    app.state.registry = registry
    app.state.supervisor = supervisor
    app.state.reporter = reporter
    app.include_router(router)
    return app
