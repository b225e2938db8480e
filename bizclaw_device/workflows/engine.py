"""
BizClaw Workflow Engine - multi-step app automation as single tool calls
========================================================================

A workflow is an ordered list of steps (open app, click by text, type into a
field, ...) that together perform one user-facing task such as posting to a
feed. The calling agent sees a single operation returning a
``WorkflowResult``.

Execution rules:
- Each step waits its heuristic delay first, to let the target application
  finish launching or transitioning.
- A step tries its fallback candidates in order (localized labels, field
  hints); the first one whose primitive succeeds wins.
- A required step that exhausts its candidates aborts the workflow with a
  message naming the step's purpose. Steps already performed stay performed.
- Optional steps that fail are logged and skipped.
- Only one workflow runs against the device at a time.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..automation.backend import AutomationContext
from ..automation.dispatcher import ActionDispatcher
from ..automation.models import FailureKind
from ..core.config import AutomationConfig, WorkflowDelays, get_device_config
from ..core.logging_config import event
from ..core.secure_logging import sanitize_for_log

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "Accessibility service not enabled"


class StepKind(Enum):
    """Primitive a workflow step drives"""
    OPEN_APP = "open_app"
    CLICK_BY_TEXT = "click_by_text"
    TYPE_INTO_FIELD = "type_into_field"
    TYPE_FOCUSED = "type_focused"
    PRESS_ENTER = "press_enter"
    CUSTOM_DELAY = "custom_delay"


@dataclass
class WorkflowStep:
    """One step of a workflow.

    ``candidates`` are tried in order: package names for OPEN_APP, labels for
    CLICK_BY_TEXT, field hints for TYPE_INTO_FIELD. TYPE_FOCUSED and
    PRESS_ENTER take no candidate. A CUSTOM_DELAY step waits ``candidates[0]``
    seconds on top of ``delay_before``. ``fallback`` is an argument-free
    primitive tried once all candidates failed.
    """
    kind: StepKind
    purpose: str
    candidates: List[str] = field(default_factory=list)
    required: bool = True
    text: Optional[str] = None
    delay_before: float = 0.0
    fallback: Optional[StepKind] = None


@dataclass
class Workflow:
    name: str
    steps: List[WorkflowStep]
    success_message: str = ""


@dataclass
class WorkflowResult:
    """Outcome returned to the calling agent: ``{success, message}`` plus diagnostics."""
    success: bool
    message: str
    failure: Optional[FailureKind] = None
    workflow: str = ""
    failed_step: Optional[int] = None
    steps_completed: int = 0
    duration_ms: float = 0.0

    @classmethod
    def ok(cls, message: str, **kwargs) -> "WorkflowResult":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def error(cls, message: str, failure: FailureKind = FailureKind.ERROR, **kwargs) -> "WorkflowResult":
        return cls(success=False, message=message, failure=failure, **kwargs)

    @classmethod
    def unavailable(cls, message: str = UNAVAILABLE_MESSAGE, **kwargs) -> "WorkflowResult":
        return cls(success=False, message=message, failure=FailureKind.UNAVAILABLE, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "failure": self.failure.value if self.failure else None,
            "workflow": self.workflow,
            "failed_step": self.failed_step,
            "steps_completed": self.steps_completed,
            "duration_ms": round(self.duration_ms, 1),
        }


class WorkflowEngine:
    """Runs workflows against the backend bound to ``context``, one at a time."""

    def __init__(
        self,
        context: AutomationContext,
        dispatcher: Optional[ActionDispatcher] = None,
        automation: Optional[AutomationConfig] = None,
        delays: Optional[WorkflowDelays] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        config = get_device_config()
        self.context = context
        self.automation = automation or config.automation
        self.delays = delays or config.delays
        self.dispatcher = dispatcher or ActionDispatcher(context, self.automation)
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self.runs_total = 0
        self.runs_succeeded = 0

    @asynccontextmanager
    async def exclusive(self):
        """Hold the device for the duration of the block.

        Single primitives invoked outside a workflow take this too, so they
        cannot interleave with a running workflow's focus changes.
        """
        async with self._lock:
            yield self.dispatcher

    async def call(self, primitive: Callable[..., Any], *args) -> Any:
        """Run one blocking dispatcher primitive under the device lock."""
        async with self.exclusive():
            return await asyncio.to_thread(primitive, *args)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run(self, workflow: Workflow) -> WorkflowResult:
        if not self.context.is_bound:
            logger.warning(f"{workflow.name}: automation backend not bound", extra=event("UNAVAILABLE"))
            return WorkflowResult.unavailable(workflow=workflow.name)

        async with self._lock:
            started = time.monotonic()
            self.runs_total += 1
            try:
                result = await self._run_steps(workflow)
            except Exception as e:
                logger.error(f"❌ {workflow.name} crashed: {e}", exc_info=True, extra=event("STEP_FAILED"))
                result = WorkflowResult.error(f"{workflow.name} failed: {e}", workflow=workflow.name)
            result.duration_ms = (time.monotonic() - started) * 1000
            if result.success:
                self.runs_succeeded += 1
            return result

    async def _run_steps(self, workflow: Workflow) -> WorkflowResult:
        logger.info(f"Starting {len(workflow.steps)}-step workflow", extra=event("WORKFLOW", workflow=workflow.name))
        completed = 0

        for index, step in enumerate(workflow.steps, start=1):
            await self._settle(step.delay_before)

            logger.debug(f"Step {index}: {step.purpose}", extra=event("STEP_START", workflow=workflow.name))
            winner = await self._execute_step(step)

            if winner is None:
                tried = ", ".join(repr(sanitize_for_log(c, 40)) for c in step.candidates)
                if step.required:
                    message = f"Step {index} ({step.purpose}) failed"
                    if tried:
                        message += f": no candidate matched [{tried}]"
                    logger.warning(message, extra=event("STEP_FAILED", workflow=workflow.name))
                    return WorkflowResult.error(
                        message,
                        failure=FailureKind.STEP_FAILED,
                        workflow=workflow.name,
                        failed_step=index,
                        steps_completed=completed,
                    )
                logger.info(
                    f"Optional step {index} ({step.purpose}) skipped",
                    extra=event("STEP_FAILED", workflow=workflow.name),
                )
                continue

            completed += 1
            logger.debug(
                f"Step {index} ok via {sanitize_for_log(winner, 40)!r}",
                extra=event("STEP_OK", workflow=workflow.name),
            )

        message = workflow.success_message or f"{workflow.name} completed"
        logger.info(message, extra=event("STEP_OK", workflow=workflow.name))
        return WorkflowResult.ok(message, workflow=workflow.name, steps_completed=completed)

    async def _execute_step(self, step: WorkflowStep) -> Optional[str]:
        """Try each candidate, then the fallback; returns what succeeded or None."""
        if step.kind == StepKind.CUSTOM_DELAY:
            if step.candidates:
                try:
                    seconds = float(step.candidates[0])
                except ValueError:
                    return None
                await self._settle(seconds)
            return "delay"

        arguments: Sequence[Optional[str]] = step.candidates or [None]
        for candidate in arguments:
            if await self._attempt(step.kind, candidate, step.text):
                return candidate if candidate is not None else step.kind.value

        if step.fallback is not None and await self._attempt(step.fallback, None, step.text):
            return step.fallback.value
        return None

    async def _attempt(self, kind: StepKind, candidate: Optional[str], text: Optional[str]) -> bool:
        d = self.dispatcher
        if kind == StepKind.OPEN_APP:
            return await asyncio.to_thread(d.launch_app, candidate or "")
        if kind == StepKind.CLICK_BY_TEXT:
            return await asyncio.to_thread(d.click_by_text, candidate or "")
        if kind == StepKind.TYPE_INTO_FIELD:
            return await asyncio.to_thread(d.type_into_field, candidate or "", text or "")
        if kind == StepKind.TYPE_FOCUSED:
            return await asyncio.to_thread(d.type_text, text or "")
        if kind == StepKind.PRESS_ENTER:
            return await asyncio.to_thread(d.press_enter)
        return False

    async def _settle(self, delay: float) -> None:
        """Wait for the target app to render before the next step."""
        seconds = delay * self.delays.scale
        if seconds <= 0:
            return
        if self.automation.settle_mode == "stable":
            await asyncio.to_thread(
                self.dispatcher.reader.wait_until_stable,
                None,
                None,
                min(seconds * 2, self.automation.settle_max_wait),
            )
        else:
            await self._sleep(seconds)

    async def read_transcript(self, expected_package: Optional[str] = None, limit: int = 10,
                              app_label: str = "App") -> WorkflowResult:
        """Last ``limit`` non-interactive text lines of the current screen.

        Read-only: one snapshot, no actions.
        """
        if not self.context.is_bound:
            return WorkflowResult.unavailable(workflow="read_transcript")

        async with self._lock:
            snapshot = await asyncio.to_thread(self.dispatcher.reader.capture)
        if snapshot is None:
            return WorkflowResult.unavailable("Cannot read screen", workflow="read_transcript")

        if expected_package and expected_package not in snapshot.package_name:
            return WorkflowResult.error(f"{app_label} is not open", workflow="read_transcript")

        lines = [
            e.text for e in snapshot.elements
            if e.text and not e.is_clickable and not e.is_editable
        ]
        recent = lines[-limit:] if limit > 0 else []
        return WorkflowResult.ok("Messages:\n" + "\n".join(recent), workflow="read_transcript")
