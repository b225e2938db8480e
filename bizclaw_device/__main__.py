"""
BizClaw device agent CLI.

Examples:
  python -m bizclaw_device screen
  python -m bizclaw_device tool messenger.reply contact_name=Lan "message=Chào bạn"
  python -m bizclaw_device daemon
  python -m bizclaw_device boot
  python -m bizclaw_device auto-start on
  python -m bizclaw_device status
  python -m bizclaw_device serve --port 8765
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional

from . import __version__
from .automation.adb_backend import AdbBackend
from .automation.backend import AutomationContext
from .core.capabilities import CapabilityReporter
from .core.config import DeviceAgentConfig, get_device_config
from .core.logging_config import configure_logging
from .daemon.boot import BootTrigger
from .daemon.supervisor import DaemonSupervisor
from .workflows.apps import AppController
from .workflows.engine import WorkflowEngine
from .workflows.tools import DeviceToolRegistry

logger = logging.getLogger("bizclaw_device.cli")


@dataclass
class Runtime:
    context: AutomationContext
    registry: DeviceToolRegistry
    supervisor: DaemonSupervisor
    reporter: CapabilityReporter
    backend: Optional[AdbBackend] = None

    def close(self) -> None:
        self.context.unbind()
        if self.backend is not None:
            self.backend.close()


def build_runtime(config: DeviceAgentConfig, bind_adb: bool = True) -> Runtime:
    context = AutomationContext()
    backend = None
    if bind_adb:
        backend = AdbBackend(config.adb)
        context.bind(backend)
    engine = WorkflowEngine(context, automation=config.automation, delays=config.delays)
    registry = DeviceToolRegistry(AppController(engine))
    supervisor = DaemonSupervisor(config.daemon)
    reporter = CapabilityReporter(daemon_running=lambda: supervisor.is_running)
    return Runtime(context, registry, supervisor, reporter, backend)


def parse_tool_arguments(pairs: List[str]) -> Dict[str, str]:
    """``key=value`` pairs to a dict. Values may contain '='."""
    arguments = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"expected key=value, got {pair!r}")
        arguments[key] = value
    return arguments


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


async def _hold_until_signalled(supervisor: DaemonSupervisor) -> None:
    """Keep the worker up until SIGINT/SIGTERM, then stop it."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass
    supervisor.on_terminate = stop_event.set

    await stop_event.wait()
    logger.info("Shutdown requested")
    await supervisor.stop()


async def cmd_daemon(runtime: Runtime, args) -> int:
    supervisor = runtime.supervisor
    started = await (supervisor.relaunch() if args.relaunch else supervisor.start())
    if not started:
        print(f"Daemon not started: {supervisor.last_error or 'last command was stop'}")
        return 1
    await _hold_until_signalled(supervisor)
    return 0


async def cmd_boot(runtime: Runtime, args) -> int:
    started = await BootTrigger(runtime.supervisor).on_boot_completed()
    if not started:
        return 0
    await _hold_until_signalled(runtime.supervisor)
    return 0


async def cmd_auto_start(runtime: Runtime, args) -> int:
    prefs = runtime.supervisor.preferences.set_auto_start(args.state == "on")
    print(f"auto_start_on_boot = {prefs.auto_start_on_boot}")
    return 0


async def cmd_status(runtime: Runtime, args) -> int:
    status = await asyncio.to_thread(runtime.reporter.full_status)
    payload = status.to_dict()
    payload["oem_warning"] = runtime.reporter.oem_battery_killer_warning()
    payload["engine_version"] = await runtime.supervisor.version()
    payload["preferences"] = vars(runtime.supervisor.preferences.load())
    _print_json(payload)
    return 0


async def cmd_screen(runtime: Runtime, args) -> int:
    if args.json:
        engine = runtime.registry.controller.engine
        snapshot = await engine.call(engine.dispatcher.reader.capture)
        _print_json(snapshot.to_dict() if snapshot else None)
        return 0 if snapshot else 1
    result = await runtime.registry.invoke("screen.read")
    print(result["message"])
    return 0 if result["success"] else 1


async def cmd_tool(runtime: Runtime, args) -> int:
    if args.list:
        _print_json(runtime.registry.describe())
        return 0
    if not args.name:
        print("tool name required (or --list)")
        return 2
    try:
        arguments = parse_tool_arguments(args.arguments)
    except ValueError as e:
        print(str(e))
        return 2
    result = await runtime.registry.invoke_result(args.name, arguments)
    _print_json(result.to_dict())
    return 0 if result.success else 1


def cmd_serve(runtime: Runtime, args, config: DeviceAgentConfig) -> int:
    import uvicorn

    from .api.device_api import create_app

    app = create_app(runtime.registry, runtime.supervisor, runtime.reporter)
    uvicorn.run(app, host=args.host or config.api.host, port=args.port or config.api.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bizclaw_device",
        description="BizClaw device agent: app automation and background worker supervision",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", "-d", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("daemon", help="Start the background worker and keep it running")
    p.add_argument("--relaunch", action="store_true", help="Replay the last persisted command instead")

    sub.add_parser("boot", help="Boot-completed hook: auto-start once per boot if enabled")

    p = sub.add_parser("auto-start", help="Enable or disable start on boot")
    p.add_argument("state", choices=["on", "off"])

    sub.add_parser("status", help="Print the device capability bundle")

    p = sub.add_parser("screen", help="Describe the current screen")
    p.add_argument("--json", action="store_true", help="Print the raw snapshot")

    p = sub.add_parser("tool", help="Invoke a workflow tool")
    p.add_argument("name", nargs="?")
    p.add_argument("arguments", nargs="*", help="key=value arguments")
    p.add_argument("--list", action="store_true", help="List registered tools")

    p = sub.add_parser("serve", help="Serve the HTTP API")
    p.add_argument("--host")
    p.add_argument("--port", type=int)
    return parser


COMMANDS = {
    "daemon": cmd_daemon,
    "boot": cmd_boot,
    "auto-start": cmd_auto_start,
    "status": cmd_status,
    "screen": cmd_screen,
    "tool": cmd_tool,
}

# Commands that never touch the UI
_NO_ADB = {"daemon", "boot", "auto-start", "status"}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_device_config()
    configure_logging("DEBUG" if args.debug else config.log_level)

    runtime = build_runtime(config, bind_adb=args.command not in _NO_ADB)
    try:
        if args.command == "serve":
            return cmd_serve(runtime, args, config)
        return asyncio.run(COMMANDS[args.command](runtime, args))
    finally:
        runtime.close()


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(1)
