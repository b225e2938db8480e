"""
BizClaw Device Agent
====================

Device-side automation and supervision layer for the BizClaw agent platform.

Subpackages:
- core: configuration, logging and the capability reporter
- automation: accessibility tree snapshots and primitive UI actions
- workflows: multi-step app workflows exposed as single tool calls
- daemon: background worker supervision and the native engine bridge
- api: HTTP surface for the tool-calling agent and status display
"""
from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

__version__ = "0.4.0"
__author__ = "BizClaw Team"

__all__ = ["__version__"]
