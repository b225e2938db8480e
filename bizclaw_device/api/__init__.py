"""
HTTP API for the device agent.
"""

from .device_api import create_app, router

__all__ = ["create_app", "router"]
