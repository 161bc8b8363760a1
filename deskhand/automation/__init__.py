"""Automation module -- pointer and keyboard control of the host desktop.

Public API:
    AutomationExecutor - executes one computer action via a backend
    parse_action       - validates computer tool input into an action model
    create_backend     - selects the platform backend at startup
"""

from deskhand.automation.actions import AutomationAction, Screenshot, parse_action
from deskhand.automation.backends import AutomationBackend, RecordingBackend, create_backend
from deskhand.automation.executor import AutomationExecutor

__all__ = [
    "AutomationAction",
    "AutomationBackend",
    "AutomationExecutor",
    "RecordingBackend",
    "Screenshot",
    "create_backend",
    "parse_action",
]
