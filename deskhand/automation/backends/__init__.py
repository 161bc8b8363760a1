"""Automation backends, one per target OS, plus a recording fake."""

from __future__ import annotations

import logging
import platform

from deskhand.automation.backends.base import (
    AutomationBackend,
    InputEvent,
    KeyRepeat,
    Keys,
    Move,
    Pause,
    Press,
    Release,
    ScriptBackend,
    Text,
    Wheel,
    parse_cursor_output,
)
from deskhand.automation.backends.fake import RecordingBackend
from deskhand.automation.backends.powershell import PowerShellBackend
from deskhand.automation.backends.xdotool import XdotoolBackend
from deskhand.config import Settings

logger = logging.getLogger(__name__)


def create_backend(settings: Settings) -> AutomationBackend:
    """Select the automation backend once, at process start."""
    choice = settings.automation_backend
    if choice == "auto":
        choice = "powershell" if platform.system() == "Windows" else "xdotool"

    if choice == "powershell":
        backend: AutomationBackend = PowerShellBackend()
    elif choice == "xdotool":
        backend = XdotoolBackend()
    else:
        backend = RecordingBackend()
    logger.info("Automation backend: %s", backend.name)
    return backend


__all__ = [
    "AutomationBackend",
    "InputEvent",
    "KeyRepeat",
    "Keys",
    "Move",
    "Pause",
    "PowerShellBackend",
    "Press",
    "RecordingBackend",
    "Release",
    "ScriptBackend",
    "Text",
    "Wheel",
    "XdotoolBackend",
    "create_backend",
    "parse_cursor_output",
]
