"""Built-in tools: computer, str_replace_based_edit_tool, bash.

These three make up the static tool manifest sent with every model
call. All handlers raise ToolError subclasses for recoverable failures;
ToolDispatcher turns those into error tool results.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from deskhand.api.tools import DispatchContext, ToolDispatcher, ToolOutput
from deskhand.automation import AutomationExecutor, Screenshot, parse_action
from deskhand.config import Settings
from deskhand.errors import SurfaceError, ToolDispatchError
from deskhand.shell import ShellExecutor
from deskhand.surfaces import SurfaceProvider
from deskhand.transcript import ImageBlock

logger = logging.getLogger(__name__)

COMPUTER_TOOL = "computer"
EDITOR_TOOL = "str_replace_based_edit_tool"
SHELL_TOOL = "bash"

_COMPUTER_TYPE = "computer_20250124"
_EDITOR_TYPE = "text_editor_20250429"
_SHELL_TYPE = "bash_20250124"


# ---------------------------------------------------------------------------
# Tool handlers
# ---------------------------------------------------------------------------


async def computer_tool(
    tool_input: dict[str, Any],
    context: DispatchContext,
    *,
    executor: AutomationExecutor,
    surfaces: SurfaceProvider,
) -> ToolOutput:
    """Pointer, keyboard and screen actions, discriminated by `action`."""
    action = parse_action(tool_input)
    logger.info("Executing computer action: %s (iteration %d)", action.action, context.iteration)
    if isinstance(action, Screenshot):
        if context.cancel is not None:
            context.cancel.raise_if_cancelled()
        capture = await asyncio.to_thread(surfaces.capture)
        return [ImageBlock(data=capture.data, media_type=capture.media_type)]
    return await executor.execute(action, context.cancel)


async def text_editor_tool(tool_input: dict[str, Any], context: DispatchContext) -> ToolOutput:
    """Acknowledge editor commands without touching any file.

    Real file editing is out of scope; the tool is advertised so the
    model's built-in editor tool has somewhere to land.
    """
    command = tool_input.get("command")
    if not command:
        raise ToolDispatchError("Missing required field: command")
    logger.info("Would perform text editor action: %s on %s", command, tool_input.get("path"))
    return {"success": True, "message": "Text editor command simulated", "command": command}


async def shell_tool(
    tool_input: dict[str, Any],
    context: DispatchContext,
    *,
    shell: ShellExecutor,
) -> ToolOutput:
    """Run a command in the platform shell."""
    if tool_input.get("restart"):
        # Every command runs in a fresh shell, so there is no session to reset
        return "tool has been restarted."
    command = tool_input.get("command")
    if not isinstance(command, str) or not command.strip():
        raise ToolDispatchError("no command provided.")
    return await shell.run(command, cancel=context.cancel)


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


def advertised_geometry(surfaces: SurfaceProvider, settings: Settings) -> tuple[int, int]:
    """Display size to advertise: the capped primary screen, or the fallback."""
    try:
        return surfaces.display_geometry(settings.display_max_width, settings.display_max_height)
    except SurfaceError as e:
        logger.warning(
            "Could not read display geometry (%s); advertising %dx%d",
            e, settings.display_fallback_width, settings.display_fallback_height,
        )
        return settings.display_fallback_width, settings.display_fallback_height


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_builtin_tools(
    dispatcher: ToolDispatcher,
    executor: AutomationExecutor,
    shell: ShellExecutor,
    surfaces: SurfaceProvider,
    geometry: tuple[int, int],
) -> None:
    """Register the three built-in tools with the dispatcher.

    Creates closure wrappers that inject the executors.
    """
    width, height = geometry

    async def _computer(tool_input: dict[str, Any], context: DispatchContext) -> ToolOutput:
        return await computer_tool(tool_input, context, executor=executor, surfaces=surfaces)

    async def _shell(tool_input: dict[str, Any], context: DispatchContext) -> ToolOutput:
        return await shell_tool(tool_input, context, shell=shell)

    dispatcher.register(COMPUTER_TOOL, _computer, {
        "type": _COMPUTER_TYPE,
        "display_width_px": width,
        "display_height_px": height,
        "display_number": 1,
    })
    dispatcher.register(EDITOR_TOOL, text_editor_tool, {"type": _EDITOR_TYPE})
    dispatcher.register(SHELL_TOOL, _shell, {"type": _SHELL_TYPE})
