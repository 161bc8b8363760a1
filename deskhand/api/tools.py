"""Tool dispatcher for the agent loop.

Maps a tool_use block to its registered handler and always answers
with a ToolResultBlock: unknown tools, bad input and handler failures
are folded into error results, never raised. After every dispatch a
"tool_used" progress event is published fire-and-forget.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from deskhand.errors import RunCancelledError, ToolError
from deskhand.events import TOOL_USED, Event
from deskhand.process import CancelToken
from deskhand.transcript import ImageBlock, TextBlock, ToolResultBlock, ToolUseBlock

logger = logging.getLogger(__name__)

ToolOutput = str | dict[str, Any] | list[TextBlock | ImageBlock]


@dataclass
class DispatchContext:
    """Per-invocation context handed to tool handlers."""

    iteration: int
    run_id: str | None = None
    cancel: CancelToken | None = None


ToolHandler = Callable[[dict[str, Any], DispatchContext], Awaitable[ToolOutput]]


class ProgressSink(Protocol):
    async def emit(self, event: Event) -> None: ...


def error_content(message: str) -> str:
    return json.dumps({"error": message})


def _to_result(tool_use_id: str, output: ToolOutput) -> ToolResultBlock:
    if isinstance(output, dict):
        return ToolResultBlock(tool_use_id=tool_use_id, content=json.dumps(output))
    return ToolResultBlock(tool_use_id=tool_use_id, content=output)


class ToolDispatcher:
    """Registers tool handlers and dispatches tool_use blocks from the model.

    Each handler is an async callable taking (input, context) and
    returning a string, a JSON-able dict, or a list of text/image blocks.
    Handlers signal recoverable failure by raising ToolError.
    """

    def __init__(self, progress: ProgressSink | None = None) -> None:
        self._handlers: dict[str, ToolHandler] = {}
        self._definitions: dict[str, dict[str, Any]] = {}
        self._progress = progress

    def register(self, name: str, handler: ToolHandler, definition: dict[str, Any]) -> None:
        """Register a tool handler with its manifest entry."""
        self._handlers[name] = handler
        self._definitions[name] = {**definition, "name": name}

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers)

    def tool_definitions(self) -> list[dict[str, Any]]:
        """Manifest entries in registration order, in Anthropic API format."""
        return [dict(d) for d in self._definitions.values()]

    async def dispatch(self, invocation: ToolUseBlock, context: DispatchContext) -> ToolResultBlock:
        """Execute one tool_use. Never raises (except cancellation of the task itself)."""
        handler = self._handlers.get(invocation.name)
        if handler is None:
            logger.warning("Unknown tool requested: %s", invocation.name)
            result = ToolResultBlock(
                tool_use_id=invocation.id,
                content=error_content(f"Unknown tool: {invocation.name}"),
                is_error=True,
            )
        else:
            try:
                output = await handler(invocation.input, context)
                result = _to_result(invocation.id, output)
            except (ToolError, RunCancelledError) as e:
                logger.info("Tool %s failed: %s", invocation.name, e)
                result = ToolResultBlock(
                    tool_use_id=invocation.id, content=error_content(str(e)), is_error=True
                )
            except Exception as e:
                logger.exception("Tool dispatch error for %s", invocation.name)
                result = ToolResultBlock(
                    tool_use_id=invocation.id,
                    content=error_content(str(e) or type(e).__name__),
                    is_error=True,
                )

        await self._publish(invocation, context)
        return result

    async def _publish(self, invocation: ToolUseBlock, context: DispatchContext) -> None:
        if self._progress is None:
            return
        event = Event(
            type=TOOL_USED,
            data={"tool": invocation.name, "input": invocation.input, "iteration": context.iteration},
            run_id=context.run_id,
        )
        try:
            await self._progress.emit(event)
        except Exception:
            logger.warning("Progress notification dropped for %s", invocation.name, exc_info=True)
