"""Exception taxonomy for deskhand.

Only UpstreamError (and cancellation) ends a run. Every ToolError is
caught at the dispatch boundary and folded back into the transcript as
an error tool_result so the model can self-correct.
"""

from __future__ import annotations


class DeskhandError(Exception):
    """Base exception for deskhand."""


class ToolError(DeskhandError):
    """A single tool invocation failed. Recoverable."""


class ToolDispatchError(ToolError):
    """Unknown tool, unknown action, or malformed tool input."""


class AutomationExecutionError(ToolError):
    """An automation script could not be spawned or exited non-zero."""


class ShellExecutionError(ToolError):
    """A shell command exited non-zero or could not be started."""


class ShellPolicyError(ToolError):
    """The configured shell policy refused a command."""


class SurfaceError(ToolError):
    """Capture target not found, or no capture sources available."""


class TranscriptProtocolError(DeskhandError):
    """tool_use / tool_result correlation broken. Always an internal defect."""


class UpstreamError(DeskhandError):
    """The model endpoint call failed (auth, network, rate limit)."""


class RunCancelledError(DeskhandError):
    """The run's cancellation token fired."""
