"""Run result and loop state types for the agent runner."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from deskhand.transcript import Transcript

FALLBACK_FINAL_TEXT = "Task completed"


class RunStatus(StrEnum):
    RUNNING = "running"
    DONE_NO_TOOLS = "done_no_tools"
    DONE_ERROR = "done_error"
    DONE_BUDGET_EXHAUSTED = "done_budget_exhausted"
    DONE_CANCELLED = "done_cancelled"


@dataclass
class IterationState:
    """Loop counter for one run. count is the number of completed tool rounds."""

    cap: int
    count: int = 0
    status: RunStatus = RunStatus.RUNNING

    @property
    def exhausted(self) -> bool:
        return self.count >= self.cap


@dataclass
class ApiResponse:
    """Parsed response from Anthropic Messages API."""

    content: list[dict[str, Any]]  # Raw content blocks from API
    stop_reason: str  # end_turn, max_tokens, tool_use, stop_sequence
    usage: dict[str, int] | None = None


@dataclass
class RunResult:
    """Terminal outcome of one run. Always carries the transcript."""

    success: bool
    status: RunStatus
    transcript: Transcript
    iterations: int
    final_text: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": self.success,
            "status": self.status.value,
            "iterations": self.iterations,
            "messages": self.transcript.to_messages(),
        }
        if self.success:
            body["final_response"] = self.final_text
        else:
            body["error"] = self.error
        return body
