"""Automation backend interface and the low-level input events it performs.

The executor turns each action into an ordered list of InputEvents;
a backend performs that list as one unit. Script backends render the
list into a single platform script and run it as one child process.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from deskhand.errors import AutomationExecutionError
from deskhand.process import CancelToken, run_process

logger = logging.getLogger(__name__)

Button = Literal["left", "right", "middle"]

# One wheel notch, in Windows WHEEL_DELTA units
WHEEL_DELTA = 120


@dataclass(frozen=True)
class Move:
    x: int
    y: int


@dataclass(frozen=True)
class Press:
    button: Button = "left"


@dataclass(frozen=True)
class Release:
    button: Button = "left"


@dataclass(frozen=True)
class Wheel:
    """One wheel tick. Positive delta scrolls up/left, negative down/right."""

    horizontal: bool
    delta: int


@dataclass(frozen=True)
class Pause:
    ms: int


@dataclass(frozen=True)
class Text:
    """Literal text; backends must escape it for their injection syntax."""

    text: str


@dataclass(frozen=True)
class Keys:
    """A logical key or chord name, mapped through the backend's key table."""

    token: str


@dataclass(frozen=True)
class KeyRepeat:
    """Re-send a key `count` times, `interval_ms` apart."""

    token: str
    count: int
    interval_ms: int


InputEvent = Move | Press | Release | Wheel | Pause | Text | Keys | KeyRepeat


def require_int(value: object, name: str) -> int:
    """Reject anything that is not a plain int before it reaches a script."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise AutomationExecutionError(f"{name} must be an integer, got {value!r}")
    return value


def parse_cursor_output(output: str) -> dict[str, int]:
    """Parse the "x,y" line printed by a cursor query script."""
    parts = output.strip().split(",")
    if len(parts) != 2:
        raise AutomationExecutionError(f"Unexpected cursor position output: {output.strip()!r}")
    try:
        x, y = (int(p.strip()) for p in parts)
    except ValueError:
        raise AutomationExecutionError(
            f"Unexpected cursor position output: {output.strip()!r}"
        ) from None
    return {"x": x, "y": y}


class AutomationBackend(ABC):
    """Capability interface implemented once per target OS."""

    name: str = "abstract"

    @abstractmethod
    async def perform(self, events: Sequence[InputEvent], cancel: CancelToken | None = None) -> None:
        """Perform the events in order. Raises AutomationExecutionError on failure."""

    @abstractmethod
    async def cursor_position(self, cancel: CancelToken | None = None) -> dict[str, int]:
        """Return the pointer position as {"x": ..., "y": ...}."""


class ScriptBackend(AutomationBackend):
    """Backend that renders events into a script and runs it in a child process."""

    @abstractmethod
    def render(self, events: Sequence[InputEvent]) -> str:
        """Render events into one script, preserving their order."""

    @abstractmethod
    def render_cursor_query(self) -> str:
        """Render a script that prints the cursor position as "x,y"."""

    @abstractmethod
    def argv_for(self, script: str) -> list[str]:
        """Command line that executes the given script."""

    async def perform(self, events: Sequence[InputEvent], cancel: CancelToken | None = None) -> None:
        if not events:
            return
        await self._run(self.render(events), cancel)

    async def cursor_position(self, cancel: CancelToken | None = None) -> dict[str, int]:
        stdout = await self._run(self.render_cursor_query(), cancel)
        return parse_cursor_output(stdout)

    async def _run(self, script: str, cancel: CancelToken | None) -> str:
        argv = self.argv_for(script)
        try:
            result = await run_process(argv, cancel=cancel)
        except OSError as e:
            logger.warning("%s backend could not start %s: %s", self.name, argv[0], e)
            raise AutomationExecutionError(f"Failed to start {argv[0]}: {e}") from e
        if result.returncode != 0:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            logger.warning("%s automation script failed: %s", self.name, detail)
            raise AutomationExecutionError(f"Automation script failed: {detail}")
        return result.stdout
