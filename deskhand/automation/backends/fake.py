"""Recording backend: performs nothing, remembers every event in order."""

from __future__ import annotations

from collections.abc import Sequence

from deskhand.automation.backends.base import AutomationBackend, InputEvent
from deskhand.errors import AutomationExecutionError
from deskhand.process import CancelToken


class RecordingBackend(AutomationBackend):
    name = "fake"

    def __init__(self, cursor: tuple[int, int] = (0, 0)) -> None:
        self.events: list[InputEvent] = []
        self.batches: list[list[InputEvent]] = []
        self.cursor = cursor
        self.fail_with: str | None = None

    async def perform(self, events: Sequence[InputEvent], cancel: CancelToken | None = None) -> None:
        if cancel is not None:
            cancel.raise_if_cancelled()
        if self.fail_with:
            raise AutomationExecutionError(self.fail_with)
        self.batches.append(list(events))
        self.events.extend(events)

    async def cursor_position(self, cancel: CancelToken | None = None) -> dict[str, int]:
        if cancel is not None:
            cancel.raise_if_cancelled()
        if self.fail_with:
            raise AutomationExecutionError(self.fail_with)
        return {"x": self.cursor[0], "y": self.cursor[1]}
