"""Automation executor: one primitive per computer action.

Each action is expanded into an ordered list of low-level input events
and handed to the backend as a single unit, so ordering such as
press -> move -> release for a drag is fixed here rather than left to
each backend.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any, assert_never

from deskhand.automation.actions import (
    AutomationAction,
    Click,
    CursorPosition,
    Drag,
    HoldKey,
    Key,
    MouseDown,
    MouseMove,
    MouseUp,
    Scroll,
    TypeText,
    Wait,
)
from deskhand.automation.backends.base import (
    WHEEL_DELTA,
    AutomationBackend,
    InputEvent,
    KeyRepeat,
    Keys,
    Move,
    Pause,
    Press,
    Release,
    Text,
    Wheel,
)
from deskhand.process import CancelToken

logger = logging.getLogger(__name__)

CLICK_SETTLE_MS = 50
DRAG_SETTLE_MS = 100
SCROLL_TICK_MS = 50
HOLD_KEY_INTERVAL_MS = 50

Sleep = Callable[[float], Awaitable[Any]]


def click_events(action: Click) -> list[InputEvent]:
    events: list[InputEvent] = []
    if action.coordinate is not None:
        events.append(Move(*action.coordinate))
    for i in range(action.count):
        if i:
            events.append(Pause(CLICK_SETTLE_MS))
        events.extend([Press(action.button), Release(action.button)])
    return events


def drag_events(action: Drag) -> list[InputEvent]:
    return [
        Move(*action.start_coordinate),
        Pause(DRAG_SETTLE_MS),
        Press("left"),
        Pause(DRAG_SETTLE_MS),
        Move(*action.coordinate),
        Pause(DRAG_SETTLE_MS),
        Release("left"),
    ]


def scroll_events(action: Scroll) -> list[InputEvent]:
    horizontal = action.scroll_direction in ("left", "right")
    delta = WHEEL_DELTA if action.scroll_direction in ("up", "left") else -WHEEL_DELTA
    events: list[InputEvent] = []
    if action.coordinate is not None:
        events.append(Move(*action.coordinate))
    for _ in range(action.scroll_amount):
        events.extend([Wheel(horizontal, delta), Pause(SCROLL_TICK_MS)])
    return events


def hold_key_events(action: HoldKey) -> list[InputEvent]:
    """Approximate holding a key down by re-sending it for `duration`.

    Neither SendKeys nor the xdotool key command can keep a key pressed,
    so this is auto-repeat rather than a true press-and-hold.
    """
    repeats = max(1, math.ceil(action.duration * 1000 / HOLD_KEY_INTERVAL_MS))
    return [KeyRepeat(action.text, repeats, HOLD_KEY_INTERVAL_MS)]


class AutomationExecutor:
    """Executes computer actions against an AutomationBackend."""

    def __init__(self, backend: AutomationBackend, sleep: Sleep = asyncio.sleep) -> None:
        self._backend = backend
        self._sleep = sleep

    @property
    def backend(self) -> AutomationBackend:
        return self._backend

    async def execute(self, action: AutomationAction, cancel: CancelToken | None = None) -> dict[str, Any]:
        """Run one action. Raises AutomationExecutionError if the backend fails."""
        match action:
            case MouseMove(coordinate=(x, y)):
                await self._perform([Move(x, y)], cancel)
            case Click():
                await self._perform(click_events(action), cancel)
            case MouseDown():
                await self._perform([Press("left")], cancel)
            case MouseUp():
                await self._perform([Release("left")], cancel)
            case Drag():
                await self._perform(drag_events(action), cancel)
            case Scroll():
                await self._perform(scroll_events(action), cancel)
            case TypeText(text=text):
                await self._perform([Text(text)], cancel)
            case Key():
                await self._perform([Keys(action.token)], cancel)
            case HoldKey():
                await self._perform(hold_key_events(action), cancel)
            case CursorPosition():
                return await self._backend.cursor_position(cancel)
            case Wait(duration=duration):
                await self._sleep(duration)
                logger.info("Waited for %s seconds", duration)
            case _:
                assert_never(action)
        return {"success": True}

    async def _perform(self, events: list[InputEvent], cancel: CancelToken | None) -> None:
        logger.debug("Performing %d input events via %s", len(events), self._backend.name)
        await self._backend.perform(events, cancel)
