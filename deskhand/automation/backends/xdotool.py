"""X11 backend: renders a POSIX shell script of xdotool commands.

Every argument goes through shlex.quote, so neither text nor key
tokens can break out of the command they belong to.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence

from deskhand.automation.backends.base import (
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
    require_int,
)
from deskhand.automation.keys import XDOTOOL_KEYS, map_key

_BUTTONS = {"left": "1", "middle": "2", "right": "3"}
# X11 maps wheel ticks to buttons 4/5 (vertical) and 6/7 (horizontal)
_WHEEL_BUTTONS = {
    (False, True): "4",   # up
    (False, False): "5",  # down
    (True, True): "6",    # left
    (True, False): "7",   # right
}


def _seconds(ms: int) -> str:
    return f"{require_int(ms, 'ms') / 1000:.3f}"


class XdotoolBackend(ScriptBackend):
    name = "xdotool"

    def __init__(self, xdotool: str = "xdotool", shell: str = "/bin/sh") -> None:
        self._xdotool = shlex.quote(xdotool)
        self._shell = shell

    def argv_for(self, script: str) -> list[str]:
        return [self._shell, "-c", script]

    def render(self, events: Sequence[InputEvent]) -> str:
        lines = ["set -e"]
        lines.extend(self._render_event(event) for event in events)
        return "\n".join(lines) + "\n"

    def render_cursor_query(self) -> str:
        return (
            "set -e\n"
            f'eval "$({self._xdotool} getmouselocation --shell)"\n'
            'printf "%s,%s\\n" "$X" "$Y"\n'
        )

    def _render_event(self, event: InputEvent) -> str:
        xdo = self._xdotool
        match event:
            case Move(x=x, y=y):
                return f"{xdo} mousemove -- {require_int(x, 'x')} {require_int(y, 'y')}"
            case Press(button=button):
                return f"{xdo} mousedown {_BUTTONS[button]}"
            case Release(button=button):
                return f"{xdo} mouseup {_BUTTONS[button]}"
            case Wheel(horizontal=horizontal, delta=delta):
                button = _WHEEL_BUTTONS[(horizontal, require_int(delta, 'delta') > 0)]
                return f"{xdo} click {button}"
            case Pause(ms=ms):
                return f"sleep {_seconds(ms)}"
            case Text(text=text):
                return f"{xdo} type -- {shlex.quote(text)}"
            case Keys(token=token):
                return f"{xdo} key -- {shlex.quote(map_key(token, XDOTOOL_KEYS))}"
            case KeyRepeat(token=token, count=count, interval_ms=interval_ms):
                key = shlex.quote(map_key(token, XDOTOOL_KEYS))
                return (
                    f"i=0; while [ \"$i\" -lt {require_int(count, 'count')} ]; do "
                    f"{xdo} key -- {key}; sleep {_seconds(interval_ms)}; i=$((i+1)); done"
                )
        raise TypeError(f"Unsupported input event: {event!r}")
