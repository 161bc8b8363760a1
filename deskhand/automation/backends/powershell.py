"""Windows backend: user32.dll pointer events and SendKeys via PowerShell.

Each action becomes one PowerShell script, passed with -EncodedCommand
so no argument quoting is involved. Text reaches the script only inside
single-quoted PowerShell literals, after SendKeys escaping.
"""

from __future__ import annotations

import base64
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
from deskhand.automation.keys import SENDKEYS_KEYS, escape_sendkeys, map_key

_USER32 = '''Add-Type @"
using System;
using System.Runtime.InteropServices;
public class DeskhandInput {
  [DllImport("user32.dll")]
  public static extern bool SetCursorPos(int X, int Y);
  [DllImport("user32.dll")]
  public static extern void mouse_event(uint dwFlags, int dx, int dy, int dwData, int dwExtraInfo);
  [DllImport("user32.dll")]
  public static extern bool GetCursorPos(out POINT lpPoint);
  public struct POINT { public int X; public int Y; }
  public static string GetPos() {
    POINT p;
    GetCursorPos(out p);
    return p.X + "," + p.Y;
  }
}
"@'''

_FORMS = "Add-Type -AssemblyName System.Windows.Forms"

# (down, up) mouse_event flags per button
_BUTTON_FLAGS = {
    "left": ("0x0002", "0x0004"),
    "right": ("0x0008", "0x0010"),
    "middle": ("0x0020", "0x0040"),
}
_MOUSEEVENTF_WHEEL = "0x0800"
_MOUSEEVENTF_HWHEEL = "0x1000"

# PowerShell treats the typographic single quotes as quote characters too
_PS_SINGLE_QUOTES = ("'", "‘", "’", "‚", "‛")


def ps_quote(value: str) -> str:
    """Quote a string as a PowerShell single-quoted literal."""
    for q in _PS_SINGLE_QUOTES:
        value = value.replace(q, q + q)
    return f"'{value}'"


def _send(keys: str) -> str:
    return f"[System.Windows.Forms.SendKeys]::SendWait({ps_quote(keys)})"


class PowerShellBackend(ScriptBackend):
    name = "powershell"

    def __init__(self, executable: str = "powershell.exe") -> None:
        self._executable = executable

    def argv_for(self, script: str) -> list[str]:
        encoded = base64.b64encode(script.encode("utf-16-le")).decode("ascii")
        return [
            self._executable,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-EncodedCommand",
            encoded,
        ]

    def render(self, events: Sequence[InputEvent]) -> str:
        lines = ["$ErrorActionPreference = 'Stop'", _USER32]
        if any(isinstance(e, (Text, Keys, KeyRepeat)) for e in events):
            lines.append(_FORMS)
        for event in events:
            lines.append(self._render_event(event))
        return "\n".join(lines) + "\n"

    def render_cursor_query(self) -> str:
        return "\n".join(["$ErrorActionPreference = 'Stop'", _USER32, "[DeskhandInput]::GetPos()"]) + "\n"

    def _render_event(self, event: InputEvent) -> str:
        match event:
            case Move(x=x, y=y):
                return f"[DeskhandInput]::SetCursorPos({require_int(x, 'x')}, {require_int(y, 'y')}) | Out-Null"
            case Press(button=button):
                return f"[DeskhandInput]::mouse_event({_BUTTON_FLAGS[button][0]}, 0, 0, 0, 0)"
            case Release(button=button):
                return f"[DeskhandInput]::mouse_event({_BUTTON_FLAGS[button][1]}, 0, 0, 0, 0)"
            case Wheel(horizontal=horizontal, delta=delta):
                flag = _MOUSEEVENTF_HWHEEL if horizontal else _MOUSEEVENTF_WHEEL
                return f"[DeskhandInput]::mouse_event({flag}, 0, 0, {require_int(delta, 'delta')}, 0)"
            case Pause(ms=ms):
                return f"Start-Sleep -Milliseconds {require_int(ms, 'ms')}"
            case Text(text=text):
                return _send(escape_sendkeys(text))
            case Keys(token=token):
                return _send(map_key(token, SENDKEYS_KEYS))
            case KeyRepeat(token=token, count=count, interval_ms=interval_ms):
                return (
                    f"for ($i = 0; $i -lt {require_int(count, 'count')}; $i++) {{ "
                    f"{_send(map_key(token, SENDKEYS_KEYS))}; "
                    f"Start-Sleep -Milliseconds {require_int(interval_ms, 'interval_ms')} }}"
                )
        raise TypeError(f"Unsupported input event: {event!r}")
