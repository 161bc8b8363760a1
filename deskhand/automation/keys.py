"""Logical key names -> platform key-sequence tokens.

Tokens missing from a table are passed through unchanged, so the model
can still send raw SendKeys / keysym syntax the tables don't cover.
"""

from __future__ import annotations

_FUNCTION_KEYS = [f"F{n}" for n in range(1, 13)]

SENDKEYS_KEYS: dict[str, str] = {
    "Return": "{ENTER}",
    "Enter": "{ENTER}",
    "Tab": "{TAB}",
    "Escape": "{ESC}",
    "Backspace": "{BACKSPACE}",
    "Delete": "{DELETE}",
    "Up": "{UP}",
    "Down": "{DOWN}",
    "Left": "{LEFT}",
    "Right": "{RIGHT}",
    "Home": "{HOME}",
    "End": "{END}",
    "PageUp": "{PGUP}",
    "PageDown": "{PGDN}",
    **{name: "{%s}" % name for name in _FUNCTION_KEYS},
    "ctrl+a": "^a",
    "ctrl+c": "^c",
    "ctrl+v": "^v",
    "ctrl+x": "^x",
    "ctrl+z": "^z",
    "ctrl+s": "^s",
    "alt+Tab": "%{TAB}",
    "alt+F4": "%{F4}",
    "shift+Tab": "+{TAB}",
}

XDOTOOL_KEYS: dict[str, str] = {
    "Return": "Return",
    "Enter": "Return",
    "Tab": "Tab",
    "Escape": "Escape",
    "Backspace": "BackSpace",
    "Delete": "Delete",
    "Up": "Up",
    "Down": "Down",
    "Left": "Left",
    "Right": "Right",
    "Home": "Home",
    "End": "End",
    "PageUp": "Prior",
    "PageDown": "Next",
    **{name: name for name in _FUNCTION_KEYS},
    "ctrl+a": "ctrl+a",
    "ctrl+c": "ctrl+c",
    "ctrl+v": "ctrl+v",
    "ctrl+x": "ctrl+x",
    "ctrl+z": "ctrl+z",
    "ctrl+s": "ctrl+s",
    "alt+Tab": "alt+Tab",
    "alt+F4": "alt+F4",
    "shift+Tab": "shift+Tab",
}

# Characters SendKeys treats as syntax; each is sent literally as {c}
_SENDKEYS_SPECIAL = frozenset("+^%~(){}[]")
_SENDKEYS_CONTROL = {"\n": "{ENTER}", "\t": "{TAB}"}


def map_key(token: str, table: dict[str, str]) -> str:
    """Look up a logical key name, falling back to the token itself."""
    return table.get(token, token)


def escape_sendkeys(text: str) -> str:
    """Escape literal text so SendKeys types it rather than interpreting it."""
    text = text.replace("\r\n", "\n")
    out = []
    for ch in text:
        if ch in _SENDKEYS_SPECIAL:
            out.append("{" + ch + "}")
        elif ch in _SENDKEYS_CONTROL:
            out.append(_SENDKEYS_CONTROL[ch])
        elif ch == "\r":
            out.append("{ENTER}")
        else:
            out.append(ch)
    return "".join(out)
