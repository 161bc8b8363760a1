"""Tests for the script renderers and the shared script runner.

Renderers are checked as text; nothing here runs PowerShell or xdotool.
ScriptBackend._run is exercised with the current Python interpreter.
"""

import base64
import sys

import pytest

from deskhand.automation.backends import (
    KeyRepeat,
    Keys,
    Move,
    Pause,
    PowerShellBackend,
    Press,
    RecordingBackend,
    Release,
    ScriptBackend,
    Text,
    Wheel,
    XdotoolBackend,
    create_backend,
    parse_cursor_output,
)
from deskhand.automation.backends.base import require_int
from deskhand.automation.backends.powershell import ps_quote
from deskhand.automation.keys import SENDKEYS_KEYS, XDOTOOL_KEYS, escape_sendkeys, map_key
from deskhand.config import Settings
from deskhand.errors import AutomationExecutionError

# ---------------------------------------------------------------------------
# Escaping and key tables
# ---------------------------------------------------------------------------


class TestEscaping:
    def test_braces_are_literal(self):
        assert escape_sendkeys("{hello}") == "{{}hello{}}"

    @pytest.mark.parametrize(
        "raw, escaped",
        [
            ("a+b", "a{+}b"),
            ("50%", "50{%}"),
            ("x^2", "x{^}2"),
            ("~home", "{~}home"),
            ("(1)", "{(}1{)}"),
            ("[x]", "{[}x{]}"),
            ("plain text", "plain text"),
        ],
    )
    def test_sendkeys_specials(self, raw, escaped):
        assert escape_sendkeys(raw) == escaped

    def test_newlines_and_tabs(self):
        assert escape_sendkeys("a\r\nb\tc") == "a{ENTER}b{TAB}c"

    def test_ps_quote(self):
        assert ps_quote("it's") == "'it''s'"
        assert ps_quote("plain") == "'plain'"

    def test_ps_quote_typographic_quote(self):
        assert ps_quote("it’s") == "'it’’s'"

    def test_map_key(self):
        assert map_key("Return", SENDKEYS_KEYS) == "{ENTER}"
        assert map_key("ctrl+c", SENDKEYS_KEYS) == "^c"
        assert map_key("F5", SENDKEYS_KEYS) == "{F5}"
        assert map_key("PageDown", XDOTOOL_KEYS) == "Next"

    def test_unmapped_key_passes_through(self):
        assert map_key("{F13}", SENDKEYS_KEYS) == "{F13}"
        assert map_key("super+l", XDOTOOL_KEYS) == "super+l"


class TestNumericGuards:
    def test_require_int_accepts_int(self):
        assert require_int(42, "x") == 42

    @pytest.mark.parametrize("value", ["1; calc.exe", 1.5, True, None])
    def test_require_int_rejects(self, value):
        with pytest.raises(AutomationExecutionError):
            require_int(value, "x")

    def test_render_rejects_non_numeric_coordinate(self):
        with pytest.raises(AutomationExecutionError):
            PowerShellBackend().render([Move("1); Stop-Computer; (", 2)])
        with pytest.raises(AutomationExecutionError):
            XdotoolBackend().render([Move(1, "$(reboot)")])


# ---------------------------------------------------------------------------
# PowerShell
# ---------------------------------------------------------------------------


class TestPowerShellRender:
    def test_text_is_escaped_for_sendkeys(self):
        script = PowerShellBackend().render([Text("{hello}")])
        assert "[System.Windows.Forms.SendKeys]::SendWait('{{}hello{}}')" in script

    def test_text_cannot_close_the_literal(self):
        script = PowerShellBackend().render([Text("'; Stop-Computer; '")])
        assert "SendWait('''; Stop-Computer; ''')" in script

    def test_forms_only_loaded_for_keyboard(self):
        assert "System.Windows.Forms" not in PowerShellBackend().render([Move(1, 2)])
        assert "Add-Type -AssemblyName System.Windows.Forms" in PowerShellBackend().render([Keys("Tab")])

    def test_pointer_events(self):
        script = PowerShellBackend().render([Move(10, 20), Press("left"), Pause(100), Release("left")])
        lines = script.splitlines()
        move = lines.index("[DeskhandInput]::SetCursorPos(10, 20) | Out-Null")
        down = lines.index("[DeskhandInput]::mouse_event(0x0002, 0, 0, 0, 0)")
        pause = lines.index("Start-Sleep -Milliseconds 100")
        up = lines.index("[DeskhandInput]::mouse_event(0x0004, 0, 0, 0, 0)")
        assert move < down < pause < up

    def test_right_button_flags(self):
        script = PowerShellBackend().render([Press("right"), Release("right")])
        assert "mouse_event(0x0008, 0, 0, 0, 0)" in script
        assert "mouse_event(0x0010, 0, 0, 0, 0)" in script

    def test_wheel(self):
        script = PowerShellBackend().render([Wheel(False, 120), Wheel(True, -120)])
        assert "mouse_event(0x0800, 0, 0, 120, 0)" in script
        assert "mouse_event(0x1000, 0, 0, -120, 0)" in script

    def test_mapped_key(self):
        assert "SendWait('{ENTER}')" in PowerShellBackend().render([Keys("Return")])

    def test_key_repeat_loop(self):
        script = PowerShellBackend().render([KeyRepeat("a", 10, 50)])
        assert "for ($i = 0; $i -lt 10; $i++)" in script
        assert "Start-Sleep -Milliseconds 50" in script

    def test_cursor_query(self):
        assert "[DeskhandInput]::GetPos()" in PowerShellBackend().render_cursor_query()

    def test_argv_encodes_script(self):
        script = PowerShellBackend().render([Move(1, 2)])
        argv = PowerShellBackend().argv_for(script)
        assert argv[0] == "powershell.exe"
        assert argv[-2] == "-EncodedCommand"
        assert base64.b64decode(argv[-1]).decode("utf-16-le") == script


# ---------------------------------------------------------------------------
# xdotool
# ---------------------------------------------------------------------------


class TestXdotoolRender:
    def test_starts_with_set_e(self):
        assert XdotoolBackend().render([Move(1, 2)]).startswith("set -e\n")

    def test_pointer_events(self):
        script = XdotoolBackend().render([Move(10, 10), Press("left"), Move(200, 200), Release("left")])
        assert script.splitlines()[1:] == [
            "xdotool mousemove -- 10 10",
            "xdotool mousedown 1",
            "xdotool mousemove -- 200 200",
            "xdotool mouseup 1",
        ]

    def test_text_is_shell_quoted(self):
        script = XdotoolBackend().render([Text("$(rm -rf ~)")])
        assert "xdotool type -- '$(rm -rf ~)'" in script

    def test_text_with_single_quote(self):
        script = XdotoolBackend().render([Text("it's")])
        assert "xdotool type -- 'it'\"'\"'s'" in script

    def test_wheel_buttons(self):
        script = XdotoolBackend().render(
            [Wheel(False, 120), Wheel(False, -120), Wheel(True, 120), Wheel(True, -120)]
        )
        assert script.splitlines()[1:] == [
            "xdotool click 4",
            "xdotool click 5",
            "xdotool click 6",
            "xdotool click 7",
        ]

    def test_pause_in_seconds(self):
        assert "sleep 0.050" in XdotoolBackend().render([Pause(50)])

    def test_mapped_key(self):
        assert "xdotool key -- Prior" in XdotoolBackend().render([Keys("PageUp")])

    def test_key_repeat_loop(self):
        script = XdotoolBackend().render([KeyRepeat("a", 3, 50)])
        assert '[ "$i" -lt 3 ]' in script
        assert "xdotool key -- a" in script


# ---------------------------------------------------------------------------
# Script execution
# ---------------------------------------------------------------------------


class PythonBackend(ScriptBackend):
    """Runs the "script" with the current interpreter."""

    name = "python"

    def __init__(self, body: str, executable: str = sys.executable) -> None:
        self.body = body
        self.executable = executable

    def render(self, events):
        return self.body

    def render_cursor_query(self):
        return self.body

    def argv_for(self, script):
        return [self.executable, "-c", script]


class TestScriptBackend:
    @pytest.mark.asyncio
    async def test_success(self):
        await PythonBackend("pass").perform([Move(1, 2)])

    @pytest.mark.asyncio
    async def test_non_zero_exit_reports_stderr(self):
        backend = PythonBackend("import sys; sys.stderr.write('access denied'); sys.exit(1)")
        with pytest.raises(AutomationExecutionError, match="Automation script failed: access denied"):
            await backend.perform([Move(1, 2)])

    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        backend = PythonBackend("pass", executable="/nonexistent/deskhand-interpreter")
        with pytest.raises(AutomationExecutionError, match="Failed to start"):
            await backend.perform([Move(1, 2)])

    @pytest.mark.asyncio
    async def test_empty_events_spawn_nothing(self):
        backend = PythonBackend("pass", executable="/nonexistent/deskhand-interpreter")
        await backend.perform([])

    @pytest.mark.asyncio
    async def test_cursor_position(self):
        assert await PythonBackend("print('7,8')").cursor_position() == {"x": 7, "y": 8}

    def test_parse_cursor_output(self):
        assert parse_cursor_output(" 12, 34\n") == {"x": 12, "y": 34}
        with pytest.raises(AutomationExecutionError):
            parse_cursor_output("garbage")
        with pytest.raises(AutomationExecutionError):
            parse_cursor_output("a,b")


class TestCreateBackend:
    def _settings(self, choice):
        return Settings(_env_file=None, automation_backend=choice)

    def test_fake(self):
        assert isinstance(create_backend(self._settings("fake")), RecordingBackend)

    def test_explicit(self):
        assert isinstance(create_backend(self._settings("xdotool")), XdotoolBackend)
        assert isinstance(create_backend(self._settings("powershell")), PowerShellBackend)

    def test_auto_on_windows(self, monkeypatch):
        monkeypatch.setattr("deskhand.automation.backends.platform.system", lambda: "Windows")
        assert isinstance(create_backend(self._settings("auto")), PowerShellBackend)

    def test_auto_elsewhere(self, monkeypatch):
        monkeypatch.setattr("deskhand.automation.backends.platform.system", lambda: "Linux")
        assert isinstance(create_backend(self._settings("auto")), XdotoolBackend)
