"""Pydantic models for the computer tool's `action` input.

The union is discriminated on the `action` field, so an unknown action
or a non-numeric coordinate/duration/amount fails validation before
anything is rendered into a script.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator

from deskhand.errors import ToolDispatchError

# Longest duration accepted for hold_key / wait, in seconds
MAX_DURATION_S = 100.0
MAX_SCROLL_AMOUNT = 100

Coordinate = tuple[int, int]
Button = Literal["left", "right", "middle"]
ScrollDirection = Literal["up", "down", "left", "right"]

_CLICKS: dict[str, tuple[Button, int]] = {
    "click": ("left", 1),
    "left_click": ("left", 1),
    "right_click": ("right", 1),
    "middle_click": ("middle", 1),
    "double_click": ("left", 2),
    "triple_click": ("left", 3),
}


class MouseMove(BaseModel):
    action: Literal["mouse_move"]
    coordinate: Coordinate


class Click(BaseModel):
    action: Literal["click", "left_click", "right_click", "middle_click", "double_click", "triple_click"]
    coordinate: Coordinate | None = None

    @property
    def button(self) -> Button:
        return _CLICKS[self.action][0]

    @property
    def count(self) -> int:
        return _CLICKS[self.action][1]


class MouseDown(BaseModel):
    action: Literal["left_mouse_down"]


class MouseUp(BaseModel):
    action: Literal["left_mouse_up"]


class Drag(BaseModel):
    action: Literal["left_click_drag"]
    start_coordinate: Coordinate
    coordinate: Coordinate


class Scroll(BaseModel):
    action: Literal["scroll"]
    coordinate: Coordinate | None = None
    scroll_direction: ScrollDirection = "down"
    scroll_amount: int = Field(5, ge=0, le=MAX_SCROLL_AMOUNT)


class TypeText(BaseModel):
    action: Literal["type"]
    text: str


class Key(BaseModel):
    """Press a key or chord. Accepts the token as `text` or `key`."""

    action: Literal["key"]
    text: str | None = None
    key: str | None = None

    @model_validator(mode="after")
    def _require_token(self) -> "Key":
        if not (self.text or self.key):
            raise ValueError("key action requires `text` (or `key`)")
        return self

    @property
    def token(self) -> str:
        return self.key or self.text or ""


class HoldKey(BaseModel):
    action: Literal["hold_key"]
    text: str = Field(min_length=1)
    duration: float = Field(gt=0, le=MAX_DURATION_S)


class CursorPosition(BaseModel):
    action: Literal["cursor_position"]


class Wait(BaseModel):
    action: Literal["wait"]
    duration: float = Field(1.0, ge=0, le=MAX_DURATION_S)


class Screenshot(BaseModel):
    action: Literal["screenshot"]


AutomationAction = Union[
    MouseMove, Click, MouseDown, MouseUp, Drag, Scroll,
    TypeText, Key, HoldKey, CursorPosition, Wait,
]

ComputerAction = Annotated[
    Union[
        MouseMove, Click, MouseDown, MouseUp, Drag, Scroll,
        TypeText, Key, HoldKey, CursorPosition, Wait, Screenshot,
    ],
    Field(discriminator="action"),
]

_ADAPTER: TypeAdapter[Any] = TypeAdapter(ComputerAction)

ACTION_NAMES = frozenset({
    "mouse_move", *_CLICKS, "left_mouse_down", "left_mouse_up", "left_click_drag",
    "scroll", "type", "key", "hold_key", "cursor_position", "wait", "screenshot",
})


def parse_action(tool_input: dict[str, Any]) -> Any:
    """Validate computer tool input into one action model.

    Raises ToolDispatchError for a missing/unknown action or malformed fields.
    """
    if not isinstance(tool_input, dict):
        raise ToolDispatchError("Tool input must be an object")
    action = tool_input.get("action")
    if not action:
        raise ToolDispatchError("Missing required field: action")
    if action not in ACTION_NAMES:
        raise ToolDispatchError(f"Unknown computer action: {action}")
    try:
        return _ADAPTER.validate_python(tool_input)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or 'input'}: {err['msg']}"
            for err in e.errors()
        )
        raise ToolDispatchError(f"Invalid input for {action}: {problems}") from None
