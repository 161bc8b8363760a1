"""Pydantic models for the conversation transcript.

Content blocks mirror the Anthropic Messages API shapes. to_wire()
produces the JSON the API expects; parse_block() turns response JSON
back into blocks. Block types the agent does not interpret (thinking,
redacted_thinking, server tool blocks) are kept as OpaqueBlock so the
assistant turn can be replayed verbatim.
"""

from __future__ import annotations

import base64
from typing import Any, Literal, Union

from pydantic import BaseModel, Field


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


class ImageBlock(BaseModel):
    type: Literal["image"] = "image"
    data: bytes
    media_type: str = "image/png"

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": self.media_type,
                "data": base64.b64encode(self.data).decode("ascii"),
            },
        }


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str | list[TextBlock | ImageBlock]
    is_error: bool = False

    def to_wire(self) -> dict[str, Any]:
        content: Any = self.content
        if not isinstance(content, str):
            content = [block.to_wire() for block in content]
        wire: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": content,
        }
        if self.is_error:
            wire["is_error"] = True
        return wire


class OpaqueBlock(BaseModel):
    """A block passed through untouched (e.g. thinking with its signature)."""

    type: str
    payload: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        return dict(self.payload)


ContentBlock = Union[TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock, OpaqueBlock]


def parse_block(raw: dict[str, Any]) -> ContentBlock:
    """Parse one content block from a Messages API response."""
    block_type = raw.get("type")
    if block_type == "text":
        return TextBlock(text=raw.get("text", ""))
    if block_type == "tool_use":
        return ToolUseBlock(id=raw["id"], name=raw["name"], input=raw.get("input") or {})
    return OpaqueBlock(type=str(block_type), payload=raw)


class Turn(BaseModel):
    """One message of the transcript."""

    role: Literal["user", "assistant"]
    content: list[ContentBlock]

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def tool_results(self) -> list[ToolResultBlock]:
        return [b for b in self.content if isinstance(b, ToolResultBlock)]

    def first_text(self) -> str | None:
        for block in self.content:
            if isinstance(block, TextBlock):
                return block.text
        return None

    def to_wire(self) -> dict[str, Any]:
        return {"role": self.role, "content": [b.to_wire() for b in self.content]}


class Transcript:
    """Ordered, append-only sequence of turns owned by a single run.

    Only ConversationManager appends; everyone else gets a read-only view.
    """

    def __init__(self) -> None:
        self._turns: list[Turn] = []

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def _append(self, turn: Turn) -> None:
        self._turns.append(turn)

    def to_messages(self) -> list[dict[str, Any]]:
        """Wire form for the Messages API `messages` field."""
        return [turn.to_wire() for turn in self._turns]
