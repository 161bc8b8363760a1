"""Transcript data model and the conversation manager that appends to it.

Public API:
    ConversationManager - seeds and extends one run's transcript
    Transcript, Turn    - ordered turns of content blocks

Blocks:
    TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock, OpaqueBlock
"""

from deskhand.transcript.manager import ConversationManager
from deskhand.transcript.schemas import (
    ContentBlock,
    ImageBlock,
    OpaqueBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    Transcript,
    Turn,
    parse_block,
)

__all__ = [
    "ConversationManager",
    "ContentBlock",
    "ImageBlock",
    "OpaqueBlock",
    "TextBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "Transcript",
    "Turn",
    "parse_block",
]
