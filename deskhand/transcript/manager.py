"""Conversation manager: the only writer of a run's Transcript.

Enforces the protocol rule that every tool_use in an assistant turn is
answered, in the same order, by exactly one tool_result in the
following user turn.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence

from deskhand.errors import TranscriptProtocolError
from deskhand.transcript.schemas import (
    ContentBlock,
    ImageBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    Transcript,
    Turn,
)

logger = logging.getLogger(__name__)

MISSING_RESULT_ERROR = "No result was produced for this tool invocation"


class ConversationManager:
    """Builds and extends the transcript for one agent run."""

    def __init__(self) -> None:
        self._transcript: Transcript | None = None

    @property
    def transcript(self) -> Transcript:
        if self._transcript is None:
            raise TranscriptProtocolError("Transcript has not been seeded")
        return self._transcript

    def seed(self, instruction: str, image: ImageBlock | None = None) -> Transcript:
        """Create the transcript with its initial user turn.

        With an image the content is [image, text], in that order.
        """
        if self._transcript is not None:
            raise TranscriptProtocolError("Transcript already seeded")
        content: list[ContentBlock] = []
        if image is not None:
            content.append(image)
        content.append(TextBlock(text=instruction))
        self._transcript = Transcript()
        self._transcript._append(Turn(role="user", content=content))
        return self._transcript

    def append_assistant(self, blocks: Sequence[ContentBlock]) -> Turn:
        """Append the model's response verbatim."""
        transcript = self.transcript
        last = transcript.last
        if last is not None and last.role == "assistant":
            raise TranscriptProtocolError("Two consecutive assistant turns")
        turn = Turn(role="assistant", content=list(blocks))
        transcript._append(turn)
        return turn

    def pending_tool_uses(self) -> list[ToolUseBlock]:
        """tool_use blocks of the latest turn, if it is an assistant turn."""
        last = self.transcript.last
        if last is None or last.role != "assistant":
            return []
        return last.tool_uses

    def append_tool_results(self, results: Sequence[ToolResultBlock]) -> Turn:
        """Append one user turn answering the preceding assistant turn.

        Results are reordered to mirror the tool_use order. A tool_use
        without a result gets a synthetic error result instead of being
        left unanswered.
        """
        tool_uses = self.pending_tool_uses()
        if not tool_uses:
            raise TranscriptProtocolError("No pending tool_use blocks to answer")

        by_id: dict[str, ToolResultBlock] = {}
        for result in results:
            if result.tool_use_id in by_id:
                raise TranscriptProtocolError(
                    f"Duplicate tool_result for tool_use_id {result.tool_use_id}"
                )
            by_id[result.tool_use_id] = result

        expected = {use.id for use in tool_uses}
        unknown = [rid for rid in by_id if rid not in expected]
        if unknown:
            raise TranscriptProtocolError(f"tool_result ids without a tool_use: {unknown}")

        ordered: list[ContentBlock] = []
        for use in tool_uses:
            result = by_id.get(use.id)
            if result is None:
                logger.error("No result for tool_use %s (%s); substituting error", use.id, use.name)
                result = ToolResultBlock(
                    tool_use_id=use.id,
                    content=json.dumps({"error": MISSING_RESULT_ERROR}),
                    is_error=True,
                )
            ordered.append(result)

        turn = Turn(role="user", content=ordered)
        self.transcript._append(turn)
        return turn
