"""Merging of reasoning ("thinking") text into the assistant content stream.

NIM reasoning models send their thinking in a side field next to ``content``.
OpenAI clients only know ``content``, so the reasoning is either dropped or
folded into the content wrapped in ``<think>`` tags.
"""

import enum
from collections.abc import MutableMapping
from typing import Any

THINK_OPEN = "<think>\n"
THINK_CLOSE = "</think>\n\n"

REASONING_FIELDS = ("reasoning_content", "reasoning")


class ReasoningBlock(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"


def pop_reasoning(fields: MutableMapping[str, Any]) -> str | None:
    """Remove every reasoning field from ``fields`` and return the first non-empty one."""
    found = None
    for name in REASONING_FIELDS:
        value = fields.pop(name, None)
        if found is None and isinstance(value, str) and value:
            found = value
    return found


class ReasoningRecombiner:
    """
    Per-stream state machine that turns (reasoning, content) delta pairs into
    a single content string.

    One instance belongs to exactly one response stream.
    """

    def __init__(self, show_reasoning: bool) -> None:
        self.show_reasoning = show_reasoning
        self.block = ReasoningBlock.CLOSED

    @property
    def inside_block(self) -> bool:
        return self.block is ReasoningBlock.OPEN

    def merge(self, reasoning: str | None, content: str | None) -> str:
        """Return the outgoing content for one delta fragment."""
        if not self.show_reasoning:
            return content or ""

        combined = ""
        if reasoning:
            if self.block is ReasoningBlock.CLOSED:
                combined = THINK_OPEN + reasoning
                self.block = ReasoningBlock.OPEN
            else:
                combined = reasoning

        if content:
            if self.block is ReasoningBlock.OPEN:
                combined += THINK_CLOSE + content
                self.block = ReasoningBlock.CLOSED
            else:
                combined += content

        return combined

    def rewrite_delta(self, delta: MutableMapping[str, Any]) -> None:
        """Rewrite a streamed ``delta`` in place: merged content, no reasoning fields."""
        reasoning = pop_reasoning(delta)
        content = delta.get("content")
        if not isinstance(content, str):
            content = None
        delta["content"] = self.merge(reasoning, content)


def combine_message(reasoning: str | None, content: str | None, show_reasoning: bool) -> str:
    """Single-shot form of the merge for a complete (non-streamed) message."""
    content = content or ""
    if show_reasoning and reasoning:
        return f"{THINK_OPEN}{reasoning}\n{THINK_CLOSE}{content}"
    return content
