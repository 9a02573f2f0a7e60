"""
Conversation compaction.

Older conversational turns are replaced by one summary message produced by
the model.  The most recent ``keep_recent_count`` exchanges stay verbatim,
as do the last few tool results.  If the summarization call fails the
history is returned untouched.
"""

from __future__ import annotations

import logging
import math

from conduit.llm.client import CompletionClient
from conduit.llm.types import Message
from conduit.prompts.system import SUMMARIZER_PROMPT, SUMMARY_TAG, summarization_request
from conduit.types import CompactionResult

logger = logging.getLogger(__name__)

KEEP_TOOL_MESSAGES = 5


class ConversationCompactor:
    def __init__(self, client: CompletionClient) -> None:
        self.client = client

    async def compact(
        self, messages: list[Message], keep_recent_count: int = 3
    ) -> CompactionResult:
        conversational = [m for m in messages if m.role != "tool"]
        keep = keep_recent_count * 2
        if len(conversational) <= keep:
            return _unchanged(messages)

        older = conversational[: len(conversational) - keep]
        recent = conversational[len(conversational) - keep :]

        try:
            summary = await self.client.complete(
                [
                    Message(role="system", content=SUMMARIZER_PROMPT),
                    Message(role="user", content=summarization_request(_transcript(older))),
                ]
            )
        except Exception as e:
            logger.error("Compaction failed: %s", e)
            return _unchanged(messages)

        summary_message = Message(
            role="assistant",
            content=f"{SUMMARY_TAG}\n{summary}",
            is_summary=True,
        )
        tool_messages = [m for m in messages if m.role == "tool"][-KEEP_TOOL_MESSAGES:]
        compacted = [summary_message, *tool_messages, *recent]

        return CompactionResult(
            messages=compacted,
            tokens_saved=_tokens_saved(older, summary_message),
            original_count=len(messages),
            compacted_count=len(compacted),
        )


def _transcript(messages: list[Message]) -> str:
    return "\n\n".join(
        f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}" for m in messages
    )


def _tokens_saved(older: list[Message], summary: Message) -> int:
    chars = sum(len(m.content) for m in older) - len(summary.content)
    # round half up
    return math.floor(max(0, chars) / 4 + 0.5)


def _unchanged(messages: list[Message]) -> CompactionResult:
    return CompactionResult(
        messages=list(messages),
        tokens_saved=0,
        original_count=len(messages),
        compacted_count=len(messages),
    )
