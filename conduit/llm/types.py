"""Core types for the LLM subsystem."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from conduit.types import ToolCallResult, Usage


@dataclass
class Message:
    """A single message in a conversation.

    ``content`` is what the provider sees.  ``display_content`` is UI-only
    text and is never sent.  ``is_internal`` marks scaffolding (continuation
    prompts) that a UI should hide.
    """

    role: str  # "user", "assistant", "system", "tool"
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    display_content: str | None = None
    is_internal: bool = False
    is_summary: bool = False
    timestamp: float = field(default_factory=time.time)

    @property
    def visible_content(self) -> str:
        if self.display_content is not None:
            return self.display_content
        return self.content


@dataclass
class ToolCall:
    """A tool call reconstructed from the stream.

    ``raw_arguments`` is the verbatim concatenation of the argument
    fragments; ``arguments`` is its parsed form (``{}`` when it did not
    parse, in which case ``parse_error`` is set).
    """

    id: str
    name: str
    arguments: dict
    raw_arguments: str = ""
    parse_error: str | None = None


@dataclass
class RawToolDelta:
    """
    An incremental delta for a streaming tool call.

    Providers emit these as tool-call fragments arrive.  The ToolCallAssembler
    accumulates them and produces finished ToolCall objects at stream end.
    """

    call_index: int
    id: str | None = None
    name_delta: str = ""
    args_delta: str = ""


@dataclass
class StreamChunk:
    """
    A single chunk yielded while streaming a chat completion.

    *delta* carries new text content.
    *tool_deltas* carries incremental tool-call fragments.
    *usage* carries the provider's token accounting, usually on the last chunk.
    *done* is ``True`` on the final chunk.
    """

    delta: str = ""
    tool_deltas: list[RawToolDelta] | None = None
    usage: Usage | None = None
    done: bool = False


@dataclass
class StreamCallbacks:
    """Optional hooks a UI layer can attach to a streaming ``chat()`` call."""

    on_token: Callable[[str], None] | None = None
    on_tool_call: Callable[[str, dict], None] | None = None
    on_complete: Callable[[], None] | None = None
    on_usage: Callable[[Usage], None] | None = None
    on_new_message: Callable[[], None] | None = None

    def token(self, text: str) -> None:
        if self.on_token:
            self.on_token(text)

    def tool_call(self, name: str, args: dict) -> None:
        if self.on_tool_call:
            self.on_tool_call(name, args)

    def complete(self) -> None:
        if self.on_complete:
            self.on_complete()

    def usage(self, usage: Usage) -> None:
        if self.on_usage:
            self.on_usage(usage)

    def new_message(self) -> None:
        if self.on_new_message:
            self.on_new_message()


@dataclass
class ChatResult:
    """
    The outcome of one provider round-trip.

    ``messages_to_add`` is ``None`` when the model made no (known) tool
    calls.  Otherwise it holds the assistant ``tool_calls`` message followed
    by one tool message per call, ready to be appended by the caller.
    """

    content: str
    tool_calls: list[ToolCallResult] = field(default_factory=list)
    messages_to_add: list[Message] | None = None
    usage: Usage | None = None
