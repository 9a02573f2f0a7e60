"""LLM subsystem -- providers, the completion client, and streaming tool-call assembly."""

from conduit.llm.types import (
    ChatResult,
    Message,
    RawToolDelta,
    StreamCallbacks,
    StreamChunk,
    ToolCall,
)
from conduit.llm.client import CompletionClient
from conduit.llm.tool_call_assembler import ToolCallAssembler
from conduit.llm.token_counter import TokenCounter

__all__ = [
    "ChatResult",
    "CompletionClient",
    "Message",
    "RawToolDelta",
    "StreamCallbacks",
    "StreamChunk",
    "TokenCounter",
    "ToolCall",
    "ToolCallAssembler",
]
