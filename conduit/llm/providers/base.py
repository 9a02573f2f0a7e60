"""The interface every LLM backend implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from conduit.llm.types import Message, StreamChunk


class Provider(ABC):
    """
    One chat-completion endpoint.

    ``chat`` is an async generator in both modes.  Streaming yields text and
    tool-call fragments as they arrive; a non-streaming request yields one
    chunk holding the whole reply.  Either way the final chunk has
    ``done=True`` and carries ``usage`` when the endpoint reports it.

    Failures surface as ``ProviderError``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short backend label for logs, e.g. ``"openai-compat"``."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier; also the key for context-window lookups."""

    @abstractmethod
    def chat(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        stream: bool = True,
    ) -> AsyncIterator[StreamChunk]:
        """Send *messages* (and *tools*, if any) and iterate the reply."""
