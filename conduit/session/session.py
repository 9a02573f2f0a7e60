"""
High-level conversation session.

Owns the message history for one interactive session and gives the UI a
single entry point:

- ``send()`` runs a chat or agent turn and replaces the history with the
  turn's working list.
- Provider failures become an ``"Error: ..."`` assistant message instead of
  propagating.
- The last reported usage drives ``context_usage()`` and automatic
  compaction.
"""

from __future__ import annotations

import logging

from conduit.llm.client import CompletionClient
from conduit.llm.types import Message, StreamCallbacks
from conduit.orchestrator.agent import AgentLoopController
from conduit.orchestrator.core import ChatOrchestrator
from conduit.session.compaction import ConversationCompactor
from conduit.session.context import context_usage
from conduit.types import CompactionResult, ContextUsage, ProviderError, TurnResult, Usage

logger = logging.getLogger(__name__)

MODES = ("chat", "agent")


class Conversation:
    """
    Parameters
    ----------
    client : CompletionClient
        Client shared by both orchestrators and the compactor.
    mode : str
        ``"chat"`` or ``"agent"``.
    max_iterations : int
        Agent iteration budget.
    completion_tool : str
        Tool name that ends an agent run.
    auto_compact_threshold : int
        Compact automatically when the remaining context percentage is at or
        below this value.  ``0`` disables auto-compaction.
    keep_recent : int
        Exchanges kept verbatim by compaction.
    context_window : int | None
        Overrides the model context-window table.
    """

    def __init__(
        self,
        client: CompletionClient,
        mode: str = "chat",
        max_iterations: int = 25,
        completion_tool: str = "agent_done",
        auto_compact_threshold: int = 10,
        keep_recent: int = 3,
        context_window: int | None = None,
    ) -> None:
        self.client = client
        self.mode = mode
        self.history: list[Message] = []
        self.usage: Usage | None = None
        self.auto_compact_threshold = auto_compact_threshold
        self.keep_recent = keep_recent
        self.context_window = context_window
        self._chat = ChatOrchestrator(client, max_rounds=max_iterations)
        self._agent = AgentLoopController(
            client, max_iterations=max_iterations, completion_tool=completion_tool
        )
        self._compactor = ConversationCompactor(client)

    @property
    def mode(self) -> str:
        return self._mode

    @mode.setter
    def mode(self, value: str) -> None:
        if value not in MODES:
            raise ValueError(f"Unknown mode {value!r}; expected one of {MODES}")
        self._mode = value

    def toggle_mode(self) -> str:
        self.mode = "agent" if self.mode == "chat" else "chat"
        return self.mode

    def clear(self) -> None:
        self.history = []
        self.usage = None

    async def send(
        self, user_input: str, callbacks: StreamCallbacks | None = None
    ) -> TurnResult:
        runner = self._agent if self.mode == "agent" else self._chat
        try:
            result = await runner.run(self.history, user_input, callbacks)
        except ProviderError as e:
            logger.error("Provider error: %s", e)
            error = f"Error: {e}"
            self.history = [
                *self.history,
                Message(role="user", content=user_input),
                Message(role="assistant", content=error),
            ]
            return TurnResult(content=error, messages=self.history, state="error")

        self.history = result.messages
        if result.usage is not None:
            self.usage = result.usage
        return result

    def context_usage(self) -> ContextUsage | None:
        return context_usage(self.usage, self.client.model, self.context_window)

    def should_compact(self) -> bool:
        if self.auto_compact_threshold <= 0 or len(self.history) <= 6:
            return False
        info = self.context_usage()
        return info is not None and info.remaining_percentage <= self.auto_compact_threshold

    async def maybe_auto_compact(self) -> CompactionResult | None:
        if not self.should_compact():
            return None
        logger.info("Context nearly full, compacting history")
        return await self.compact()

    async def compact(self) -> CompactionResult:
        result = await self._compactor.compact(self.history, self.keep_recent)
        if result.messages != self.history:
            self.history = result.messages
            self.usage = None
        return result

