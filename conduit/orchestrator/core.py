"""
Orchestrator core -- the chat-mode loop.

For one user input the orchestrator:
1. Appends the user message to a working copy of the history
2. Calls the completion client (which executes any tool calls)
3. While the client hands back tool messages, appends them and calls again
4. Stops on a reply without tool calls and appends it as the final
   assistant message
"""

from __future__ import annotations

import logging

from conduit.llm.client import CompletionClient
from conduit.llm.types import Message, StreamCallbacks
from conduit.types import ToolCallResult, TurnResult

logger = logging.getLogger(__name__)


class ChatOrchestrator:
    """
    Parameters
    ----------
    client : CompletionClient
        Completion client bound to a provider and tool registry.
    max_rounds : int
        Max tool-call rounds before the turn is cut off.
    """

    def __init__(self, client: CompletionClient, max_rounds: int = 25) -> None:
        self.client = client
        self.max_rounds = max_rounds

    async def run(
        self,
        history: list[Message],
        user_input: str,
        callbacks: StreamCallbacks | None = None,
    ) -> TurnResult:
        messages = [*history, Message(role="user", content=user_input)]
        contents: list[str] = []
        tool_calls: list[ToolCallResult] = []

        rounds = 0
        while True:
            rounds += 1
            result = await self.client.chat(messages, callbacks=callbacks)
            if result.content:
                contents.append(result.content)
            tool_calls.extend(result.tool_calls)

            if not result.messages_to_add:
                break

            messages.extend(result.messages_to_add)
            if rounds >= self.max_rounds:
                logger.warning(
                    "Chat turn stopped after %d tool-call rounds", self.max_rounds
                )
                break
            if callbacks:
                callbacks.new_message()

        content = "".join(contents)
        if not result.messages_to_add:
            messages.append(Message(role="assistant", content=result.content))

        return TurnResult(
            content=content,
            tool_calls=tool_calls,
            messages=messages,
            iterations=rounds,
            usage=result.usage,
        )
