"""
Agent loop -- a bounded run of model turns until the task is signalled done.

Each iteration is one ``chat()`` call in agent mode.  The loop ends when:

- the first iteration produced no tool calls (a trivial request, handled
  like a chat turn);
- the completion tool was called in this iteration;
- ``max_iterations`` was reached, in which case a notice is added to the
  returned content.

Between iterations an internal ``user`` message tells the model how many
turns remain.  It is marked ``is_internal`` so UIs do not display it.
"""

from __future__ import annotations

import enum
import logging

from conduit.llm.client import CompletionClient
from conduit.llm.types import Message, StreamCallbacks
from conduit.prompts.system import MAX_ITERATIONS_NOTICE, continuation_prompt
from conduit.types import ToolCallResult, TurnResult

logger = logging.getLogger(__name__)


class AgentState(str, enum.Enum):
    RUNNING = "running"
    DONE = "done"
    EXHAUSTED = "exhausted"


class AgentLoopController:
    def __init__(
        self,
        client: CompletionClient,
        max_iterations: int = 25,
        completion_tool: str = "agent_done",
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.client = client
        self.max_iterations = max_iterations
        self.completion_tool = completion_tool

    async def run(
        self,
        history: list[Message],
        user_input: str,
        callbacks: StreamCallbacks | None = None,
    ) -> TurnResult:
        messages = [*history, Message(role="user", content=user_input)]
        responses: list[str] = []
        tool_calls: list[ToolCallResult] = []
        state = AgentState.RUNNING
        iteration = 0

        while state is AgentState.RUNNING:
            iteration += 1
            result = await self.client.chat(
                messages, callbacks=callbacks, agent_mode=True
            )
            responses.append(result.content)
            tool_calls.extend(result.tool_calls)

            if iteration == 1 and not result.messages_to_add:
                messages.append(Message(role="assistant", content=result.content))
                state = AgentState.DONE
                break

            if result.messages_to_add:
                messages.extend(result.messages_to_add)
                if any(tc.name == self.completion_tool for tc in result.tool_calls):
                    state = AgentState.DONE
                    break
                if callbacks:
                    callbacks.new_message()
            else:
                messages.append(Message(role="assistant", content=result.content))

            remaining = self.max_iterations - iteration
            messages.append(
                Message(
                    role="user",
                    content=continuation_prompt(
                        remaining,
                        bool(result.messages_to_add),
                        self.completion_tool,
                    ),
                    is_internal=True,
                )
            )

            if remaining <= 0:
                state = AgentState.EXHAUSTED

        if state is AgentState.EXHAUSTED:
            logger.info("Agent stopped after %d iterations", iteration)
            responses.append(MAX_ITERATIONS_NOTICE)

        return TurnResult(
            content="\n\n".join(responses),
            tool_calls=tool_calls,
            messages=messages,
            iterations=iteration,
            state=state.value,
            usage=result.usage,
        )
