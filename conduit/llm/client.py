"""
Completion client -- one provider round-trip plus the tools it triggers.

The client is the primary entry point for the orchestrators when they need
an LLM response.  It:

  1. Prefixes the chat or agent system prompt and sends the conversation
     (plus tool schemas when tools are enabled) to the provider.
  2. Streams content to ``on_token`` and feeds tool-call deltas into a
     ``ToolCallAssembler``.
  3. At stream end, finalizes each reconstructed call and executes it through
     the ``ToolRegistry``, one at a time in stream order.
  4. Returns a ``ChatResult`` whose ``messages_to_add`` holds the assistant
     ``tool_calls`` message and the matching tool messages.  The client never
     appends them or loops; that is the orchestrator's job.

Without callbacks the request is made non-streaming and no callbacks fire,
but the structured result is the same.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from conduit.llm.providers.base import Provider
from conduit.llm.token_counter import TokenCounter
from conduit.llm.tool_call_assembler import ToolCallAssembler
from conduit.llm.types import ChatResult, Message, StreamCallbacks, ToolCall
from conduit.prompts.system import build_system_prompt
from conduit.tools.base import ToolContext
from conduit.tools.registry import ToolRegistry
from conduit.types import ProviderError, ToolCallResult, Usage

logger = logging.getLogger(__name__)


class CompletionClient:
    """
    Parameters
    ----------
    provider : Provider
        Transport to the LLM endpoint.
    registry : ToolRegistry
        Tools offered to, and executed for, the model.
    context : ToolContext
        Session-scoped context handed to every tool call.
    completion_tool : str
        Name of the tool that ends an agent run; mentioned in the agent prompt.
    token_counter : TokenCounter
        Used to estimate usage when the provider does not report it.
    """

    def __init__(
        self,
        provider: Provider,
        registry: ToolRegistry,
        context: ToolContext | None = None,
        completion_tool: str = "agent_done",
        token_counter: TokenCounter | None = None,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.context = context or ToolContext()
        self.completion_tool = completion_tool
        self.token_counter = token_counter or TokenCounter()

    @property
    def model(self) -> str:
        return self.provider.model

    async def chat(
        self,
        messages: list[Message],
        tools_enabled: bool = True,
        callbacks: StreamCallbacks | None = None,
        agent_mode: bool = False,
    ) -> ChatResult:
        system = Message(
            role="system",
            content=build_system_prompt(agent_mode, self.completion_tool),
        )
        outbound = [system, *prepare_for_provider(messages)]
        tools = self.registry.to_llm_schema() if tools_enabled else None

        content, calls, usage = await self._consume(
            outbound, tools or None, callbacks, tools_enabled
        )
        if usage is None:
            usage = self.token_counter.estimate_usage(outbound, content)

        results: list[ToolCallResult] = []
        executed: list[ToolCall] = []
        for call in calls:
            result = await self._run_tool_call(call, callbacks)
            if result is not None:
                executed.append(call)
                results.append(result)

        if callbacks:
            callbacks.usage(usage)
            callbacks.complete()

        if not results:
            return ChatResult(content=content, usage=usage)

        messages_to_add = [Message(role="assistant", content="", tool_calls=executed)]
        messages_to_add.extend(
            Message(role="tool", content=r.result, tool_call_id=r.id) for r in results
        )
        return ChatResult(
            content=content,
            tool_calls=results,
            messages_to_add=messages_to_add,
            usage=usage,
        )

    async def complete(self, messages: list[Message]) -> str:
        """Plain non-streaming completion without tools or system prompt."""
        content, _calls, _usage = await self._consume(messages, None, None, False)
        return content

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _consume(
        self,
        outbound: list[Message],
        tools: list[dict] | None,
        callbacks: StreamCallbacks | None,
        tools_enabled: bool,
    ) -> tuple[str, list[ToolCall], Usage | None]:
        assembler = ToolCallAssembler()
        content_parts: list[str] = []
        usage: Usage | None = None

        try:
            async for chunk in self.provider.chat(
                outbound, tools=tools, stream=callbacks is not None
            ):
                if chunk.delta:
                    content_parts.append(chunk.delta)
                    if callbacks:
                        callbacks.token(chunk.delta)

                if chunk.tool_deltas and tools_enabled:
                    for td in chunk.tool_deltas:
                        assembler.feed(td)

                if chunk.usage is not None:
                    usage = chunk.usage
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(f"LLM provider error: {exc}") from exc

        calls = assembler.flush()
        if assembler.errors:
            logger.warning("Tool-call assembly errors: %s", assembler.errors)
        return "".join(content_parts), calls, usage

    async def _run_tool_call(
        self, call: ToolCall, callbacks: StreamCallbacks | None
    ) -> ToolCallResult | None:
        tool = self.registry.get(call.name)
        if tool is None:
            logger.warning("Model called unknown tool %r; skipping", call.name)
            return None

        if callbacks:
            callbacks.tool_call(call.name, call.arguments)

        if call.parse_error is not None:
            return ToolCallResult(
                id=call.id,
                name=call.name,
                args={},
                result=f"Error: Invalid tool arguments JSON: {call.parse_error}",
                is_error=True,
            )

        text, is_error = await self.registry.execute(tool, call.arguments, self.context)
        return ToolCallResult(
            id=call.id,
            name=call.name,
            args=call.arguments,
            result=text,
            is_error=is_error,
        )


def prepare_for_provider(messages: list[Message]) -> list[Message]:
    """
    Enforce the provider's tool-message ordering on *messages*.

    A tool message is kept only inside the run of tool messages directly
    following the assistant message that issued its ``tool_call_id``.  An
    assistant message whose calls are not all answered loses its
    ``tool_calls`` (and is dropped entirely if it has no text).  This keeps
    compacted histories sendable.
    """
    out: list[Message] = []
    i = 0
    while i < len(messages):
        msg = messages[i]

        if msg.role == "tool":
            logger.debug("Dropping orphan tool message %s", msg.tool_call_id)
            i += 1
            continue

        if msg.role == "assistant" and msg.tool_calls:
            j = i + 1
            answers: list[Message] = []
            while j < len(messages) and messages[j].role == "tool":
                answers.append(messages[j])
                j += 1
            ids = {tc.id for tc in msg.tool_calls}
            answered = {a.tool_call_id for a in answers}
            if ids <= answered:
                out.append(msg)
                out.extend(a for a in answers if a.tool_call_id in ids)
            elif msg.content:
                out.append(replace(msg, tool_calls=None))
            i = j
            continue

        out.append(msg)
        i += 1
    return out
