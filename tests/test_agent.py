"""Tests for the agent loop controller."""

from __future__ import annotations

import pytest

from conduit.llm.client import CompletionClient
from conduit.llm.types import StreamCallbacks
from conduit.orchestrator.agent import AgentLoopController, AgentState
from conduit.prompts.system import MAX_ITERATIONS_NOTICE
from conduit.tools.builtin.plan import AgentDoneTool
from conduit.tools.registry import ToolRegistry
from tests.mock_providers import MockProvider, text_script, tool_call_script
from tests.mock_tools import EchoTool

DONE_ARGS = {"summary": "All done", "final_status": "success", "next_steps": None}


@pytest.fixture
def registry():
    reg = ToolRegistry()
    reg.register_all([EchoTool(), AgentDoneTool()])
    return reg


def _agent(provider, registry, max_iterations=25) -> AgentLoopController:
    return AgentLoopController(CompletionClient(provider, registry), max_iterations=max_iterations)


def _internal(messages):
    return [m for m in messages if m.is_internal]


class TestTermination:
    async def test_first_iteration_without_tools_is_done(self, registry):
        provider = MockProvider([text_script("Just an answer")])
        result = await _agent(provider, registry).run([], "What is 2+2?")

        assert result.state == AgentState.DONE.value
        assert result.iterations == 1
        assert result.content == "Just an answer"
        assert provider.call_count == 1
        assert _internal(result.messages) == []

    async def test_completion_tool_ends_run(self, registry):
        provider = MockProvider([
            tool_call_script("echo", {"message": "step"}, call_id="s1"),
            tool_call_script("agent_done", DONE_ARGS, call_id="d1"),
        ])
        result = await _agent(provider, registry).run([], "do the thing")

        assert result.state == AgentState.DONE.value
        assert result.iterations == 2
        assert provider.call_count == 2
        assert [tc.name for tc in result.tool_calls] == ["echo", "agent_done"]
        assert "Task completed with status: success" in result.tool_calls[-1].result
        assert result.messages[-1].role == "tool"
        assert len(_internal(result.messages)) == 1

    async def test_completion_on_first_iteration(self, registry):
        provider = MockProvider([tool_call_script("agent_done", DONE_ARGS)])
        result = await _agent(provider, registry).run([], "nothing to do")
        assert result.state == AgentState.DONE.value
        assert result.iterations == 1

    async def test_exhausted_after_max_iterations(self, registry):
        provider = MockProvider([tool_call_script("echo", {"message": "again"})])
        result = await _agent(provider, registry, max_iterations=3).run([], "never stops")

        assert result.state == AgentState.EXHAUSTED.value
        assert result.iterations == 3
        assert provider.call_count == 3
        assert result.content.endswith(MAX_ITERATIONS_NOTICE)
        assert "maximum iterations limit" in result.content

    async def test_text_after_first_iteration_continues(self, registry):
        provider = MockProvider([
            tool_call_script("echo", {"message": "look"}),
            text_script("Analysing the result"),
            tool_call_script("agent_done", DONE_ARGS),
        ])
        result = await _agent(provider, registry).run([], "task")

        assert result.state == AgentState.DONE.value
        assert result.iterations == 3
        assert ("assistant", "Analysing the result") in [
            (m.role, m.content) for m in result.messages
        ]


class TestContinuationPrompts:
    async def test_prompts_follow_remaining_budget(self, registry):
        provider = MockProvider([tool_call_script("echo", {"message": "x"})])
        result = await _agent(provider, registry, max_iterations=3).run([], "go")

        prompts = [m.content for m in _internal(result.messages)]
        assert len(prompts) == 3
        assert prompts[0].startswith("You have 2 turns remaining")
        assert prompts[1].startswith("You have only 1 turn remaining")
        assert prompts[2].startswith("FINAL TURN")
        assert "agent_done" in prompts[2]
        assert all(m.role == "user" for m in _internal(result.messages))

    async def test_prompt_sent_to_next_iteration(self, registry):
        provider = MockProvider([
            tool_call_script("echo", {"message": "x"}),
            tool_call_script("agent_done", DONE_ARGS),
        ])
        await _agent(provider, registry).run([], "go")
        second = provider.calls[1]["messages"]
        assert second[-1].role == "user"
        assert second[-1].is_internal
        assert "24 turns remaining" in second[-1].content

    async def test_text_iteration_uses_text_prompt(self, registry):
        provider = MockProvider([
            tool_call_script("echo", {"message": "x"}),
            text_script("thinking"),
            tool_call_script("agent_done", DONE_ARGS),
        ])
        result = await _agent(provider, registry).run([], "go")
        prompts = [m.content for m in _internal(result.messages)]
        assert "take the next action" in prompts[1]


class TestOutput:
    async def test_content_joined_with_blank_lines(self, registry):
        provider = MockProvider([
            tool_call_script("echo", {"message": "x"}, content_prefix="First."),
            tool_call_script("agent_done", DONE_ARGS, content_prefix="Second."),
        ])
        result = await _agent(provider, registry).run([], "go")
        assert result.content == "First.\n\nSecond."

    async def test_new_message_signalled_between_tool_iterations(self, registry):
        provider = MockProvider([
            tool_call_script("echo", {"message": "x"}),
            tool_call_script("agent_done", DONE_ARGS),
        ])
        signals = []
        callbacks = StreamCallbacks(on_new_message=lambda: signals.append(1))
        await _agent(provider, registry).run([], "go", callbacks)
        assert signals == [1]

    async def test_agent_mode_flag_sent(self, registry):
        provider = MockProvider([text_script("hi")])
        await _agent(provider, registry).run([], "go")
        assert "autonomous AI agent" in provider.calls[0]["messages"][0].content

    def test_invalid_budget(self, registry):
        with pytest.raises(ValueError):
            _agent(MockProvider(), registry, max_iterations=0)
