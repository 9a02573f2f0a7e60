"""System, continuation and summarizer prompts."""

from __future__ import annotations

CHAT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Use tools when needed to provide "
    "accurate and up-to-date information."
)

AGENT_SYSTEM_PROMPT = """You are an autonomous AI agent. Work through the user's request step by step, using your tools to gather information and take actions.

## Planning

- For multi-step tasks, start by creating a plan with agent_plan_create.
- Update step status with agent_plan_update as you make progress.
- Keep each turn focused: take an action, look at the result, decide the next step.

## Iteration Budget

- You have a limited number of turns. Each response you give uses one.
- Messages telling you how many turns remain are part of the system, not the user.
- When the task is complete, or cannot be completed, call {completion_tool} with a summary.

## Tool Use

- Call tools through the function-calling interface only.
- Never write tool calls, JSON invocations or function syntax as plain text in your reply.
- If a tool returns an error, adjust your approach instead of repeating the same call."""

SUMMARIZER_PROMPT = (
    "You are a conversation summarizer. Create a concise but comprehensive "
    "summary of the conversation that preserves key context, decisions, and "
    "information. Focus on what would be important for continuing the "
    "conversation."
)

SUMMARY_TAG = "[Conversation Summary]"

MAX_ITERATIONS_NOTICE = "\n[Agent mode reached maximum iterations limit]"


def build_system_prompt(
    agent_mode: bool = False,
    completion_tool: str = "agent_done",
    extra_sections: list[str] | None = None,
) -> str:
    if agent_mode:
        sections = [AGENT_SYSTEM_PROMPT.format(completion_tool=completion_tool)]
    else:
        sections = [CHAT_SYSTEM_PROMPT]
    if extra_sections:
        sections.extend(extra_sections)
    return "\n\n".join(sections)


def continuation_prompt(
    remaining: int, made_tool_calls: bool, completion_tool: str = "agent_done"
) -> str:
    """Internal nudge appended after an agent iteration that did not finish."""
    if remaining <= 0:
        if made_tool_calls:
            return (
                f"FINAL TURN: You must now complete your task and call {completion_tool} "
                "with a summary. No more tool calls will be possible after this response."
            )
        return (
            f"FINAL TURN: You must now complete your task and call {completion_tool} "
            "with a summary if your work is done. No more iterations will be possible "
            "after this response."
        )
    if remaining == 1:
        if made_tool_calls:
            return (
                "You have only 1 turn remaining. Please wrap up your task soon and call "
                f"{completion_tool} when complete. Continue with any final analysis or "
                "actions needed."
            )
        return (
            "You have only 1 turn remaining. If your analysis is complete, please call "
            f"{completion_tool}. Otherwise, continue with your final analysis or action."
        )
    if made_tool_calls:
        return (
            f"You have {remaining} turns remaining. Please continue with any additional "
            "analysis or actions needed based on the information gathered."
        )
    return (
        f"You have {remaining} turns remaining. Please continue with your analysis "
        "or take the next action needed."
    )


def summarization_request(transcript: str) -> str:
    return f"Please summarize this conversation:\n\n{transcript}"
