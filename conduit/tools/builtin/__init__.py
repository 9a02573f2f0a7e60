"""Built-in tools shipped with conduit."""

from __future__ import annotations

import httpx

from conduit.tools.base import Tool
from conduit.tools.builtin.file_writer import WriteFileTool
from conduit.tools.builtin.plan import AgentDoneTool, PlanCreateTool, PlanUpdateTool
from conduit.tools.builtin.serper import ScrapeUrlTool, SerperClient, WebSearchTool
from conduit.tools.builtin.tasks import (
    CompleteTaskTool,
    CreateProjectTool,
    CreateTaskTool,
    GetProjectsTool,
    GetTasksTool,
    TodoistClient,
)


def default_tools(
    serper_api_key: str = "",
    serper_api_key_env: str = "SERPER_API_KEY",
    todoist_api_key: str = "",
    todoist_api_key_env: str = "TODOIST_API_KEY",
    disabled: list[str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[Tool]:
    """Instantiate every built-in tool, minus the names in *disabled*."""
    serper = SerperClient(serper_api_key, serper_api_key_env, transport=transport)
    todoist = TodoistClient(todoist_api_key, todoist_api_key_env, transport=transport)
    tools: list[Tool] = [
        WebSearchTool(serper),
        ScrapeUrlTool(serper),
        WriteFileTool(),
        CreateTaskTool(todoist),
        GetTasksTool(todoist),
        CompleteTaskTool(todoist),
        GetProjectsTool(todoist),
        CreateProjectTool(todoist),
        PlanCreateTool(),
        PlanUpdateTool(),
        AgentDoneTool(),
    ]
    skip = set(disabled or [])
    return [t for t in tools if t.name not in skip]


__all__ = [
    "AgentDoneTool",
    "CompleteTaskTool",
    "CreateProjectTool",
    "CreateTaskTool",
    "GetProjectsTool",
    "GetTasksTool",
    "PlanCreateTool",
    "PlanUpdateTool",
    "ScrapeUrlTool",
    "SerperClient",
    "TodoistClient",
    "WebSearchTool",
    "WriteFileTool",
    "default_tools",
]
