"""
Todoist task tracking: create, list and complete tasks, list and create projects.

The tools share a ``TodoistClient`` that talks to the Todoist REST API with a
bearer token.  HTTP failures become ``TodoistError`` with a readable message;
the registry reports those as ``"Error: ..."`` tool results.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from conduit.tools.base import Tool, ToolContext

logger = logging.getLogger(__name__)

TODOIST_API = "https://api.todoist.com/rest/v2"


class TodoistError(RuntimeError):
    pass


class TodoistClient:
    def __init__(
        self,
        api_key: str = "",
        api_key_env: str = "TODOIST_API_KEY",
        base_url: str = TODOIST_API,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        payload: dict | None = None,
        not_found: str | None = None,
    ) -> Any:
        """Send one request; returns parsed JSON, or ``None`` for an empty body."""
        if not self._api_key:
            raise TodoistError(
                f"Todoist API key not configured. Set {self._api_key_env}."
            )
        headers = {"Authorization": f"Bearer {self._api_key}"}
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                resp = await client.request(
                    method, path, params=params, json=payload, headers=headers
                )
            except httpx.TimeoutException as e:
                raise TodoistError("Todoist request timed out") from e
            except httpx.HTTPError as e:
                raise TodoistError(f"Todoist request failed: {e}") from e

        if resp.status_code == 401:
            raise TodoistError("Invalid Todoist API key. Please check your configuration.")
        if resp.status_code == 403:
            raise TodoistError("Access denied. Please check your Todoist API permissions.")
        if resp.status_code == 404 and not_found:
            raise TodoistError(not_found)
        if resp.status_code >= 400:
            raise TodoistError(f"Todoist API error: HTTP {resp.status_code}")

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise TodoistError("Todoist returned invalid JSON") from e


def _results(data: Any) -> list[dict]:
    # REST v2 returns a bare list; the unified API wraps it in {"results": [...]}
    if isinstance(data, dict):
        data = data.get("results")
    return [item for item in data or [] if isinstance(item, dict)]


def _due(task: dict) -> str | None:
    due = task.get("due")
    return due.get("string") if isinstance(due, dict) else None


class _TodoistTool(Tool):
    def __init__(self, client: TodoistClient) -> None:
        self._client = client


class CreateTaskTool(_TodoistTool):
    @property
    def name(self) -> str:
        return "todoist_create_task"

    @property
    def description(self) -> str:
        return (
            "Create a new task in Todoist. Always pass project_id when the task "
            "belongs to a specific project."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "content": {
                    "type": "string",
                    "minLength": 1,
                    "description": "The task content/title",
                },
                "description": {
                    "type": "string",
                    "description": "Additional details for the task",
                },
                "project_id": {
                    "type": "string",
                    "description": (
                        "Project ID to create the task in, as returned by "
                        "todoist_get_projects or todoist_create_project"
                    ),
                },
                "due_string": {
                    "type": "string",
                    "maxLength": 150,
                    "description": (
                        'Due date in natural language, e.g. "tomorrow", '
                        '"next Monday", "every Sunday" or "no date"'
                    ),
                },
                "priority": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 4,
                    "description": "Priority level (1-4, where 4 is urgent)",
                },
                "labels": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Label names to assign to the task",
                },
            },
            "required": ["content"],
        }

    def format_call_preview(self, params: dict) -> str | None:
        return f"Creating task: {params.get('content', '')}"

    async def execute(self, params: dict, context: ToolContext) -> str:
        payload = {
            key: params[key]
            for key in ("content", "description", "project_id", "due_string", "priority", "labels")
            if params.get(key) is not None
        }
        task = await self._client.request("POST", "/tasks", payload=payload) or {}
        logger.info("Created Todoist task %s", task.get("id"))
        return (
            "✅ Task created successfully:\n"
            f"**{task.get('content', params['content'])}**\n"
            f"- ID: {task.get('id')}\n"
            f"- Project: {task.get('project_id')}\n"
            f"- Due: {_due(task) or 'No due date'}\n"
            f"- Priority: {task.get('priority')}\n"
            f"- URL: {task.get('url')}"
        )


class GetTasksTool(_TodoistTool):
    @property
    def name(self) -> str:
        return "todoist_get_tasks"

    @property
    def description(self) -> str:
        return "Get tasks from Todoist with optional filtering"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "project_id": {"type": "string", "description": "Filter tasks by project ID"},
                "label": {"type": "string", "description": "Filter tasks by label name"},
                "filter": {
                    "type": "string",
                    "description": 'Todoist filter query, e.g. "today", "overdue", "p1"',
                },
                "lang": {
                    "type": "string",
                    "description": "Language of the filter query",
                },
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 100,
                    "default": 20,
                    "description": "Maximum number of tasks to return (1-100)",
                },
            },
        }

    def format_call_preview(self, params: dict) -> str | None:
        return f"Fetching tasks: {params.get('filter') or 'all'}"

    async def execute(self, params: dict, context: ToolContext) -> str:
        query = {
            key: params[key]
            for key in ("project_id", "label", "filter", "lang")
            if params.get(key) is not None
        }
        tasks = _results(await self._client.request("GET", "/tasks", params=query))
        if not tasks:
            return "No tasks found matching the criteria."

        shown = tasks[: params.get("limit") or 20]
        lines = [f"📋 Found {len(tasks)} task(s) (showing {len(shown)}):"]
        for i, task in enumerate(shown, start=1):
            lines.append(f"\n{i}. **{task.get('content', '')}**")
            if task.get("description"):
                lines.append(f"   Description: {task['description']}")
            lines.append(f"   ID: {task.get('id')}")
            lines.append(f"   Project: {task.get('project_id')}")
            lines.append(f"   Priority: {task.get('priority')}")
            if _due(task):
                lines.append(f"   Due: {_due(task)}")
            if task.get("labels"):
                lines.append(f"   Labels: {', '.join(task['labels'])}")
            lines.append(f"   URL: {task.get('url')}")
        return "\n".join(lines)


class CompleteTaskTool(_TodoistTool):
    @property
    def name(self) -> str:
        return "todoist_complete_task"

    @property
    def description(self) -> str:
        return "Complete (close) a task in Todoist by its ID"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "task_id": {
                    "type": "string",
                    "minLength": 1,
                    "description": "The ID of the task to complete",
                },
            },
            "required": ["task_id"],
        }

    def format_call_preview(self, params: dict) -> str | None:
        return f"Completing task: {params.get('task_id', '')}"

    async def execute(self, params: dict, context: ToolContext) -> str:
        task_id = params["task_id"]
        await self._client.request(
            "POST",
            f"/tasks/{task_id}/close",
            not_found=f"Task not found. Please check the task ID: {task_id}",
        )
        return f"✅ Task completed successfully! Task ID: {task_id}"


class GetProjectsTool(_TodoistTool):
    @property
    def name(self) -> str:
        return "todoist_get_projects"

    @property
    def description(self) -> str:
        return (
            "List all Todoist projects with their IDs. Use it to find the "
            "project_id before creating a task in an existing project."
        )

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, params: dict, context: ToolContext) -> str:
        projects = _results(await self._client.request("GET", "/projects"))
        if not projects:
            return "No projects found in your Todoist account."

        lines = [f"📂 Found {len(projects)} project(s):"]
        for i, project in enumerate(projects, start=1):
            lines.append(f"\n{i}. **{project.get('name', '')}**")
            lines.append(f"   Project ID: {project.get('id')}")
            if project.get("color"):
                lines.append(f"   Color: {project['color']}")
            lines.append(f"   URL: {project.get('url')}")
        return "\n".join(lines)


class CreateProjectTool(_TodoistTool):
    @property
    def name(self) -> str:
        return "todoist_create_project"

    @property
    def description(self) -> str:
        return (
            "Create a new project in Todoist. Returns the project ID to use "
            "when creating tasks for this project."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "minLength": 1,
                    "description": "The project name",
                },
            },
            "required": ["name"],
        }

    def format_call_preview(self, params: dict) -> str | None:
        return f"Creating project: {params.get('name', '')}"

    async def execute(self, params: dict, context: ToolContext) -> str:
        project = await self._client.request(
            "POST", "/projects", payload={"name": params["name"]}
        ) or {}
        project_id = project.get("id")
        return (
            "📂 Project created successfully:\n"
            f"**{project.get('name', params['name'])}**\n"
            f"- Project ID: {project_id}\n\n"
            f'Use Project ID "{project_id}" in the project_id field when '
            "creating tasks for this project."
        )
