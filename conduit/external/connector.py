"""
External tool servers over MCP.

Each configured server is spawned as a child process speaking MCP over
stdio.  Its advertised tools are wrapped as ``ExternalTool`` objects and
registered in the shared ``ToolRegistry`` under their bare names, so they
are indistinguishable from built-in tools to the model.

A connection opens its transport and ``ClientSession`` inside one
long-lived task and closes them in that same task when asked to shut down.
The ``mcp`` SDK's context managers are bound to the task that entered them.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Callable

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from conduit.config import MCPServerConfig
from conduit.tools.base import Tool, ToolContext
from conduit.tools.registry import ToolRegistry
from conduit.tools.schema import from_external_protocol_schema

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str, MCPServerConfig], AsyncContextManager[Any]]


@asynccontextmanager
async def stdio_session(name: str, config: MCPServerConfig) -> AsyncIterator[ClientSession]:
    """Spawn *config*'s command and yield an initialized ``ClientSession``."""
    env = {**os.environ, **config.env} if config.env else None
    params = StdioServerParameters(
        command=config.command,
        args=list(config.args),
        env=env,
        cwd=config.cwd,
    )
    async with stdio_client(params) as (read, write):
        async with ClientSession(read, write) as session:
            await asyncio.wait_for(session.initialize(), timeout=config.init_timeout)
            yield session


def render_content(blocks: list[Any] | None) -> str:
    """Text blocks as-is, anything else as ``[<type>]``, one per line."""
    if not blocks:
        return "Tool executed successfully"
    parts = []
    for block in blocks:
        if getattr(block, "type", None) == "text":
            parts.append(block.text)
        else:
            parts.append(f"[{getattr(block, 'type', 'unknown')}]")
    return "\n".join(parts)


class ExternalToolServerConnection:
    """One live connection to an external tool server."""

    def __init__(
        self,
        name: str,
        config: MCPServerConfig,
        session_factory: SessionFactory = stdio_session,
    ) -> None:
        self.name = name
        self.config = config
        self.tool_names: set[str] = set()
        self.session: Any = None
        self._session_factory = session_factory
        self._task: asyncio.Task | None = None
        self._ready = asyncio.Event()
        self._shutdown = asyncio.Event()
        self._error: BaseException | None = None

    @property
    def connected(self) -> bool:
        return self.session is not None

    async def start(self) -> list[ExternalTool]:
        """Open the session and return the server's tools, wrapped."""
        self._task = asyncio.create_task(self._run(), name=f"mcp-server:{self.name}")
        await self._ready.wait()
        if self.session is None:
            await self._task
            raise self._error or ConnectionError(f"MCP server {self.name} closed during startup")

        try:
            listing = await self.session.list_tools()
        except Exception:
            await self.close()
            raise

        return [
            ExternalTool(
                self,
                t.name,
                t.description or "",
                from_external_protocol_schema(t.inputSchema),
            )
            for t in listing.tools
        ]

    async def call_tool(self, tool_name: str, arguments: dict) -> str:
        if self.session is None:
            raise RuntimeError(f"MCP server {self.name} is not connected")
        try:
            result = await self.session.call_tool(tool_name, arguments)
        except Exception as e:
            raise RuntimeError(f"MCP tool error: {e}") from e

        text = render_content(result.content)
        if getattr(result, "isError", False):
            raise RuntimeError(f"MCP tool error: {text}")
        return text

    async def close(self) -> None:
        """Shut the session down from its owning task.  Safe to call twice."""
        self._shutdown.set()
        if self._task is None:
            return
        await self._task
        if self._error is not None:
            error, self._error = self._error, None
            raise error

    async def _run(self) -> None:
        try:
            async with self._session_factory(self.name, self.config) as session:
                self.session = session
                self._ready.set()
                await self._shutdown.wait()
        except Exception as e:
            self._error = e
        finally:
            self.session = None
            self._ready.set()


class ExternalTool(Tool):
    """Registry-facing proxy for a tool hosted on an external server."""

    def __init__(
        self,
        connection: ExternalToolServerConnection,
        name: str,
        description: str,
        parameters: dict,
    ) -> None:
        self.connection = connection
        self._name = name
        self._description = description
        self._parameters = parameters

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def parameters(self) -> dict:
        return self._parameters

    @property
    def source(self) -> str:
        return self.connection.name

    async def execute(self, params: dict, context: ToolContext) -> str:
        return await self.connection.call_tool(self._name, params)


class ExternalToolConnector:
    """
    Connects to every configured server and keeps the registry in sync.

    Parameters
    ----------
    registry : ToolRegistry
        Registry that receives discovered tools.
    session_factory : callable
        ``(name, config) -> async context manager`` yielding an initialized
        client session.  Defaults to spawning the server over stdio.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        session_factory: SessionFactory = stdio_session,
    ) -> None:
        self.registry = registry
        self.connections: dict[str, ExternalToolServerConnection] = {}
        self._session_factory = session_factory
        self._init_task: asyncio.Task | None = None

    async def initialize(self, servers: dict[str, MCPServerConfig]) -> None:
        """Connect to all *servers* concurrently; failures are logged per server."""
        names = list(servers)
        results = await asyncio.gather(
            *(self._connect(name, servers[name]) for name in names),
            return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error("Failed to connect to MCP server %s: %s", name, result)
            else:
                logger.info("Connected to MCP server %s (%d tools)", name, result)

    def start_background(self, servers: dict[str, MCPServerConfig]) -> asyncio.Task:
        """Run ``initialize`` as a task so the caller can start chatting at once."""
        self._init_task = asyncio.create_task(self.initialize(servers), name="mcp-init")
        return self._init_task

    async def wait_ready(self) -> None:
        if self._init_task is not None:
            await self._init_task

    async def disconnect(self) -> None:
        await self.wait_ready()
        self._init_task = None

        for name, conn in list(self.connections.items()):
            try:
                await conn.close()
            except Exception as e:
                logger.warning("Error disconnecting from MCP server %s: %s", name, e)
            for tool_name in conn.tool_names:
                tool = self.registry.get(tool_name)
                if isinstance(tool, ExternalTool) and tool.connection is conn:
                    self.registry.unregister(tool_name)
        self.connections.clear()

    async def _connect(self, name: str, config: MCPServerConfig) -> int:
        conn = ExternalToolServerConnection(name, config, self._session_factory)
        tools = await conn.start()
        self.connections[name] = conn
        for tool in tools:
            self.registry.register(tool)
            conn.tool_names.add(tool.name)
        return len(tools)
