"""Expose registry tools to other MCP clients over stdio."""

from __future__ import annotations

import logging

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from conduit.tools.base import ToolContext
from conduit.tools.registry import ToolRegistry
from conduit.tools.schema import to_external_protocol_schema

logger = logging.getLogger(__name__)


def build_server(
    registry: ToolRegistry,
    context: ToolContext | None = None,
    name: str = "conduit",
) -> Server:
    context = context or ToolContext()
    server = Server(name)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [
            types.Tool(
                name=t.name,
                description=t.description,
                inputSchema=to_external_protocol_schema(t),
            )
            for t in registry.all()
        ]

    @server.call_tool()
    async def call_tool(tool_name: str, arguments: dict | None) -> list[types.TextContent]:
        tool = registry.get(tool_name)
        if tool is None:
            text = f"Error: Unknown tool: {tool_name}"
        else:
            text, _ = await registry.execute(tool, arguments or {}, context)
        return [types.TextContent(type="text", text=text)]

    return server


async def serve_stdio(
    registry: ToolRegistry,
    context: ToolContext | None = None,
    name: str = "conduit",
) -> None:
    server = build_server(registry, context, name)
    logger.info("Serving %d tools over stdio", len(registry))
    async with stdio_server() as (read, write):
        await server.run(read, write, server.create_initialization_options())
