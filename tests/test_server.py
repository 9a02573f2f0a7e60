"""Tests for exposing registry tools over MCP."""

from __future__ import annotations

import pytest
from mcp.shared.memory import create_connected_server_and_client_session

from conduit.external.server import build_server
from conduit.tools.registry import ToolRegistry
from tests.mock_tools import EchoTool, FailingTool, WeatherTool


@pytest.fixture
def registry():
    reg = ToolRegistry()
    reg.register_all([EchoTool(), WeatherTool(), FailingTool()])
    return reg


async def test_lists_tools_with_external_schema(registry):
    async with create_connected_server_and_client_session(build_server(registry)) as client:
        listing = await client.list_tools()

    tools = {t.name: t for t in listing.tools}
    assert set(tools) == {"echo", "get_weather", "explode"}
    weather = tools["get_weather"].inputSchema
    assert weather["required"] == ["city"]
    assert weather["properties"]["units"]["default"] == "celsius"


async def test_call_returns_text(registry):
    async with create_connected_server_and_client_session(build_server(registry)) as client:
        result = await client.call_tool("get_weather", {"city": "Lima"})

    assert result.isError is False
    assert [c.text for c in result.content] == ["Lima: 18 degrees celsius, sunny"]


async def test_tool_failure_reported_as_text(registry):
    async with create_connected_server_and_client_session(build_server(registry)) as client:
        result = await client.call_tool("explode", {})

    assert result.content[0].text == "Error: boom"


async def test_unknown_tool(registry):
    async with create_connected_server_and_client_session(build_server(registry)) as client:
        result = await client.call_tool("missing", {})

    assert result.content[0].text == "Error: Unknown tool: missing"
