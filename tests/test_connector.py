"""Tests for the external tool connector."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from mcp.shared.memory import create_connected_server_and_client_session

from conduit.config import MCPServerConfig
from conduit.external.connector import (
    ExternalTool,
    ExternalToolConnector,
    ExternalToolServerConnection,
    render_content,
)
from conduit.external.server import build_server
from conduit.tools.base import ToolContext
from conduit.tools.registry import ToolRegistry
from tests.mock_tools import EchoTool, WeatherTool


def _text(text: str):
    return SimpleNamespace(type="text", text=text)


def _tool(name: str, description: str = "", schema: dict | None = None):
    return SimpleNamespace(name=name, description=description, inputSchema=schema)


class FakeSession:
    """Stands in for an initialized MCP ClientSession."""

    def __init__(self, tools, results=None, call_error=None, close_error=None):
        self._tools = tools
        self._results = results or {}
        self._call_error = call_error
        self.close_error = close_error
        self.calls: list[tuple[str, dict]] = []
        self.closed = False

    async def list_tools(self):
        return SimpleNamespace(tools=self._tools)

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        if self._call_error:
            raise self._call_error
        return self._results.get(name, SimpleNamespace(content=[], isError=False))


class FakeServers:
    """A session factory backed by a dict of ``FakeSession`` objects.

    A value that is an exception is raised on connect instead.
    """

    def __init__(self, sessions: dict):
        self.sessions = sessions
        self.opened: list[str] = []

    @asynccontextmanager
    async def __call__(self, name, config):
        entry = self.sessions[name]
        if isinstance(entry, BaseException):
            raise entry
        self.opened.append(name)
        try:
            yield entry
        finally:
            entry.closed = True
            if entry.close_error:
                raise entry.close_error


def _config() -> MCPServerConfig:
    return MCPServerConfig(command="unused")


@pytest.fixture
def files_session():
    return FakeSession(
        [
            _tool(
                "read_file",
                "Read a file",
                {
                    "type": "object",
                    "properties": {
                        "path": {"type": "string"},
                        "lines": {"type": "integer", "default": 100},
                        "filters": {"type": "array", "items": {"type": "string"}},
                    },
                    "required": ["path"],
                },
            ),
            _tool("list_dir", None, None),
        ],
        results={
            "read_file": SimpleNamespace(content=[_text("hello"), _text("world")], isError=False),
        },
    )


class TestRenderContent:
    def test_text_blocks_joined(self):
        assert render_content([_text("a"), _text("b")]) == "a\nb"

    def test_non_text_blocks_named(self):
        image = SimpleNamespace(type="image", data="...", mimeType="image/png")
        assert render_content([_text("see"), image]) == "see\n[image]"

    def test_empty_content(self):
        assert render_content([]) == "Tool executed successfully"
        assert render_content(None) == "Tool executed successfully"


class TestConnector:
    async def test_tools_registered_under_bare_names(self, files_session):
        reg = ToolRegistry()
        connector = ExternalToolConnector(reg, FakeServers({"files": files_session}))
        await connector.initialize({"files": _config()})

        tool = reg.get("read_file")
        assert isinstance(tool, ExternalTool)
        assert tool.source == "files"
        assert tool.description == "Read a file"
        assert tool.parameters["properties"]["lines"] == {"type": "integer", "default": 100}
        assert tool.parameters["properties"]["filters"] == {}
        assert reg.get("list_dir").description == ""
        assert connector.connections["files"].tool_names == {"read_file", "list_dir"}

    async def test_call_forwards_and_renders(self, files_session):
        reg = ToolRegistry()
        connector = ExternalToolConnector(reg, FakeServers({"files": files_session}))
        await connector.initialize({"files": _config()})

        tool = reg.get("read_file")
        text, is_error = await reg.execute(tool, {"path": "/tmp/x"}, ToolContext())
        assert is_error is False
        assert text == "hello\nworld"
        assert files_session.calls == [("read_file", {"path": "/tmp/x", "lines": 100})]

    async def test_empty_result_content(self, files_session):
        reg = ToolRegistry()
        connector = ExternalToolConnector(reg, FakeServers({"files": files_session}))
        await connector.initialize({"files": _config()})
        text, _ = await reg.execute(reg.get("list_dir"), {}, ToolContext())
        assert text == "Tool executed successfully"

    async def test_server_error_result_is_error(self):
        session = FakeSession(
            [_tool("boom")],
            results={"boom": SimpleNamespace(content=[_text("disk full")], isError=True)},
        )
        reg = ToolRegistry()
        connector = ExternalToolConnector(reg, FakeServers({"s": session}))
        await connector.initialize({"s": _config()})

        text, is_error = await reg.execute(reg.get("boom"), {}, ToolContext())
        assert is_error is True
        assert text == "Error: MCP tool error: disk full"

    async def test_call_exception_is_error(self):
        session = FakeSession([_tool("boom")], call_error=TimeoutError("no reply"))
        reg = ToolRegistry()
        connector = ExternalToolConnector(reg, FakeServers({"s": session}))
        await connector.initialize({"s": _config()})

        text, is_error = await reg.execute(reg.get("boom"), {}, ToolContext())
        assert is_error is True
        assert "MCP tool error: no reply" in text

    async def test_failing_server_does_not_block_others(self, files_session, caplog):
        reg = ToolRegistry()
        servers = FakeServers({
            "broken": FileNotFoundError("no such command: nope"),
            "files": files_session,
        })
        connector = ExternalToolConnector(reg, servers)
        with caplog.at_level(logging.ERROR, logger="conduit.external.connector"):
            await connector.initialize({"broken": _config(), "files": _config()})

        assert "read_file" in reg
        assert list(connector.connections) == ["files"]
        assert "broken" in caplog.text
        assert "no such command" in caplog.text

    async def test_background_start(self, files_session):
        reg = ToolRegistry()
        connector = ExternalToolConnector(reg, FakeServers({"files": files_session}))
        task = connector.start_background({"files": _config()})
        await connector.wait_ready()
        assert task.done()
        assert "read_file" in reg

    async def test_disconnect_unregisters_and_closes(self, files_session):
        reg = ToolRegistry()
        reg.register(EchoTool())
        connector = ExternalToolConnector(reg, FakeServers({"files": files_session}))
        await connector.initialize({"files": _config()})

        await connector.disconnect()

        assert files_session.closed is True
        assert "read_file" not in reg
        assert "list_dir" not in reg
        assert "echo" in reg
        assert connector.connections == {}

        await connector.disconnect()

    async def test_disconnect_survives_close_failure(self, files_session, caplog):
        reg = ToolRegistry()
        flaky = FakeSession([_tool("ping")], close_error=OSError("pipe already closed"))
        connector = ExternalToolConnector(reg, FakeServers({"flaky": flaky, "files": files_session}))
        await connector.initialize({"flaky": _config(), "files": _config()})
        assert "ping" in reg

        with caplog.at_level(logging.WARNING, logger="conduit.external.connector"):
            await connector.disconnect()

        assert flaky.closed is True
        assert files_session.closed is True
        assert "ping" not in reg
        assert "read_file" not in reg
        assert connector.connections == {}
        assert "Error disconnecting from MCP server flaky" in caplog.text
        assert "pipe already closed" in caplog.text

    async def test_disconnect_keeps_overriding_tool(self, files_session):
        reg = ToolRegistry()
        connector = ExternalToolConnector(reg, FakeServers({"files": files_session}))
        await connector.initialize({"files": _config()})
        other = ExternalToolServerConnection("other", _config())
        replacement = ExternalTool(other, "read_file", "Shadowing tool", {})
        reg.register(replacement)

        await connector.disconnect()
        assert reg.get("read_file") is replacement


class TestConnection:
    async def test_close_is_idempotent(self, files_session):
        conn = ExternalToolServerConnection("files", _config(), FakeServers({"files": files_session}))
        await conn.start()
        assert conn.connected
        await conn.close()
        await conn.close()
        assert not conn.connected
        assert files_session.closed

    async def test_call_after_close_fails(self, files_session):
        conn = ExternalToolServerConnection("files", _config(), FakeServers({"files": files_session}))
        await conn.start()
        await conn.close()
        with pytest.raises(RuntimeError, match="not connected"):
            await conn.call_tool("read_file", {})

    async def test_startup_failure_raised(self):
        conn = ExternalToolServerConnection(
            "bad", _config(), FakeServers({"bad": ConnectionRefusedError("refused")})
        )
        with pytest.raises(ConnectionRefusedError):
            await conn.start()
        assert not conn.connected


class TestInMemoryServer:
    async def test_round_trip_through_mcp(self):
        remote = ToolRegistry()
        weather = WeatherTool()
        remote.register(weather)

        def factory(name, config):
            return create_connected_server_and_client_session(build_server(remote))

        local = ToolRegistry()
        connector = ExternalToolConnector(local, factory)
        await connector.initialize({"weather-server": _config()})
        try:
            tool = local.get("get_weather")
            assert tool is not None
            assert tool.source == "weather-server"
            assert tool.parameters["required"] == ["city"]

            text, is_error = await local.execute(tool, {"city": "Oslo"}, ToolContext())
            assert is_error is False
            assert text == "Oslo: 18 degrees celsius, sunny"
        finally:
            await connector.disconnect()
        assert "get_weather" not in local
