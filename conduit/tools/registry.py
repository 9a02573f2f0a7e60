from __future__ import annotations

import logging

import jsonschema

from conduit.tools.base import BUILTIN_SOURCE, Tool, ToolContext, normalize_schema
from conduit.tools.schema import apply_defaults, to_llm_function_schema

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Name-keyed tool map.  Registering an existing name replaces it."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        existing = self._tools.get(tool.name)
        if existing is not None:
            logger.warning(
                "Tool %r from %s overrides the one from %s",
                tool.name,
                tool.source,
                existing.source,
            )
        self._tools[tool.name] = tool

    def register_all(self, tools: list[Tool]) -> None:
        for tool in tools:
            self.register(tool)

    def unregister(self, name: str) -> Tool | None:
        return self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        t = self.get(name)
        if not t:
            raise KeyError(name)
        return t

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def all(self) -> list[Tool]:
        return sorted(self._tools.values(), key=lambda t: t.name)

    def builtin(self) -> list[Tool]:
        return [t for t in self.all() if t.source == BUILTIN_SOURCE]

    def external(self) -> list[Tool]:
        return [t for t in self.all() if t.source != BUILTIN_SOURCE]

    def to_llm_schema(self) -> list[dict]:
        return [to_llm_function_schema(t) for t in self.all()]

    async def execute(
        self, tool: Tool, params: dict, context: ToolContext
    ) -> tuple[str, bool]:
        """
        Run *tool* and return ``(text, is_error)``.

        Defaults are filled and arguments validated first.  Any exception
        raised by the tool is turned into an ``"Error: ..."`` result.
        """
        args = apply_defaults(tool.parameters, params)
        try:
            jsonschema.validate(instance=args, schema=normalize_schema(tool.parameters))
        except jsonschema.ValidationError as e:
            return f"Error: Invalid arguments for {tool.name}: {e.message}", True

        try:
            result = await tool.execute(args, context)
        except Exception as e:
            logger.warning("Tool %s failed: %s", tool.name, e)
            return f"Error: {e}", True
        return str(result), False
