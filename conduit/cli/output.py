"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

import yaml
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from conduit.tools.base import BUILTIN_SOURCE, Tool
from conduit.types import CompactionResult, ContextUsage


def usage_color(remaining_percentage: int) -> str:
    if remaining_percentage <= 10:
        return "red"
    if remaining_percentage <= 30:
        return "yellow"
    return "green"


class OutputFormatter:
    """Rich-based output formatting for the conduit CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_tool_list(self, tools: list[Tool]) -> None:
        if not tools:
            self.console.print("[dim]No tools registered.[/dim]")
            return

        table = Table(title="Registered Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Source", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            style = "green" if t.source == BUILTIN_SOURCE else "magenta"
            table.add_row(t.name, Text(t.source, style=style), t.description)

        self.console.print(table)

    def format_tool_info(self, tool: Tool) -> None:
        self.console.print(Panel(
            f"[bold]{tool.name}[/bold]\n\n"
            f"[dim]Source:[/dim] {tool.source}\n\n"
            f"{tool.description}",
            title=f"Tool: {tool.name}",
        ))
        schema_json = json.dumps(tool.parameters, indent=2)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    def format_tool_call(self, tool: Tool | None, name: str, arguments: dict) -> None:
        preview = tool.format_call_preview(arguments) if tool else None
        if preview:
            self.console.print(Text.assemble("\n", ("⚙ ", "yellow"), preview), highlight=False)
        else:
            args = json.dumps(arguments, default=str)
            self.console.print(f"\n[yellow]⚙ {name}[/yellow] [dim]{args[:200]}[/dim]")

    def format_config(self, config: dict) -> None:
        yaml_str = yaml.safe_dump(config, sort_keys=False)
        self.console.print(Syntax(yaml_str, "yaml", theme="monokai"))

    def format_context_usage(self, info: ContextUsage | None, model: str) -> None:
        if info is None:
            self.console.print(f"  [dim]{model}: no usage reported yet[/dim]")
            return
        color = usage_color(info.remaining_percentage)
        self.console.print(
            f"  [dim]{model}:[/dim] {info.used:,}/{info.total:,} tokens "
            f"[{color}]({info.remaining_percentage}% left)[/{color}]"
        )

    def format_compaction(self, result: CompactionResult) -> None:
        if result.original_count == result.compacted_count and result.tokens_saved == 0:
            self.console.print("  [dim]Nothing to compact.[/dim]")
            return
        self.console.print(
            f"  [green]Compacted[/green] {result.original_count} → "
            f"{result.compacted_count} messages, ~{result.tokens_saved:,} tokens saved"
        )
