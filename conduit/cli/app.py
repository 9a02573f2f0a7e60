"""
Main CLI application for conduit.

Usage:
    conduit chat [--agent] [--profile NAME] [--model NAME] [--verbose]
    conduit tools list|info
    conduit config show|init
    conduit serve
    conduit version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from conduit.config import DEFAULT_CONFIG_PATH, ConduitConfig, load_config, sample_config

app = typer.Typer(name="conduit", help="conduit - LLM chat and agent runner with tools")
tools_app = typer.Typer(help="Tool management")
config_app = typer.Typer(help="Configuration management")

app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """Find config file in standard locations."""
    candidates = [
        Path.cwd() / "conduit.yaml",
        Path.cwd() / "conduit.yml",
        Path.home() / ".config" / "conduit" / "config.yaml",
        Path(DEFAULT_CONFIG_PATH).expanduser(),
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _load(profile: str | None = None, model: str | None = None) -> ConduitConfig:
    overrides = {"llm.model": model} if model else None
    try:
        return load_config(_get_config_path(), profile=profile, cli_overrides=overrides)
    except (ValueError, OSError) as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)


def _build_registry(cfg: ConduitConfig):
    from conduit.tools.builtin import default_tools
    from conduit.tools.registry import ToolRegistry

    registry = ToolRegistry()
    registry.register_all(
        default_tools(
            serper_api_key=cfg.serper_api_key(),
            serper_api_key_env=cfg.tools.serper_api_key_env,
            todoist_api_key=cfg.todoist_api_key(),
            todoist_api_key_env=cfg.tools.todoist_api_key_env,
            disabled=cfg.tools.disabled,
        )
    )
    return registry


def _setup_stack(cfg: ConduitConfig, agent: bool):
    """Wire up the full stack for chat."""
    from conduit.cli.chat import ChatHandler
    from conduit.external.connector import ExternalToolConnector
    from conduit.llm.client import CompletionClient
    from conduit.llm.providers.openai_compat import OpenAICompatProvider
    from conduit.session.session import Conversation
    from conduit.tools.base import ToolContext

    if not cfg.api_key():
        console.print(
            f"[yellow]Warning:[/yellow] {cfg.llm.api_key_env} is not set; "
            "requests will be sent without authentication."
        )

    provider = OpenAICompatProvider(
        url=cfg.llm.api_base,
        model=cfg.llm.model,
        api_key=cfg.api_key(),
        timeout=float(cfg.llm.timeout_seconds),
        max_retries=cfg.llm.max_retries,
        max_tokens=cfg.llm.max_tokens,
        temperature=cfg.llm.temperature,
    )
    registry = _build_registry(cfg)
    client = CompletionClient(
        provider,
        registry,
        ToolContext(config=cfg),
        completion_tool=cfg.agent.completion_tool,
    )
    conversation = Conversation(
        client,
        mode="agent" if agent else "chat",
        max_iterations=cfg.agent.max_iterations,
        completion_tool=cfg.agent.completion_tool,
        auto_compact_threshold=cfg.compaction.auto_threshold,
        keep_recent=cfg.compaction.keep_recent,
        context_window=cfg.llm.context_window or None,
    )
    connector = ExternalToolConnector(registry)
    handler = ChatHandler(conversation, registry, console=console)
    return handler, connector


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    agent: bool = typer.Option(False, "--agent", help="Start in agent mode"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    model: Optional[str] = typer.Option(None, help="Override the model"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Start an interactive chat session."""
    _setup_logging(verbose)
    cfg = _load(profile, model)

    async def _run():
        handler, connector = _setup_stack(cfg, agent)
        if cfg.mcp_servers:
            connector.start_background(cfg.mcp_servers)
        try:
            await handler.run_loop()
        finally:
            await connector.disconnect()

    asyncio.run(_run())


@tools_app.command("list")
def tools_list(
    external: bool = typer.Option(False, "--external", help="Also connect to configured MCP servers"),
):
    """List registered tools."""
    from conduit.cli.output import OutputFormatter
    from conduit.external.connector import ExternalToolConnector

    _setup_logging(False)
    cfg = _load()
    registry = _build_registry(cfg)

    async def _run():
        connector = ExternalToolConnector(registry)
        await connector.initialize(cfg.mcp_servers)
        try:
            OutputFormatter(console).format_tool_list(registry.all())
        finally:
            await connector.disconnect()

    if external and cfg.mcp_servers:
        asyncio.run(_run())
    else:
        OutputFormatter(console).format_tool_list(registry.all())


@tools_app.command("info")
def tools_info(tool_name: str = typer.Argument(..., help="Tool name")):
    """Show tool details and schema."""
    from conduit.cli.output import OutputFormatter

    registry = _build_registry(_load())
    tool = registry.get(tool_name)
    if not tool:
        console.print(f"[red]Tool not found:[/red] {tool_name}")
        raise typer.Exit(1)

    OutputFormatter(console).format_tool_info(tool)


@config_app.command("show")
def config_show(profile: Optional[str] = typer.Option(None, help="Config profile name")):
    """Show effective config."""
    from conduit.cli.output import OutputFormatter

    config_path = _get_config_path()
    cfg = _load(profile)
    if config_path:
        console.print(f"[dim]Loaded from: {config_path}[/dim]")
    else:
        console.print("[dim]No config file found, using defaults.[/dim]")
    if cfg.overrides:
        keys = ", ".join(sorted(cfg.overrides))
        console.print(f"[dim]Overridden by environment or flags: {keys}[/dim]")
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("init")
def config_init(
    path: Path = typer.Option(Path(DEFAULT_CONFIG_PATH), help="Where to write the file"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Write a sample config file."""
    path = path.expanduser()
    if path.exists() and not force:
        console.print(f"[yellow]{path} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(sample_config(), encoding="utf-8")
    console.print(f"Wrote {path}")


@app.command()
def serve(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    """Serve the built-in tools to MCP clients over stdio."""
    from conduit.external.server import serve_stdio
    from conduit.tools.base import ToolContext

    _setup_logging(verbose)
    cfg = _load()
    registry = _build_registry(cfg)
    asyncio.run(serve_stdio(registry, ToolContext(config=cfg)))


@app.command()
def version():
    """Show version."""
    console.print("conduit v0.1.0")


def main():
    app()


if __name__ == "__main__":
    main()
