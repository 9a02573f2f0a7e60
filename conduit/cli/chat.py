"""Interactive chat session handler."""

from __future__ import annotations

import asyncio
import logging

from rich.console import Console

from conduit.cli.output import OutputFormatter
from conduit.llm.types import StreamCallbacks
from conduit.session.session import Conversation
from conduit.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ChatHandler:
    """
    Manages the interactive chat loop.

    Handles streaming output and inline commands.
    """

    def __init__(
        self,
        conversation: Conversation,
        registry: ToolRegistry,
        console: Console | None = None,
    ) -> None:
        self.conversation = conversation
        self.registry = registry
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self._running = True

    def _callbacks(self) -> StreamCallbacks:
        def on_token(text: str) -> None:
            self.console.print(text, end="", markup=False, highlight=False)

        def on_tool_call(name: str, args: dict) -> None:
            self.formatter.format_tool_call(self.registry.get(name), name, args)

        def on_new_message() -> None:
            self.console.print("\n[dim]assistant>[/dim] ", end="")

        return StreamCallbacks(
            on_token=on_token,
            on_tool_call=on_tool_call,
            on_new_message=on_new_message,
        )

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        parts = command.strip().split(None, 1)
        cmd = parts[0].lower()
        arg = parts[1].strip().lower() if len(parts) > 1 else ""

        if cmd in ("/quit", "/exit"):
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/tools":
            self.formatter.format_tool_list(self.registry.all())
            return True

        if cmd == "/mode":
            if arg:
                try:
                    self.conversation.mode = arg
                except ValueError as e:
                    self.console.print(f"  [red]Error:[/red] {e}")
                    return True
            else:
                self.conversation.toggle_mode()
            self.console.print(f"  Mode: [bold]{self.conversation.mode}[/bold]")
            return True

        if cmd == "/compact":
            result = await self.conversation.compact()
            self.formatter.format_compaction(result)
            return True

        if cmd == "/clear":
            self.conversation.clear()
            self.console.print("  [dim]History cleared.[/dim]")
            return True

        if cmd == "/usage":
            self.formatter.format_context_usage(
                self.conversation.context_usage(), self.conversation.client.model
            )
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /mode [chat|agent] - Switch mode (toggles without argument)\n"
                "  /compact           - Summarize older messages\n"
                "  /usage             - Show context usage\n"
                "  /tools             - List available tools\n"
                "  /clear             - Clear the conversation\n"
                "  /quit              - Exit the chat\n"
                "  /help              - Show this help\n"
            )
            return True

        return False

    async def handle_input(self, user_input: str) -> None:
        """Run one turn and stream the response."""
        await self.conversation.send(user_input, self._callbacks())
        self.console.print()

        compacted = await self.conversation.maybe_auto_compact()
        if compacted is not None:
            self.formatter.format_compaction(compacted)

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            "[bold]conduit[/bold] - LLM chat with tools\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )

        loop = asyncio.get_running_loop()
        while self._running:
            prompt = "agent> " if self.conversation.mode == "agent" else "you> "
            try:
                user_input = await loop.run_in_executor(
                    None, lambda: input(prompt).strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            self.console.print("[dim]assistant>[/dim] ", end="")
            await self.handle_input(user_input)
