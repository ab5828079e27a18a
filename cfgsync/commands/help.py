"""Command for listing available commands."""

from __future__ import annotations

from typing import List

from ..slash_commands import (
    SlashCommand,
    SlashCommandContext,
    render_help_table,
)


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    if args:
        command = context.router.get(args[0].lstrip("/"))
        if command is None:
            return f"[help] Unknown command '{args[0]}'."
        return f"/{command.name}: {command.description}"
    return render_help_table(context.router.commands())


COMMAND = SlashCommand(
    name="help",
    description="List available commands. Usage: /help [command]",
    handler=_handler,
)
