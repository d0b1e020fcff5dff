"""Slash command for listing commands or describing one of them."""

from __future__ import annotations

from typing import List

from ..slash_commands import (
    SlashCommand,
    SlashCommandContext,
    render_help_table,
)


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    if not args:
        return render_help_table(context.router.commands())

    name = args[0].lstrip("/")
    command = context.router.get(name)
    if command is None:
        return f"[help] Unknown command '/{name}'. Use /help to list commands."
    lines = [f"/{command.name}: {command.description}"]
    if command.usage:
        lines.append(command.usage)
    return "\n".join(lines)


COMMAND = SlashCommand(
    name="help",
    description="List available slash commands.",
    handler=_handler,
    usage="  /help              List all commands\n  /help <command>    Describe one command",
)
