"""Slash command for local prompts and categories."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List

from rich.console import Console
from rich.table import Table

from ..slash_commands import (
    SlashCommand,
    SlashCommandContext,
    render_rich,
)


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    local_service = context.metadata.get("local_service")
    if local_service is None:
        return "[prompts] Local prompts are not available."

    if not args or args[0].lower() == "list":
        return _show_prompts(local_service)

    subcommand = args[0].lower()
    rest = args[1:]

    if subcommand == "add":
        if len(rest) < 2:
            return "[prompts] Usage: /prompts add <category> <text>"
        result = asyncio.run(local_service.add_prompt(" ".join(rest[1:]), rest[0]))
        if not result.success:
            return f"[prompts] {result.error}"
        return f"[prompts] Added '{result.prompt.label}' to {result.prompt.category_id}."
    if subcommand == "remove":
        if not rest:
            return "[prompts] Usage: /prompts remove <id>"
        removed = asyncio.run(local_service.remove_prompt(rest[0]))
        return "[prompts] Removed." if removed else f"[prompts] No prompt with id '{rest[0]}'."
    if subcommand == "categories":
        return _show_categories(local_service)
    if subcommand == "category":
        return _manage_category(local_service, rest)
    if subcommand == "export":
        return _export(context, rest)
    if subcommand == "import":
        return _import(context, rest)
    return f"[prompts] Unknown subcommand '{subcommand}'."


def _show_prompts(local_service) -> str:
    prompts = local_service.get_prompts()
    if not prompts:
        return "[prompts] No local prompts yet. Add one with /prompts add <category> <text>."

    def _render(console: Console) -> None:
        table = Table(title=f"Local Prompts ({len(prompts)})", show_header=True)
        table.add_column("ID", style="dim")
        table.add_column("Category", style="cyan")
        table.add_column("Name", style="green")
        for prompt in prompts:
            table.add_row(prompt.id, prompt.category_id, prompt.name)
        console.print(table)

    return render_rich(_render)


def _show_categories(local_service) -> str:
    prompts = local_service.get_prompts()

    def _render(console: Console) -> None:
        table = Table(title="Categories", show_header=True)
        table.add_column("Name", style="cyan")
        table.add_column("Prompts", justify="right")
        for category in local_service.get_categories():
            count = sum(1 for prompt in prompts if prompt.category_id == category.id)
            table.add_row(category.name, str(count))
        console.print(table)

    return render_rich(_render)


def _manage_category(local_service, args: List[str]) -> str:
    usage = "[prompts] Usage: /prompts category add <name> | rename <id> <name> | delete <id>"
    if len(args) < 2:
        return usage
    action = args[0].lower()
    if action == "add":
        added = asyncio.run(local_service.add_category(" ".join(args[1:])))
        return "[prompts] Category added." if added else "[prompts] Category already exists or is blank."
    if action == "rename" and len(args) >= 3:
        renamed = asyncio.run(local_service.rename_category(args[1], " ".join(args[2:])))
        return "[prompts] Category renamed." if renamed else "[prompts] Category could not be renamed."
    if action == "delete":
        result = asyncio.run(local_service.delete_category(args[1]))
        if not result.success:
            return f"[prompts] {result.error}"
        return f"[prompts] Category deleted; {result.count} prompts moved to the default category."
    return usage


def _export(context: SlashCommandContext, args: List[str]) -> str:
    transfer = context.metadata.get("transfer_service")
    if transfer is None or not args:
        return "[prompts] Usage: /prompts export <path> [category ...]"
    output_path = _resolve_path(context, args[0])
    if args[1:]:
        content = transfer.export_selected_categories(args[1:])
    else:
        content = transfer.export_data()
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")
    except OSError as e:
        return f"[prompts] Failed to write file: {e}"
    return f"[prompts] Exported to: {output_path}"


def _import(context: SlashCommandContext, args: List[str]) -> str:
    transfer = context.metadata.get("transfer_service")
    if transfer is None or not args:
        return "[prompts] Usage: /prompts import <path> [category ...]"
    input_path = _resolve_path(context, args[0])
    try:
        text = input_path.read_text(encoding="utf-8")
    except OSError as e:
        return f"[prompts] Failed to read file: {e}"
    if args[1:]:
        result = asyncio.run(transfer.import_selected_data(text, args[1:]))
    else:
        result = asyncio.run(transfer.import_data(text))
    if not result.success:
        return f"[prompts] Import failed: {result.error}"
    return (
        f"[prompts] Imported {result.imported_prompts} prompts "
        f"({result.duplicate_prompts} duplicates skipped) and "
        f"{result.imported_categories} categories."
    )


def _resolve_path(context: SlashCommandContext, raw: str) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = context.config.home_dir / path
    return path


USAGE = """\
  /prompts [list]                       List local prompts
  /prompts add <category> <text>        Add a prompt
  /prompts remove <id>                  Remove a prompt
  /prompts categories                   List categories with prompt counts
  /prompts category add <name>          Create a category
  /prompts category rename <id> <name>  Rename a category
  /prompts category delete <id>         Delete a category, moving its prompts to the default
  /prompts export <path> [cat ...]      Write prompts as a shared document
  /prompts import <path> [cat ...]      Read prompts from a shared document"""


COMMAND = SlashCommand(
    name="prompts",
    description="Manage local prompts. Usage: /prompts [list|add|remove|categories|category|export|import]",
    handler=_handler,
    usage=USAGE,
)
