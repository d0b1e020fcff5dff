"""Slash command for the shared GitLab prompt document."""

from __future__ import annotations

import asyncio
import shlex
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from ..slash_commands import (
    SlashCommand,
    SlashCommandContext,
    render_rich,
)
from ..sync import CloudResult, CloudService


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    """Manage cloud prompts."""

    service = context.metadata.get("cloud_service")
    if service is None:
        return "[cloud] Cloud service is not available."

    if not args:
        return _show_status(context, service)

    subcommand = args[0].lower()
    rest = args[1:]

    if subcommand == "status":
        return _show_status(context, service)
    elif subcommand == "list":
        return _show_prompts(service)
    elif subcommand == "categories":
        return _show_remote_categories(service)
    elif subcommand in {"sync", "remove", "push"}:
        categories = _parse_categories(rest)
        if categories is None:
            return "[cloud] Unbalanced quotes in category names."
        if subcommand == "sync":
            return _run_sync(service, categories)
        if subcommand == "remove":
            return _remove_category(service, categories)
        return _run_push(context, service, categories)
    elif subcommand == "token":
        return _manage_token(service, rest)
    elif subcommand == "help":
        return _show_help()
    else:
        return f"[cloud] Unknown subcommand '{subcommand}'. Use /cloud help for usage."


def _parse_categories(args: List[str]) -> Optional[List[str]]:
    """Split arguments into category names; quoted names may contain spaces."""
    try:
        return shlex.split(" ".join(args))
    except ValueError:
        return None


def _show_status(context: SlashCommandContext, service: CloudService) -> str:
    settings = service.settings

    def _render(console: Console) -> None:
        table = Table(title="Cloud Prompts", show_header=False)
        table.add_column("Property", style="bold")
        table.add_column("Value")

        table.add_row("API", settings.domain)
        table.add_row("Project", settings.project_id or "(not configured)")
        table.add_row("File", settings.file_path)
        table.add_row("Base Branch", settings.branch)
        table.add_row("Target Branch", settings.target_branch or settings.branch)
        table.add_row("Token", "set" if service.has_token() else "(not set)")
        table.add_row("Cached Prompts", str(len(service.get_cloud_prompts())))
        table.add_row("Cached Categories", ", ".join(service.get_cloud_categories()) or "(none)")
        console.print(table)

    return render_rich(_render)


def _show_prompts(service: CloudService) -> str:
    prompts = service.get_cloud_prompts()
    if not prompts:
        return "[cloud] No cloud prompts cached. Run /cloud sync first."

    def _render(console: Console) -> None:
        table = Table(title=f"Cloud Prompts ({len(prompts)})", show_header=True)
        table.add_column("Category", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Content")
        for prompt in sorted(prompts, key=lambda p: (p.category_id, p.name)):
            table.add_row(prompt.category_id, prompt.name, prompt.label)
        console.print(table)

    return render_rich(_render)


def _show_remote_categories(service: CloudService) -> str:
    result = asyncio.run(service.fetch_available_categories())
    if not result.success:
        return _failure(result)
    categories = result.data["categories"]
    if not categories:
        return "[cloud] The remote document has no categories."
    return "[cloud] Remote categories: " + ", ".join(categories)


def _run_sync(service: CloudService, categories: List[str]) -> str:
    if categories:
        result = asyncio.run(service.sync_selected(categories))
    else:
        result = asyncio.run(service.sync_all())
    if not result.success:
        return _failure(result)

    lines = [f"[cloud] Synced {result.data['synced_prompts']} prompts."]
    if categories:
        lines.append(f"  Added: {result.data['added_prompts']}")
        lines.append(f"  Removed (deleted remotely): {result.data['deleted_prompts']}")
    return "\n".join(lines)


def _remove_category(service: CloudService, categories: List[str]) -> str:
    if not categories:
        return "[cloud] Usage: /cloud remove <category> [category ...]"
    lines = []
    for category in dict.fromkeys(categories):
        result = asyncio.run(service.remove_category(category))
        lines.append(
            f"[cloud] Removed category '{category}' ({result.data['removed_prompts']} prompts) from the cache."
        )
    return "\n".join(lines)


def _run_push(context: SlashCommandContext, service: CloudService, args: List[str]) -> str:
    local_service = context.metadata.get("local_service")
    if local_service is None:
        return "[cloud] Local prompts are not available."
    if not args:
        return "[cloud] Usage: /cloud push <category> [category ...] | /cloud push all"

    prompts = local_service.get_prompts()
    if [arg.lower() for arg in args] != ["all"]:
        wanted = set(args)
        prompts = [prompt for prompt in prompts if prompt.category_id in wanted]
    categories = list(dict.fromkeys(prompt.category_id for prompt in prompts))

    result = asyncio.run(service.push(prompts, categories))
    if not result.success:
        return _failure(result)

    return "\n".join(
        [
            f"[cloud] Pushed {result.data['pushed_prompts']} prompts for review.",
            f"  New: {result.data['new_prompts']}, updated: {result.data['updated_prompts']}",
            f"  Merge request: {result.data['merge_request_url']}",
            "  Run /cloud sync after the merge to see the changes as cloud prompts.",
        ]
    )


def _manage_token(service: CloudService, args: List[str]) -> str:
    if not args:
        return "[cloud] Usage: /cloud token set <token> | /cloud token clear"
    action = args[0].lower()
    if action == "set" and len(args) == 2:
        service.set_token(args[1])
        return "[cloud] Token stored."
    if action == "clear":
        service.clear_token()
        return "[cloud] Token cleared."
    return "[cloud] Usage: /cloud token set <token> | /cloud token clear"


def _failure(result: CloudResult) -> str:
    if result.needs_auth:
        return f"[cloud] Authentication required: {result.error}"
    return f"[cloud] Failed: {result.error}"


USAGE = """\
  /cloud                       Show cloud status
  /cloud list                  List cached cloud prompts
  /cloud categories            List categories in the remote document
  /cloud sync                  Replace the cache with the remote document
  /cloud sync <cat> [...]      Pull only the given categories
  /cloud remove <cat> [...]    Drop categories from the cache (remote untouched)
  /cloud push <cat> [...]      Open a merge request with local prompts
  /cloud push all              Push every local prompt
  /cloud token set <token>     Store a GitLab personal access token
  /cloud token clear           Forget the stored token

Configuration (in <home>/config/*.yml):
  gitlab:
    domain: https://gitlab.example.com
    project_id: "1234"
    file_path: prompt.json
    branch: master

Quote category names that contain spaces, e.g. /cloud push "Code Review"."""


def _show_help() -> str:
    """Show cloud command help."""
    return f"[cloud] Usage:\n{USAGE}"


COMMAND = SlashCommand(
    name="cloud",
    description="Sync and push shared prompts. Usage: /cloud [status|list|sync|push|remove|token]",
    handler=_handler,
    usage=USAGE,
)
