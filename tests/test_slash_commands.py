"""Unit tests for slash command registry."""

from __future__ import annotations

from pathlib import Path

from promptmemo.configuration import ConfigurationBundle
from promptmemo.slash_commands import (
    CommandRouter,
    SlashCommand,
    SlashCommandContext,
    render_help_table,
    render_rich,
)


def test_router_handles_registered_command(tmp_path: Path):
    config = ConfigurationBundle(home_dir=tmp_path, status="ready")
    router = CommandRouter(config)
    captured = {}

    def handler(context: SlashCommandContext, args: list[str]) -> str:
        captured["context"] = context
        return f"echo:{' '.join(args)}"

    router.register(SlashCommand(name="echo", description="Echo args", handler=handler))
    result = router.handle("ECHO", ["hello", "world"])

    assert result == "echo:hello world"
    assert captured["context"].config is config
    assert "echo" in router.command_names


def test_router_reports_unknown_command(tmp_path: Path):
    router = CommandRouter(ConfigurationBundle(home_dir=tmp_path, status="ready"))

    result = router.handle("nope", [])

    assert "Unknown command '/nope'" in result


def test_router_shares_metadata_with_handlers(tmp_path: Path):
    config = ConfigurationBundle(home_dir=tmp_path, status="ready")
    router = CommandRouter(config, metadata={"local_service": "sentinel"})
    router.register(
        SlashCommand(
            name="peek",
            description="Peek",
            handler=lambda context, _: context.metadata["local_service"],
        )
    )

    assert router.handle("peek", []) == "sentinel"


def test_render_help_table_lists_commands(tmp_path: Path):
    config = ConfigurationBundle(home_dir=tmp_path, status="ready")
    router = CommandRouter(config)
    router.register(SlashCommand(name="cloud", description="Sync prompts", handler=lambda *_: ""))
    router.register(SlashCommand(name="help", description="Show help", handler=lambda *_: ""))

    output = render_help_table(router.commands())

    assert "/cloud" in output
    assert "Sync prompts" in output


def test_render_rich_produces_ansi():
    def _render(console):
        console.print("hello", style="bold red")

    ansi = render_rich(_render)

    assert "\x1b[" in ansi  # contains ANSI escape sequence


def test_requires_ready_guard(tmp_path: Path):
    config = ConfigurationBundle(home_dir=tmp_path, status="invalid")
    router = CommandRouter(config)
    router.register(
        SlashCommand(
            name="needs_ready",
            description="Needs ready config",
            handler=lambda *_: "ok",
            requires_ready=True,
        )
    )

    result = router.handle("needs_ready", [])

    assert "requires a ready configuration" in result
