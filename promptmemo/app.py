# promptmemo/app.py
"""
Interactive shell for PromptMemo.

Wires configuration, logging, storage and the local/cloud prompt services
together and dispatches ``/command`` lines through the slash command router.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
from pathlib import Path
try:
    import readline
except ImportError:  # pragma: no cover
    readline = None
from typing import Any, Dict, Optional

from rich.console import Console

from .commands import COMMANDS
from .configuration import (
    ConfigurationBundle,
    Diagnostic,
    GitlabSettings,
    StorageSettings,
    load_runtime_configuration,
    resolve_home_dir,
)
from .local import LocalService
from .logging_utils import setup_logging
from .slash_commands import CommandRouter
from .storage import StateStore, TokenStore
from .sync import CloudService, GitlabTransport
from .transfer import LocalTransferService

logger = logging.getLogger("promptmemo")


def _log_path_within_home(log_path: Path, home_dir: Path) -> bool:
    try:
        log_path.relative_to(home_dir)
        return True
    except ValueError:
        return False


def build_services(config: ConfigurationBundle) -> Dict[str, Any]:
    """Create the stores and services shared by every command."""

    storage = StorageSettings.from_bundle(config)
    gitlab = GitlabSettings.from_config(config.merged)

    state_store = StateStore(storage.state_path)
    token_store = TokenStore(storage.token_path)
    transport = GitlabTransport(gitlab, token_store)

    local_service = LocalService(state_store, storage.default_category)
    cloud_service = CloudService(
        state_store,
        token_store,
        transport,
        gitlab,
        hostname=socket.gethostname(),
    )
    transfer_service = LocalTransferService(local_service)
    return {
        "local_service": local_service,
        "cloud_service": cloud_service,
        "transfer_service": transfer_service,
    }


async def initialize_services(services: Dict[str, Any]) -> None:
    await services["local_service"].initialize()
    await services["cloud_service"].initialize()


def build_router(
    config: ConfigurationBundle,
    services: Optional[Dict[str, Any]] = None,
) -> CommandRouter:
    """Seed the router with the built-in commands."""

    router = CommandRouter(config, metadata=dict(services or {}))
    for command in COMMANDS:
        router.register(command)
    return router


def emit_configuration_report(config: ConfigurationBundle) -> None:
    """Print diagnostics so users can correct issues quickly."""

    if not config.diagnostics:
        print(f"[config] Loaded {len(config.files_loaded)} file(s).")
        return

    print("[config] Diagnostics:")
    for diag in config.diagnostics:
        prefix = diag.source or config.home_dir
        print(f"  - ({diag.level.upper()}) {diag.message} [{prefix}]")


def configure_autocomplete(router: CommandRouter) -> None:
    """Enable readline tab completion for slash commands."""

    if readline is None:
        return

    commands = list(router.command_names)

    def completer(text: str, state: int):
        buffer = readline.get_line_buffer()
        if not buffer.startswith("/"):
            return None
        fragment = text[1:] if text.startswith("/") else text
        matches = [f"/{cmd}" for cmd in commands if cmd.startswith(fragment)]
        if state < len(matches):
            return matches[state]
        return None

    readline.set_completer(completer)
    readline.parse_and_bind("tab: complete")
    readline.set_completer_delims(" \t")


def execute_cli_command(command_line: str, router: CommandRouter) -> str:
    """Run one slash command line (without the leading ``/``)."""

    stripped = command_line.strip()
    if not stripped:
        return ""
    parts = stripped.split()
    command, args = parts[0], parts[1:]
    result = router.handle(command, args)
    logger.info("Executed CLI command: %s", command)
    return result


def main() -> None:
    """Entry point for `python -m promptmemo`."""

    console = Console()
    home_dir = resolve_home_dir()
    home_dir.mkdir(parents=True, exist_ok=True)
    config_bundle = load_runtime_configuration(home_dir)

    logging_cfg = (config_bundle.merged.get("logging", {}) or {}) if config_bundle.merged else {}
    env_level = os.environ.get("PROMPTMEMO_LOG_LEVEL")
    log_level_name = (env_level or logging_cfg.get("level") or "WARNING").upper()
    log_path = setup_logging(
        config_bundle.home_dir,
        log_level_name,
        structured=bool(logging_cfg.get("structured", True)),
    )
    config_bundle.log_path = log_path
    if not _log_path_within_home(log_path, config_bundle.home_dir):
        config_bundle.diagnostics.append(
            Diagnostic(
                level="warning",
                message=(
                    "Home log directory is not writable; "
                    f"logging to fallback path '{log_path}'."
                ),
                source=log_path,
            )
        )
    logger.info("Logging initialized at %s", log_path)

    runtime_name = (config_bundle.merged.get("runtime", {}) or {}).get("name", "PromptMemo")
    console.print(f"[bold cyan]{runtime_name}[/bold cyan] ready. Type /help for commands.")
    emit_configuration_report(config_bundle)

    services = build_services(config_bundle)
    asyncio.run(initialize_services(services))
    router = build_router(config_bundle, services)
    configure_autocomplete(router)

    while True:
        try:
            raw_line = input("> ")
        except (EOFError, KeyboardInterrupt):
            print("\n[Exiting PromptMemo]")
            break

        line = raw_line.strip()
        if not line:
            continue
        if line.lower() in {"quit", "exit", "/quit", "/exit"}:
            print("[Goodbye]")
            break
        if not line.startswith("/"):
            print("[promptmemo] Commands start with '/'. Use /help to list them.")
            continue

        print(execute_cli_command(line[1:], router))
