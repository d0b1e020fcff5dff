"""Slash command registry."""

from __future__ import annotations

from .cloud import COMMAND as CLOUD_COMMAND
from .help import COMMAND as HELP_COMMAND
from .prompts import COMMAND as PROMPTS_COMMAND

COMMANDS = [
    HELP_COMMAND,
    CLOUD_COMMAND,
    PROMPTS_COMMAND,
]

__all__ = ["COMMANDS"]
