"""Command-line front end for embedctl."""

from __future__ import annotations

from .commands import app, main, run_command
from .console import RichConsole
from .context import CommandContext

__all__ = ["CommandContext", "RichConsole", "app", "main", "run_command"]
