"""CLI command modules for Evidence Sync."""

from evidence_sync.cli_commands.queue import queue_app
from evidence_sync.cli_commands.status import run_command, status_command

__all__ = ["queue_app", "run_command", "status_command"]
