"""CLI command handlers for memsync."""

from memsync.cli.commands.auth import cmd_auth
from memsync.cli.commands.memory import cmd_add, cmd_list, cmd_search
from memsync.cli.commands.status import cmd_status
from memsync.cli.commands.sync import cmd_sync

__all__ = ["cmd_add", "cmd_auth", "cmd_list", "cmd_search", "cmd_status", "cmd_sync"]
