"""
memsync CLI - local-first memory with GitHub backup.

Usage:
    memsync add "content to save"
    memsync search "query"
    memsync list [--limit N]
    memsync status
    memsync sync push|pull
    memsync auth login|status|logout
"""

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import Optional

from memsync import MemoryClient, MemsyncConfig, MemsyncError
from memsync.cli.commands import cmd_add, cmd_auth, cmd_list, cmd_search, cmd_status, cmd_sync
from memsync.logging_config import setup_memsync_logging

logger = logging.getLogger(__name__)


def default_container_tag(cwd: Optional[Path] = None) -> str:
    """Project tag derived from the working directory name."""
    name = (cwd or Path.cwd()).resolve().name.lower()
    return re.sub(r"[^a-z0-9_-]+", "-", name).strip("-") or "default"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="memsync",
        description="Local-first memory store with GitHub backup",
    )
    parser.add_argument(
        "--tag",
        default=None,
        help="Container tag (default: derived from the current directory)",
    )
    parser.add_argument("--json", action="store_true", help="Output as JSON")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_add = subparsers.add_parser("add", help="Save a memory")
    p_add.add_argument("content", nargs="+", help="Text to remember")

    p_search = subparsers.add_parser("search", help="Full-text search")
    p_search.add_argument("query", help="Search query")
    p_search.add_argument("--limit", "-l", type=int, default=10)
    p_search.add_argument("--all", action="store_true", help="Search every project")

    p_list = subparsers.add_parser("list", help="List recent memories")
    p_list.add_argument("--limit", "-l", type=int, default=20)

    subparsers.add_parser("status", help="Show local and sync status")

    p_sync = subparsers.add_parser("sync", help="Sync with GitHub")
    p_sync.add_argument("sync_action", choices=["push", "pull"])
    p_sync.add_argument(
        "--profile",
        action="store_true",
        help="Also export the profile snapshot of the current tag (push only)",
    )

    p_auth = subparsers.add_parser("auth", help="GitHub authentication")
    p_auth.add_argument("auth_action", choices=["login", "status", "logout"])

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING)
    config = MemsyncConfig.from_env()
    setup_memsync_logging(config.log_level, config.data_dir)
    if args.tag is None:
        args.tag = default_container_tag()

    try:
        with MemoryClient.from_config(config) as client:
            if args.command == "add":
                return cmd_add(args, client)
            if args.command == "search":
                return cmd_search(args, client)
            if args.command == "list":
                return cmd_list(args, client)
            if args.command == "status":
                return cmd_status(args, client)
            if args.command == "sync":
                return cmd_sync(args, client)
            if args.command == "auth":
                return cmd_auth(args, client, config)
    except MemsyncError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
