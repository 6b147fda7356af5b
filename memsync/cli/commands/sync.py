"""Sync commands: push local memories to GitHub, pull remote ones."""

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from memsync import MemoryClient


def cmd_sync(args, client: "MemoryClient"):
    """Handle ``sync push`` and ``sync pull``."""
    if args.sync_action == "push":
        if not args.json:
            print("Syncing memories to GitHub...")
        result = client.sync_to_github(include_profile_for=args.tag if args.profile else None)
    else:
        if not args.json:
            print("Pulling memories from GitHub...")
        result = client.sync_from_github()

    if args.json:
        print(json.dumps(result, indent=2))
    elif result["success"]:
        if args.sync_action == "push":
            print(f"✓ Synced {result['synced']} memories to GitHub")
        else:
            print(f"✓ Imported {result['imported']} new memories from GitHub")
    else:
        print(f"✗ Sync failed: {result['error']}")
        if result.get("conflict"):
            print("  The merge was aborted; these record files differ locally and on GitHub:")
            for path in result.get("conflicted_paths", []):
                print(f"    {path}")
            print("  No local records were changed. Reconcile these files on GitHub, then pull again.")
        if "authenticated" in result["error"].lower():
            print("  Run `gh auth login` or `memsync auth login` to authenticate with GitHub")
    return 0 if result["success"] else 1
