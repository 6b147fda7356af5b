"""Status command: local counts and sync backlog."""

import json
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from memsync import MemoryClient


def cmd_status(args, client: "MemoryClient"):
    status = client.get_status()
    if args.json:
        print(json.dumps(status, indent=2))
        return 0

    print("## Memory Status\n")
    print("**Local Storage:**")
    print(f"- Total memories: {status['total']}")
    print(f"- Pending sync: {status['pending']}")
    print(f"- Database: {status['database']}\n")

    print("**GitHub Sync:**")
    if status["authenticated"]:
        print("- Status: Authenticated ✓")
        if status["last_synced_at"]:
            last = datetime.fromtimestamp(status["last_synced_at"] / 1000)
            print(f"- Last sync: {last:%Y-%m-%d %H:%M:%S}")
        else:
            print("- Last sync: Never")
        if status["repository"]:
            print(f"- Repository: {status['repository']}")
        if status["checkout"]:
            print(f"- Checkout: {status['checkout']}")
    else:
        print("- Status: Not authenticated ✗")
        print("- Run `gh auth login` or `memsync auth login` to enable GitHub sync")
    return 0
