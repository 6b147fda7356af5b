"""Memory commands: add, search, list."""

import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from memsync import MemoryClient


def cmd_add(args, client: "MemoryClient"):
    """Save a memory for the current project."""
    content = " ".join(args.content).strip()
    if not content:
        print('No content provided. Usage: memsync add "content to save"')
        return 1

    result = client.add_memory(
        content,
        args.tag,
        {
            "type": "manual",
            "project": args.tag,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(f"Memory saved to project: {args.tag}")
        print(f"ID: {result['id']}")
    return 0


def cmd_search(args, client: "MemoryClient"):
    """Full-text search within the current project (or all with --all)."""
    tag = None if args.all else args.tag
    result = client.search(args.query, tag, args.limit)
    if args.json:
        print(json.dumps(result, indent=2))
        return 0

    if not result["results"]:
        print(f"No memories matching '{args.query}'")
        return 0
    for hit in result["results"]:
        preview = hit["content"].replace("\n", " ")[:100]
        print(f"[{hit['similarity']:.2f}] {hit['id']}: {preview}")
    return 0


def cmd_list(args, client: "MemoryClient"):
    """List the most recent memories for the current project."""
    memories = client.list_memories(args.tag, args.limit)["memories"]
    if args.json:
        print(json.dumps(memories, indent=2))
        return 0

    if not memories:
        print(f"No memories for {args.tag}")
        return 0
    for m in memories:
        created = datetime.fromtimestamp(m["createdAt"] / 1000, tz=timezone.utc)
        marker = "✓" if m["syncStatus"] == "synced" else "○"
        preview = m["content"].replace("\n", " ")[:80]
        print(f"{marker} {created:%Y-%m-%d %H:%M} {m['id']}: {preview}")
    return 0
