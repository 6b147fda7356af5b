"""On-disk record format for the backup repository.

One JSON file per memory at
``memories/<containerTag>/<YYYY-MM>/<DD>-<id>.json`` plus a profile
snapshot at ``profiles/user-preferences.json``.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Dict
from urllib.parse import quote

from jsonschema import Draft7Validator

from memsync.protocols import DataIntegrityError
from memsync.types import MemoryRecord, Profile, SyncStatus

logger = logging.getLogger(__name__)

MEMORIES_DIR = "memories"
PROFILE_PATH = PurePosixPath("profiles") / "user-preferences.json"

# 9999-12-31T23:59:59.999Z, the last instant datetime can represent
MAX_TIMESTAMP_MS = 253402300799999

RECORD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["id", "content", "containerTag", "createdAt"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "content": {"type": "string"},
        "containerTag": {"type": "string", "minLength": 1},
        # Older exports stored metadata as a JSON string
        "metadata": {"type": ["object", "string", "null"]},
        "createdAt": {"type": "integer", "minimum": 0, "maximum": MAX_TIMESTAMP_MS},
        "updatedAt": {"type": "integer", "minimum": 0, "maximum": MAX_TIMESTAMP_MS},
    },
}

_validator = Draft7Validator(RECORD_SCHEMA)


def safe_component(value: str) -> str:
    """Percent-encode ``value`` into a single path segment.

    The encoding is reversible, so distinct values never share a segment.
    """
    # quote() never emits a bare "%"
    if not value:
        return "%"
    if set(value) == {"."}:
        return "%2E" * len(value)
    return quote(value, safe="@+")


def record_path(record: MemoryRecord) -> PurePosixPath:
    """Repository-relative path of a record file, derived from tag, creation day and id."""
    created = datetime.fromtimestamp(record.created_at / 1000, tz=timezone.utc)
    return (
        PurePosixPath(MEMORIES_DIR)
        / safe_component(record.container_tag)
        / created.strftime("%Y-%m")
        / f"{created.strftime('%d')}-{safe_component(record.id)}.json"
    )


def serialize_record(record: MemoryRecord) -> str:
    """Deterministic JSON text for a record file."""
    return json.dumps(record.to_export_dict(), indent=2, ensure_ascii=False) + "\n"


def serialize_profile(profile: Profile) -> str:
    return json.dumps(profile.to_dict(), indent=2, ensure_ascii=False) + "\n"


def write_if_changed(path: Path, text: str) -> bool:
    """Write ``text`` unless the file already holds exactly that. Returns True if written."""
    if path.exists() and path.read_text(encoding="utf-8") == text:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return True


def parse_record(data: Any, source: str = "<record>") -> MemoryRecord:
    """Validate a decoded record document and build a MemoryRecord.

    Raises:
        DataIntegrityError: if the document does not match the record schema.
    """
    errors = sorted(_validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        first = errors[0]
        where = "/".join(str(p) for p in first.path) or "<root>"
        raise DataIntegrityError(f"{source}: {where}: {first.message}")

    metadata = data.get("metadata")
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata) if metadata else {}
        except json.JSONDecodeError as e:
            raise DataIntegrityError(f"{source}: metadata string is not JSON: {e}") from e
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise DataIntegrityError(f"{source}: metadata is not an object", record_id=data["id"])

    created_at = data["createdAt"]
    return MemoryRecord(
        id=data["id"],
        content=data["content"],
        container_tag=data["containerTag"],
        metadata=metadata,
        created_at=created_at,
        updated_at=data.get("updatedAt") or created_at,
        sync_status=SyncStatus.SYNCED,
    )


def read_record_file(path: Path) -> MemoryRecord:
    """Load one record file.

    Raises:
        DataIntegrityError: if the file is not JSON or not a valid record.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except UnicodeDecodeError as e:
        raise DataIntegrityError(f"{path}: not UTF-8 text: {e}") from e
    except json.JSONDecodeError as e:
        raise DataIntegrityError(f"{path}: invalid JSON: {e}") from e
    return parse_record(data, source=str(path))
