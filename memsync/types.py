"""
Shared record types for memsync.

These dataclasses are the vocabulary between the local store, the sync
engine and the facade. Timestamps are integer epoch milliseconds, which is
also the on-disk format of exported record files.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

# === Shared Utility Functions ===


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# === Enums ===


class SyncStatus(str, Enum):
    """Remote-backup status of a memory record."""

    PENDING = "pending"  # Written locally, not yet published
    SYNCED = "synced"  # Accepted by the remote


class ProfileType(str, Enum):
    """Kind of profile fact."""

    STATIC = "static"  # Durable preference
    DYNAMIC = "dynamic"  # Ephemeral working context


VALID_PROFILE_TYPES = frozenset(t.value for t in ProfileType)

# Score given to recency-selected rows in hybrid context retrieval.
RECENT_SCORE = 1.0

# Similarity reported when the index yields no usable rank.
NEUTRAL_SIMILARITY = 0.5


# === Records ===


@dataclass
class MemoryRecord:
    """A stored unit of text scoped to a container tag."""

    id: str
    content: str
    container_tag: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: int = 0
    updated_at: int = 0
    synced_at: Optional[int] = None
    sync_status: SyncStatus = SyncStatus.PENDING
    # Populated by search/context queries only
    score: Optional[float] = None

    @property
    def is_synced(self) -> bool:
        return self.sync_status == SyncStatus.SYNCED

    def to_export_dict(self) -> Dict[str, Any]:
        """Field set written to a record file."""
        return {
            "id": self.id,
            "content": self.content,
            "containerTag": self.container_tag,
            "metadata": self.metadata,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_export_dict()
        data["syncedAt"] = self.synced_at
        data["syncStatus"] = self.sync_status.value
        if self.score is not None:
            data["score"] = self.score
        return data


@dataclass
class ProfileFact:
    """A durable (static) or ephemeral (dynamic) fact about the user."""

    id: str
    container_tag: str
    fact: str
    type: ProfileType = ProfileType.STATIC
    created_at: int = 0


@dataclass
class Profile:
    """Profile facts for a container tag, most recent first."""

    static: List[str] = field(default_factory=list)
    dynamic: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"static": list(self.static), "dynamic": list(self.dynamic)}


@dataclass
class SyncStateEntry:
    """Generic sync bookkeeping value."""

    key: str
    value: Optional[str]
    updated_at: int


# === Sync Types ===


@dataclass
class SyncOutcome:
    """Result of publishing records to the remote."""

    success: bool
    synced: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "synced": self.synced}
        return {"success": False, "error": self.error}


@dataclass
class PullOutcome:
    """Result of fetching and merging the remote default branch."""

    success: bool
    error: Optional[str] = None
    conflict: bool = False
    conflicted_paths: List[str] = field(default_factory=list)
    imported: int = 0

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "imported": self.imported}
        data: Dict[str, Any] = {"success": False, "error": self.error}
        if self.conflict:
            data["conflict"] = True
            data["conflicted_paths"] = list(self.conflicted_paths)
        return data
