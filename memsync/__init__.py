"""memsync - local-first memory storage with git-backed sync.

Memories are stored in SQLite with full-text search and backed up to a
private GitHub repository, one JSON file per memory.
"""

from memsync.config import MemsyncConfig
from memsync.core import MemoryClient
from memsync.protocols import (
    AuthorizationDeniedError,
    AuthorizationTimeoutError,
    ConstraintViolationError,
    DataIntegrityError,
    GitCommandError,
    MemoryNotFoundError,
    MemsyncError,
    MergeConflictError,
    NotAuthenticatedError,
    RemoteUnavailableError,
    RepositoryMissingError,
    StorageUnavailableError,
)
from memsync.storage import SQLiteStorage
from memsync.types import MemoryRecord, Profile, ProfileFact, ProfileType, SyncStatus

__version__ = "0.1.0"

__all__ = [
    "MemoryClient",
    "MemsyncConfig",
    "SQLiteStorage",
    # Types
    "MemoryRecord",
    "Profile",
    "ProfileFact",
    "ProfileType",
    "SyncStatus",
    # Errors
    "MemsyncError",
    "AuthorizationDeniedError",
    "AuthorizationTimeoutError",
    "ConstraintViolationError",
    "DataIntegrityError",
    "GitCommandError",
    "MemoryNotFoundError",
    "MergeConflictError",
    "NotAuthenticatedError",
    "RemoteUnavailableError",
    "RepositoryMissingError",
    "StorageUnavailableError",
]
