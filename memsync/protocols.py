"""
Errors and structural interfaces shared across memsync.

The facade depends on these protocols rather than on concrete classes, so
tests can substitute a fake credential provider or sync engine.
"""

from typing import List, Optional, Protocol, Sequence, runtime_checkable

from memsync.types import MemoryRecord, Profile, PullOutcome, SyncOutcome

# =============================================================================
# ERRORS
# =============================================================================


class MemsyncError(Exception):
    """Base for all memsync errors."""

    pass


class StorageUnavailableError(MemsyncError):
    """The local database file could not be read or written."""

    pass


class DataIntegrityError(MemsyncError):
    """A stored or imported record could not be decoded."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id


class ConstraintViolationError(MemsyncError):
    """A record with the same id already exists."""

    def __init__(self, record_id: str):
        super().__init__(f"Memory already exists: {record_id}")
        self.record_id = record_id


class MemoryNotFoundError(MemsyncError):
    """An update targeted a memory id that is not stored."""

    def __init__(self, record_id: str):
        super().__init__(f"Memory not found: {record_id}")
        self.record_id = record_id


class NotAuthenticatedError(MemsyncError):
    """No credential source could produce a token."""

    pass


class RemoteUnavailableError(MemsyncError):
    """The hosting service could not be reached or returned an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RepositoryMissingError(RemoteUnavailableError):
    """The remote repository does not exist (HTTP 404)."""

    def __init__(self, full_name: str):
        super().__init__(f"Repository not found: {full_name}", status_code=404)
        self.full_name = full_name


class MergeConflictError(MemsyncError):
    """Merging the remote branch left unmerged paths."""

    def __init__(self, paths: Sequence[str]):
        self.paths = list(paths)
        super().__init__(f"Merge conflict in {len(self.paths)} file(s): {', '.join(self.paths[:5])}")


class AuthorizationTimeoutError(MemsyncError):
    """The device-authorization flow exceeded its polling ceiling."""

    pass


class AuthorizationDeniedError(MemsyncError):
    """The remote explicitly refused the device-authorization request."""

    def __init__(self, reason: str):
        super().__init__(f"Authorization failed: {reason}")
        self.reason = reason


class GitCommandError(MemsyncError):
    """A git invocation exited non-zero."""

    def __init__(self, args: Sequence[str], returncode: int, stdout: str = "", stderr: str = ""):
        self.argv = list(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        msg = f"git {' '.join(self.argv)} failed (exit {returncode})"
        if stderr.strip():
            msg += f": {stderr.strip()}"
        super().__init__(msg)


# =============================================================================
# PROTOCOLS
# =============================================================================


@runtime_checkable
class TokenProvider(Protocol):
    """Produces a bearer credential for the hosting service."""

    def is_authenticated(self) -> bool:
        """Fast, side-effect-free check that some source is plausibly usable."""
        ...

    def get_token(self) -> str:
        """Return a token or raise NotAuthenticatedError."""
        ...


@runtime_checkable
class RemoteSync(Protocol):
    """Publishes and imports memory records through a remote repository."""

    def sync_to_github(
        self, records: Sequence[MemoryRecord], profile: Optional[Profile] = None
    ) -> SyncOutcome: ...

    def pull_from_github(self) -> PullOutcome: ...

    def import_memories(self) -> List[MemoryRecord]: ...
