"""Git-backed sync engine for memsync.

GitHubSync owns the local checkout of the backup repository. It exports
pending records as one JSON file each, commits and pushes them, merges the
remote branch back in, and reads record files for import. It never touches
the SQLite store; the facade moves records between the two.
"""

import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from memsync.protocols import (
    DataIntegrityError,
    GitCommandError,
    MemsyncError,
    MergeConflictError,
    TokenProvider,
)
from memsync.types import MemoryRecord, Profile, PullOutcome, SyncOutcome, SyncStatus, now_ms

from .api import GitHubClient
from .git import GitRepo
from .records import (
    MEMORIES_DIR,
    PROFILE_PATH,
    read_record_file,
    record_path,
    serialize_profile,
    serialize_record,
    write_if_changed,
)

logger = logging.getLogger(__name__)


class RepoState(str, Enum):
    """Lifecycle of the checkout directory."""

    ABSENT = "absent"
    CLONED = "cloned"
    READY = "ready"


def _commit_message(records: Sequence[MemoryRecord]) -> str:
    tags = sorted({r.container_tag for r in records})
    noun = "memory" if len(records) == 1 else "memories"
    return f"Sync {len(records)} {noun} ({', '.join(tags)})"


class GitHubSync:
    """Mirror records into a private GitHub repository through a local checkout.

    Args:
        credentials: Token provider used for API calls and git transport.
        repo_dir: Checkout directory; owned exclusively by this engine.
        repo_name: Name of the backup repository.
        repo_owner: Owner login; resolved from the token when omitted.
        api: REST client; built from ``credentials`` when omitted.
        web_url: Base URL used to build the clone URL.
        branch: Default branch to push to and merge from.
        commit_name: Author name configured in the checkout.
        commit_email: Author email configured in the checkout.
    """

    def __init__(
        self,
        credentials: TokenProvider,
        repo_dir: Path,
        repo_name: str = "memsync-storage",
        repo_owner: Optional[str] = None,
        api: Optional[GitHubClient] = None,
        web_url: str = "https://github.com",
        branch: str = "main",
        commit_name: str = "memsync",
        commit_email: str = "memsync@users.noreply.github.com",
    ):
        self.credentials = credentials
        self.repo_dir = Path(repo_dir)
        self.repo_name = repo_name
        self.repo_owner = repo_owner
        self.api = api or GitHubClient(credentials)
        self.web_url = web_url.rstrip("/")
        self.branch = branch
        self.commit_name = commit_name
        self.commit_email = commit_email
        self.git = GitRepo(self.repo_dir)
        self._state = RepoState.READY if (self.repo_dir / ".git").exists() else RepoState.ABSENT

    @property
    def state(self) -> RepoState:
        return self._state

    @property
    def full_name(self) -> Optional[str]:
        if not self.repo_owner:
            return None
        return f"{self.repo_owner}/{self.repo_name}"

    def clone_url(self) -> str:
        return f"{self.web_url}/{self.repo_owner}/{self.repo_name}.git"

    # === Repository lifecycle ===

    def ensure_repo(self) -> None:
        """Bring the checkout to READY, creating and cloning the remote if needed.

        Any failure leaves the checkout ABSENT and propagates.
        """
        if self.git.is_repo():
            self._state = RepoState.READY
            return

        self._state = RepoState.ABSENT
        if self.repo_dir.exists() and any(self.repo_dir.iterdir()):
            logger.warning(f"Discarding incomplete checkout at {self.repo_dir}")
            shutil.rmtree(self.repo_dir)
        token = self.credentials.get_token()

        if not self.repo_owner:
            self.repo_owner = self.api.get_login()

        if not self.api.repo_exists(self.repo_owner, self.repo_name):
            self.api.create_repo(self.repo_name)

        try:
            self.git.clone(self.clone_url(), token=token)
            self._state = RepoState.CLONED
            self.git.configure_identity(self.commit_name, self.commit_email)
        except MemsyncError:
            self._discard_checkout()
            raise

        self._state = RepoState.READY
        logger.info(f"Checkout of {self.full_name} ready at {self.repo_dir}")

    def _discard_checkout(self) -> None:
        self._state = RepoState.ABSENT
        shutil.rmtree(self.repo_dir, ignore_errors=True)

    # === Export ===

    def export_memory(self, record: MemoryRecord) -> str:
        """Write one record file; returns its repository-relative path."""
        rel = record_path(record)
        write_if_changed(self.repo_dir / rel, serialize_record(record))
        return rel.as_posix()

    def export_profile(self, profile: Profile) -> str:
        write_if_changed(self.repo_dir / PROFILE_PATH, serialize_profile(profile))
        return PROFILE_PATH.as_posix()

    # === Publish / pull ===

    def sync_to_github(
        self, records: Sequence[MemoryRecord], profile: Optional[Profile] = None
    ) -> SyncOutcome:
        """Export, stage, commit and push ``records`` as one batch.

        The batch either reaches the remote as a whole or is reported as not
        synced; written files are left in place for the next attempt.
        """
        try:
            self.ensure_repo()
            token = self.credentials.get_token()

            paths = [self.export_memory(r) for r in records]
            if profile is not None:
                paths.append(self.export_profile(profile))

            self.git.add(paths)
            if self.git.has_staged_changes():
                self.git.commit(_commit_message(records))
            self.git.push(self.branch, token=token)
        except (MemsyncError, OSError) as e:
            logger.warning(f"Sync to GitHub failed: {e}")
            return SyncOutcome(success=False, error=str(e))

        logger.info(f"Pushed {len(records)} memories to {self.full_name}")
        return SyncOutcome(success=True, synced=len(records))

    def pull_from_github(self) -> PullOutcome:
        """Fetch and merge the remote default branch into the checkout."""
        try:
            self.ensure_repo()
            token = self.credentials.get_token()
            self.git.fetch(self.branch, token=token)
        except (MemsyncError, OSError) as e:
            logger.warning(f"Pull from GitHub failed: {e}")
            return PullOutcome(success=False, error=str(e))

        try:
            result = self.git.merge(f"{self.git.remote}/{self.branch}")
        except GitCommandError as e:
            return PullOutcome(success=False, error=str(e))

        if result.success:
            return PullOutcome(success=True)
        if result.conflict:
            logger.warning(f"Merge conflict in {len(result.conflicted_paths)} file(s)")
            return PullOutcome(
                success=False,
                error=str(MergeConflictError(result.conflicted_paths)),
                conflict=True,
                conflicted_paths=result.conflicted_paths,
            )
        return PullOutcome(success=False, error=result.error)

    # === Import ===

    def import_memories(self) -> List[MemoryRecord]:
        """Read every record file in the checkout.

        Files that fail to parse are logged and skipped. When two files claim
        the same id, the one with the later ``updatedAt`` is kept.
        """
        root = self.repo_dir / MEMORIES_DIR
        if not root.is_dir():
            return []

        synced_at = now_ms()
        by_id: Dict[str, MemoryRecord] = {}
        skipped = 0

        stack = [root]
        while stack:
            directory = stack.pop()
            try:
                entries = sorted(directory.iterdir())
            except OSError as e:
                logger.warning(f"Cannot list {directory}: {e}", extra={"path": str(directory)})
                continue

            for entry in entries:
                if entry.is_dir() and not entry.is_symlink():
                    stack.append(entry)
                    continue
                if entry.suffix != ".json" or not entry.is_file():
                    continue
                try:
                    record = read_record_file(entry)
                except (DataIntegrityError, OSError) as e:
                    skipped += 1
                    logger.warning(
                        f"Skipping unreadable record file {entry}: {e}",
                        extra={"path": str(entry), "error_type": type(e).__name__},
                    )
                    continue

                record.sync_status = SyncStatus.SYNCED
                record.synced_at = synced_at
                existing = by_id.get(record.id)
                if existing is None or record.updated_at > existing.updated_at:
                    by_id[record.id] = record

        if skipped:
            logger.info(f"Imported {len(by_id)} records, skipped {skipped} file(s)")
        return list(by_id.values())
