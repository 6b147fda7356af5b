"""
Pytest fixtures and test configuration for memsync tests.
"""

import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from memsync.core import MemoryClient
from memsync.storage import SQLiteStorage
from memsync.types import MemoryRecord, Profile, PullOutcome, SyncOutcome


class FakeCredentials:
    """TokenProvider double with a fixed answer."""

    def __init__(self, token: Optional[str] = "test-token"):
        self.token = token
        self.token_file = None

    def is_authenticated(self) -> bool:
        return self.token is not None

    def get_token(self) -> str:
        from memsync.protocols import NotAuthenticatedError

        if self.token is None:
            raise NotAuthenticatedError("no token")
        return self.token


class FakeSync:
    """RemoteSync double that records what it was asked to publish."""

    full_name = "tester/memsync-storage"

    def __init__(self):
        self.pushed: List[List[MemoryRecord]] = []
        self.profiles: List[Optional[Profile]] = []
        self.push_outcome = SyncOutcome(success=True)
        self.pull_outcome = PullOutcome(success=True)
        self.remote_records: List[MemoryRecord] = []
        self.pull_calls = 0

    def sync_to_github(
        self, records: Sequence[MemoryRecord], profile: Optional[Profile] = None
    ) -> SyncOutcome:
        self.pushed.append(list(records))
        self.profiles.append(profile)
        if self.push_outcome.success:
            return SyncOutcome(success=True, synced=len(records))
        return self.push_outcome

    def pull_from_github(self) -> PullOutcome:
        self.pull_calls += 1
        return PullOutcome(
            success=self.pull_outcome.success,
            error=self.pull_outcome.error,
            conflict=self.pull_outcome.conflict,
            conflicted_paths=list(self.pull_outcome.conflicted_paths),
        )

    def import_memories(self) -> List[MemoryRecord]:
        return list(self.remote_records)


@pytest.fixture
def temp_db_path(tmp_path):
    """Temporary database path."""
    return tmp_path / "memories.db"


@pytest.fixture
def storage(temp_db_path):
    """SQLiteStorage on a temporary database."""
    s = SQLiteStorage(temp_db_path)
    yield s
    s.close()


@pytest.fixture
def fake_credentials():
    return FakeCredentials()


@pytest.fixture
def fake_sync():
    return FakeSync()


@pytest.fixture
def client(storage, fake_credentials, fake_sync, tmp_path):
    """MemoryClient wired to fakes for credentials and remote sync."""
    c = MemoryClient(storage, fake_credentials, fake_sync, data_dir=tmp_path)
    yield c
    c.close()


def _git(*args: str, cwd: Optional[Path] = None) -> str:
    proc = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=True)
    return proc.stdout


@pytest.fixture
def bare_remote(tmp_path):
    """A bare repository at ``<tmp>/remotes/tester/memsync-storage.git`` with one commit on main.

    Returned as ``(web_url, bare_path)`` so GitHubSync can clone it with
    ``web_url=file://<tmp>/remotes``.
    """
    remotes = tmp_path / "remotes"
    bare = remotes / "tester" / "memsync-storage.git"
    bare.mkdir(parents=True)
    _git("init", "--bare", "-b", "main", str(bare))

    seed = tmp_path / "seed"
    _git("clone", str(bare), str(seed))
    _git("config", "user.name", "seed", cwd=seed)
    _git("config", "user.email", "seed@example.com", cwd=seed)
    _git("symbolic-ref", "HEAD", "refs/heads/main", cwd=seed)
    (seed / "README.md").write_text("# memsync storage\n")
    _git("add", "README.md", cwd=seed)
    _git("commit", "-m", "Initial commit", cwd=seed)
    _git("push", "origin", "main", cwd=seed)

    return f"file://{remotes}", bare


@pytest.fixture
def git_helper():
    return _git
