"""Tests for the git-backed GitHub sync engine.

Repository bootstrap and failure handling are tested against mocked git and
API collaborators. Push, pull and conflict behaviour run against a real
local bare repository served over ``file://``.
"""

import json
import shutil
from unittest.mock import MagicMock

import pytest

from memsync.github.git import GitRepo, MergeResult
from memsync.github.records import record_path, serialize_record
from memsync.github.sync_engine import GitHubSync, RepoState, _commit_message
from memsync.protocols import GitCommandError, NotAuthenticatedError, RemoteUnavailableError
from memsync.types import MemoryRecord, Profile, SyncStatus

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _record(record_id="mem_1", content="remember this", tag="proj", created_at=1709812800000, **kw):
    return MemoryRecord(
        id=record_id,
        content=content,
        container_tag=tag,
        metadata={"type": "manual"},
        created_at=created_at,
        updated_at=kw.pop("updated_at", created_at),
        **kw,
    )


@pytest.fixture
def api():
    mock = MagicMock()
    mock.get_login.return_value = "tester"
    mock.repo_exists.return_value = True
    return mock


@pytest.fixture
def engine(tmp_path, fake_credentials, api):
    """Engine whose git wrapper is a mock."""
    e = GitHubSync(
        fake_credentials,
        repo_dir=tmp_path / "repo",
        repo_name="memsync-storage",
        api=api,
        web_url="https://github.example.test",
    )
    e.git = MagicMock(spec=GitRepo)
    e.git.remote = "origin"
    e.git.is_repo.return_value = False
    e.git.has_staged_changes.return_value = True
    return e


class TestCommitMessage:
    def test_singular(self):
        assert _commit_message([_record()]) == "Sync 1 memory (proj)"

    def test_plural_sorted_tags(self):
        records = [_record("a", tag="zeta"), _record("b", tag="alpha"), _record("c", tag="zeta")]
        assert _commit_message(records) == "Sync 3 memories (alpha, zeta)"


class TestEnsureRepo:
    """Repository bootstrap with mocked collaborators."""

    def test_resolves_owner_and_clones(self, engine, api):
        engine.ensure_repo()

        api.get_login.assert_called_once()
        api.create_repo.assert_not_called()
        engine.git.clone.assert_called_once_with(
            "https://github.example.test/tester/memsync-storage.git", token="test-token"
        )
        engine.git.configure_identity.assert_called_once()
        assert engine.state == RepoState.READY
        assert engine.full_name == "tester/memsync-storage"

    def test_creates_missing_repository(self, engine, api):
        api.repo_exists.return_value = False
        engine.ensure_repo()
        api.create_repo.assert_called_once_with("memsync-storage")

    def test_existing_checkout_is_reused(self, engine, api):
        engine.git.is_repo.return_value = True
        engine.ensure_repo()
        engine.git.clone.assert_not_called()
        api.repo_exists.assert_not_called()
        assert engine.state == RepoState.READY

    def test_clone_failure_discards_checkout(self, engine, tmp_path):
        def fail_clone(url, token=None):
            (tmp_path / "repo").mkdir()
            (tmp_path / "repo" / "partial").write_text("x")
            raise GitCommandError(["clone", url], 128, stderr="fatal: could not read")

        engine.git.clone.side_effect = fail_clone
        with pytest.raises(GitCommandError):
            engine.ensure_repo()
        assert engine.state == RepoState.ABSENT
        assert not (tmp_path / "repo").exists()

    def test_stray_directory_is_replaced(self, engine, tmp_path):
        stray = tmp_path / "repo"
        stray.mkdir()
        (stray / "leftover.txt").write_text("x")
        engine.ensure_repo()
        assert not (stray / "leftover.txt").exists()

    def test_not_authenticated_propagates(self, engine, fake_credentials):
        fake_credentials.token = None
        with pytest.raises(NotAuthenticatedError):
            engine.ensure_repo()
        engine.git.clone.assert_not_called()


class TestExport:
    """Record files in the checkout."""

    def test_export_writes_record_file(self, engine, tmp_path):
        rel = engine.export_memory(_record())
        assert rel == "memories/proj/2024-03/07-mem_1.json"
        data = json.loads((tmp_path / "repo" / rel).read_text())
        assert data["content"] == "remember this"

    def test_export_is_idempotent(self, engine, tmp_path):
        rel = engine.export_memory(_record())
        first = (tmp_path / "repo" / rel).read_bytes()
        engine.export_memory(_record())
        assert (tmp_path / "repo" / rel).read_bytes() == first
        assert len(list((tmp_path / "repo" / "memories").rglob("*.json"))) == 1

    def test_export_profile(self, engine, tmp_path):
        rel = engine.export_profile(Profile(static=["a"], dynamic=["b"]))
        assert rel == "profiles/user-preferences.json"
        assert json.loads((tmp_path / "repo" / rel).read_text()) == {"static": ["a"], "dynamic": ["b"]}


class TestSyncToGitHubMocked:
    """Publish cycle with a mocked git wrapper."""

    def test_success(self, engine):
        records = [_record("a"), _record("b")]
        outcome = engine.sync_to_github(records)

        assert outcome.success is True
        assert outcome.synced == 2
        staged = engine.git.add.call_args.args[0]
        assert staged == [record_path(r).as_posix() for r in records]
        engine.git.commit.assert_called_once_with("Sync 2 memories (proj)")
        engine.git.push.assert_called_once_with("main", token="test-token")

    def test_profile_included_when_given(self, engine):
        engine.sync_to_github([_record()], Profile(static=["x"]))
        assert "profiles/user-preferences.json" in engine.git.add.call_args.args[0]

    def test_nothing_staged_skips_commit(self, engine):
        engine.git.has_staged_changes.return_value = False
        assert engine.sync_to_github([_record()]).success is True
        engine.git.commit.assert_not_called()
        engine.git.push.assert_called_once()

    def test_push_failure_reports_failure(self, engine):
        engine.git.push.side_effect = GitCommandError(["push"], 1, stderr="rejected")
        outcome = engine.sync_to_github([_record()])
        assert outcome.success is False
        assert "rejected" in outcome.error

    def test_remote_unavailable_reports_failure(self, engine, api):
        api.get_login.side_effect = RemoteUnavailableError("offline")
        outcome = engine.sync_to_github([_record()])
        assert outcome.success is False
        assert outcome.error == "offline"


class TestPullMocked:
    """Pull cycle with a mocked git wrapper."""

    def test_success(self, engine):
        engine.git.merge.return_value = MergeResult(success=True)
        assert engine.pull_from_github().success is True
        engine.git.fetch.assert_called_once_with("main", token="test-token")
        engine.git.merge.assert_called_once_with("origin/main")

    def test_conflict_is_structured(self, engine):
        engine.git.merge.return_value = MergeResult(
            success=False, conflicted_paths=["memories/proj/2024-03/07-mem_1.json"], error="CONFLICT"
        )
        outcome = engine.pull_from_github()
        assert outcome.success is False
        assert outcome.conflict is True
        assert outcome.conflicted_paths == ["memories/proj/2024-03/07-mem_1.json"]
        assert "Merge conflict" in outcome.error

    def test_other_merge_failure_is_not_conflict(self, engine):
        engine.git.merge.return_value = MergeResult(success=False, error="refusing to merge unrelated histories")
        outcome = engine.pull_from_github()
        assert outcome.success is False
        assert outcome.conflict is False
        assert "unrelated" in outcome.error

    def test_fetch_failure(self, engine):
        engine.git.fetch.side_effect = GitCommandError(["fetch"], 128, stderr="could not resolve host")
        outcome = engine.pull_from_github()
        assert outcome.success is False
        assert outcome.conflict is False


class TestImportMemories:
    """Reading record files out of the checkout."""

    def _write(self, root, rel, text):
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)

    def test_no_memories_dir(self, engine):
        assert engine.import_memories() == []

    def test_partial_failure_skips_bad_files(self, engine, tmp_path, caplog):
        root = tmp_path / "repo"
        good = _record("good")
        self._write(root, record_path(good).as_posix(), serialize_record(good))
        self._write(root, "memories/proj/2024-03/08-broken.json", "{not json")
        self._write(root, "memories/proj/2024-03/09-invalid.json", json.dumps({"id": "x"}))
        self._write(root, "memories/proj/notes.txt", "ignored")

        with caplog.at_level("WARNING", logger="memsync.github.sync_engine"):
            records = engine.import_memories()

        assert [r.id for r in records] == ["good"]
        assert records[0].sync_status == SyncStatus.SYNCED
        assert records[0].synced_at is not None
        assert records[0].created_at == good.created_at
        assert len([r for r in caplog.records if "Skipping" in r.getMessage()]) == 2

    def test_out_of_range_timestamp_skipped(self, engine, tmp_path):
        root = tmp_path / "repo"
        bad = json.loads(serialize_record(_record("a")))
        bad["createdAt"] = 10**20
        self._write(root, "memories/proj/2024-03/01-a.json", json.dumps(bad))
        good = _record("b")
        self._write(root, "memories/proj/2024-03/02-b.json", serialize_record(good))

        assert [r.id for r in engine.import_memories()] == ["b"]

    def test_similar_ids_export_to_separate_files(self, engine, tmp_path):
        engine.export_memory(_record("sess/1", content="A"))
        engine.export_memory(_record("sess_1", content="B"))

        imported = sorted((r.id, r.content) for r in engine.import_memories())
        assert imported == [("sess/1", "A"), ("sess_1", "B")]

    def test_deep_tree(self, engine, tmp_path):
        root = tmp_path / "repo"
        deep = "memories/" + "/".join(f"d{i}" for i in range(60)) + "/x.json"
        self._write(root, deep, serialize_record(_record("deep")))
        assert [r.id for r in engine.import_memories()] == ["deep"]

    def test_duplicate_id_keeps_latest(self, engine, tmp_path):
        root = tmp_path / "repo"
        old = _record("dup", content="old", updated_at=1709812800000)
        new = _record("dup", content="new", updated_at=1709812900000)
        self._write(root, "memories/a/old.json", serialize_record(old))
        self._write(root, "memories/b/new.json", serialize_record(new))

        records = engine.import_memories()
        assert len(records) == 1
        assert records[0].content == "new"


# =============================================================================
# Real git against a local bare repository
# =============================================================================


def _real_engine(tmp_path, credentials, web_url, name):
    api = MagicMock()
    api.repo_exists.return_value = True
    return GitHubSync(
        credentials,
        repo_dir=tmp_path / name,
        repo_name="memsync-storage",
        repo_owner="tester",
        api=api,
        web_url=web_url,
    )


@requires_git
class TestRealGit:
    """Push, pull and conflict detection against a bare repository."""

    def test_push_then_import_elsewhere(self, tmp_path, fake_credentials, bare_remote, git_helper):
        web_url, bare = bare_remote
        first = _real_engine(tmp_path, fake_credentials, web_url, "checkout-a")
        record = _record("mem_roundtrip", content="shared knowledge")

        outcome = first.sync_to_github([record])
        assert outcome.success, outcome.error

        files = git_helper("--git-dir", str(bare), "ls-tree", "-r", "--name-only", "main")
        assert record_path(record).as_posix() in files.split()
        subject = git_helper("--git-dir", str(bare), "log", "-1", "--format=%s", "main").strip()
        assert subject == "Sync 1 memory (proj)"

        second = _real_engine(tmp_path, fake_credentials, web_url, "checkout-b")
        assert second.pull_from_github().success
        imported = second.import_memories()
        assert [(r.id, r.content, r.metadata) for r in imported] == [
            ("mem_roundtrip", "shared knowledge", {"type": "manual"})
        ]

    def test_second_push_without_changes(self, tmp_path, fake_credentials, bare_remote, git_helper):
        web_url, bare = bare_remote
        engine = _real_engine(tmp_path, fake_credentials, web_url, "checkout")
        record = _record()
        assert engine.sync_to_github([record]).success
        head = git_helper("--git-dir", str(bare), "rev-parse", "main")

        assert engine.sync_to_github([record]).success
        assert git_helper("--git-dir", str(bare), "rev-parse", "main") == head

    def test_pull_brings_remote_records(self, tmp_path, fake_credentials, bare_remote):
        web_url, _ = bare_remote
        a = _real_engine(tmp_path, fake_credentials, web_url, "a")
        b = _real_engine(tmp_path, fake_credentials, web_url, "b")
        a.ensure_repo()
        b.ensure_repo()

        assert a.sync_to_github([_record("from_a")]).success
        assert b.sync_to_github([_record("from_b", created_at=1709899200000)]).success is False

        assert b.pull_from_github().success
        assert b.sync_to_github([_record("from_b", created_at=1709899200000)]).success
        assert a.pull_from_github().success
        assert {r.id for r in a.import_memories()} == {"from_a", "from_b"}

    def test_conflict_detected_and_aborted(self, tmp_path, fake_credentials, bare_remote):
        web_url, _ = bare_remote
        a = _real_engine(tmp_path, fake_credentials, web_url, "a")
        b = _real_engine(tmp_path, fake_credentials, web_url, "b")
        a.ensure_repo()
        b.ensure_repo()

        assert a.sync_to_github([_record("same", content="version A")]).success
        assert b.sync_to_github([_record("same", content="version B")]).success is False

        outcome = b.pull_from_github()
        assert outcome.success is False
        assert outcome.conflict is True
        assert outcome.conflicted_paths == [record_path(_record("same")).as_posix()]
        assert b.git.merge_in_progress() is False
        assert b.git.unmerged_paths() == []
