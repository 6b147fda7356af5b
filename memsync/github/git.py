"""Thin wrapper around the ``git`` command line.

Network operations receive the bearer token through ``GIT_CONFIG_*``
environment variables as an ``http.extraheader``, so it never lands in
``.git/config`` or the process argument list.
"""

import base64
import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from memsync.protocols import GitCommandError

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Outcome of merging a remote ref into the checkout."""

    success: bool
    conflicted_paths: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def conflict(self) -> bool:
        return bool(self.conflicted_paths)


def auth_env(token: Optional[str]) -> Dict[str, str]:
    """Environment that makes git send ``token`` as HTTP basic auth."""
    if not token:
        return {}
    basic = base64.b64encode(f"x-access-token:{token}".encode()).decode()
    return {
        "GIT_CONFIG_COUNT": "1",
        "GIT_CONFIG_KEY_0": "http.extraheader",
        "GIT_CONFIG_VALUE_0": f"AUTHORIZATION: basic {basic}",
        "GIT_TERMINAL_PROMPT": "0",
    }


def run_git(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    token: Optional[str] = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Run ``git <args>``; raise GitCommandError on failure when ``check``."""
    env = None
    extra = auth_env(token)
    if extra:
        env = {**os.environ, **extra}

    cmd = ["git", *args] if cwd is None else ["git", "-C", str(cwd), *args]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, env=env, check=False)
    except OSError as e:
        raise GitCommandError(list(args), -1, stderr=str(e)) from e

    if check and proc.returncode != 0:
        raise GitCommandError(list(args), proc.returncode, proc.stdout or "", proc.stderr or "")
    return proc


class GitRepo:
    """A local checkout of the backup repository.

    Args:
        path: Working-tree directory.
        remote: Remote name used for fetch and push.
    """

    def __init__(self, path: Path, remote: str = "origin"):
        self.path = Path(path)
        self.remote = remote

    def _git(self, *args: str, token: Optional[str] = None, check: bool = True):
        return run_git(args, cwd=self.path, token=token, check=check)

    def is_repo(self) -> bool:
        if not (self.path / ".git").exists():
            return False
        try:
            proc = self._git("rev-parse", "--is-inside-work-tree", check=False)
        except GitCommandError:
            return False
        return proc.returncode == 0

    def clone(self, url: str, token: Optional[str] = None) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        run_git(["clone", url, str(self.path)], token=token)

    def configure_identity(self, name: str, email: str) -> None:
        self._git("config", "user.name", name)
        self._git("config", "user.email", email)

    def current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def add(self, paths: Sequence[str]) -> None:
        if paths:
            self._git("add", "--", *paths)

    def has_staged_changes(self) -> bool:
        proc = self._git("diff", "--cached", "--quiet", check=False)
        if proc.returncode not in (0, 1):
            raise GitCommandError(["diff", "--cached", "--quiet"], proc.returncode, proc.stdout, proc.stderr)
        return proc.returncode == 1

    def commit(self, message: str) -> None:
        self._git("commit", "-m", message)

    def push(self, branch: str, token: Optional[str] = None) -> None:
        self._git("push", self.remote, f"HEAD:{branch}", token=token)

    def fetch(self, branch: str, token: Optional[str] = None) -> None:
        self._git("fetch", self.remote, branch, token=token)

    def unmerged_paths(self) -> List[str]:
        proc = self._git("diff", "--name-only", "--diff-filter=U", check=False)
        return [line.strip() for line in (proc.stdout or "").splitlines() if line.strip()]

    def merge_in_progress(self) -> bool:
        return self._git("rev-parse", "-q", "--verify", "MERGE_HEAD", check=False).returncode == 0

    def merge(self, ref: str) -> MergeResult:
        """Merge ``ref``; on conflict the merge is aborted and the paths reported."""
        proc = self._git("merge", "--no-edit", ref, check=False)
        if proc.returncode == 0:
            return MergeResult(success=True)

        conflicted = self.unmerged_paths()
        if self.merge_in_progress():
            self._git("merge", "--abort", check=False)
        error = (proc.stderr or proc.stdout or "").strip() or f"git merge exited {proc.returncode}"
        return MergeResult(success=False, conflicted_paths=conflicted, error=error)
