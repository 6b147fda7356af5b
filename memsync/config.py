"""Runtime configuration for memsync.

Configuration is read from the environment once, at the assembly point, and
handed to each component explicitly.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from memsync.utils import get_memsync_home

DEFAULT_REPO_NAME = "memsync-storage"
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_WEB_URL = "https://github.com"
DEFAULT_BRANCH = "main"
# Placeholder OAuth app id; set MEMSYNC_GITHUB_CLIENT_ID for device-flow login.
DEFAULT_CLIENT_ID = "Iv1.memsync000000000"

TOKEN_ENV = "MEMSYNC_GITHUB_TOKEN"


@dataclass
class MemsyncConfig:
    """Paths and remote coordinates used by the store, auth and sync layers."""

    data_dir: Path
    repo_name: str = DEFAULT_REPO_NAME
    repo_owner: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    web_url: str = DEFAULT_WEB_URL
    client_id: str = DEFAULT_CLIENT_ID
    token_override: Optional[str] = None
    branch: str = DEFAULT_BRANCH
    commit_name: str = "memsync"
    commit_email: str = "memsync@users.noreply.github.com"
    log_level: str = "INFO"
    db_path: Path = field(default=None)  # type: ignore[assignment]
    repo_dir: Path = field(default=None)  # type: ignore[assignment]
    token_file: Path = field(default=None)  # type: ignore[assignment]

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.db_path is None:
            self.db_path = self.data_dir / "memories.db"
        if self.repo_dir is None:
            self.repo_dir = self.data_dir / "repo"
        if self.token_file is None:
            self.token_file = self.data_dir / "github-token.json"
        self.api_url = self.api_url.rstrip("/")
        self.web_url = self.web_url.rstrip("/")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MemsyncConfig":
        """Build a config from ``MEMSYNC_*`` environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            data_dir=get_memsync_home(env),
            repo_name=env.get("MEMSYNC_REPO_NAME") or DEFAULT_REPO_NAME,
            repo_owner=env.get("MEMSYNC_REPO_OWNER") or None,
            api_url=env.get("MEMSYNC_GITHUB_API") or DEFAULT_API_URL,
            client_id=env.get("MEMSYNC_GITHUB_CLIENT_ID") or DEFAULT_CLIENT_ID,
            token_override=env.get(TOKEN_ENV) or None,
            log_level=env.get("MEMSYNC_LOG_LEVEL") or "INFO",
        )
