"""MemoryClient: the single entry point for memsync callers.

Writes land in the local store as pending records; sync operations move them
to and from the backup repository. Callers get plain dict envelopes back and
never see which component served a request.
"""

import logging
import secrets
from pathlib import Path
from typing import Any, Dict, List, Optional

from memsync.config import MemsyncConfig
from memsync.core.sync import SyncMixin
from memsync.logging_config import log_save
from memsync.protocols import RemoteSync, TokenProvider
from memsync.storage import SQLiteStorage
from memsync.types import NEUTRAL_SIMILARITY, MemoryRecord

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_PROFILE_ITEMS = 5


def generate_id(prefix: str = "mem") -> str:
    """Random record id: ``<prefix>_<16 hex chars>``."""
    return f"{prefix}_{secrets.token_hex(8)}"


def _search_envelope(records: List[MemoryRecord]) -> Dict[str, Any]:
    return {
        "results": [
            {
                "id": r.id,
                "content": r.content,
                "similarity": r.score if r.score else NEUTRAL_SIMILARITY,
                "title": r.metadata.get("title"),
            }
            for r in records
        ],
        "total": len(records),
    }


class MemoryClient(SyncMixin):
    """Facade over the local store and the remote sync engine.

    Args:
        storage: Local SQLite store.
        credentials: Token provider consulted before any sync.
        sync_engine: Remote sync engine; sync operations report
            "Sync not configured" when omitted.
        data_dir: Directory for event logs (defaults to the database directory).
        pull_before_read: Pull from the remote before context reads.
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        credentials: TokenProvider,
        sync_engine: Optional[RemoteSync] = None,
        data_dir: Optional[Path] = None,
        pull_before_read: bool = False,
    ):
        self._storage = storage
        self._credentials = credentials
        self._sync = sync_engine
        self._data_dir = Path(data_dir) if data_dir else storage.db_path.parent
        self.pull_before_read = pull_before_read

    @classmethod
    def from_config(cls, config: Optional[MemsyncConfig] = None, **kwargs) -> "MemoryClient":
        """Assemble the default store, credential provider and GitHub sync engine."""
        from memsync.github import CredentialProvider, GitHubClient, GitHubSync

        config = config or MemsyncConfig.from_env()
        storage = SQLiteStorage(config.db_path)
        credentials = CredentialProvider(config.token_file, config.token_override)
        engine = GitHubSync(
            credentials,
            repo_dir=config.repo_dir,
            repo_name=config.repo_name,
            repo_owner=config.repo_owner,
            api=GitHubClient(credentials, config.api_url),
            web_url=config.web_url,
            branch=config.branch,
            commit_name=config.commit_name,
            commit_email=config.commit_email,
        )
        return cls(storage, credentials, engine, data_dir=config.data_dir, **kwargs)

    @property
    def storage(self) -> SQLiteStorage:
        return self._storage

    @property
    def credentials(self) -> TokenProvider:
        return self._credentials

    # === Memories ===

    def add_memory(
        self,
        content: str,
        container_tag: str,
        metadata: Optional[Dict[str, Any]] = None,
        custom_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Save a memory locally. Never touches the network."""
        memory_id = custom_id or generate_id("mem")
        self._storage.add_memory(memory_id, content, container_tag, metadata or {})
        log_save(container_tag, memory_id, content, data_dir=self._data_dir)
        return {"id": memory_id, "status": "saved", "containerTag": container_tag}

    def get_memory(self, memory_id: str) -> Optional[Dict[str, Any]]:
        record = self._storage.get_memory(memory_id)
        return record.to_dict() if record else None

    def update_memory(
        self, memory_id: str, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        record = self._storage.update_memory(memory_id, content, metadata)
        return {"id": record.id, "status": "updated", "containerTag": record.container_tag}

    def delete_memory(self, memory_id: str) -> Dict[str, Any]:
        self._storage.delete_memory(memory_id)
        return {"success": True}

    def list_memories(self, container_tag: str, limit: int = 20) -> Dict[str, Any]:
        return {"memories": [r.to_dict() for r in self._storage.list_memories(container_tag, limit)]}

    def search(
        self, query: str, container_tag: Optional[str] = None, limit: int = DEFAULT_SEARCH_LIMIT
    ) -> Dict[str, Any]:
        """Full-text search; ``{"results": [...], "total": n}``."""
        return _search_envelope(self._storage.search_memories(query, container_tag, limit))

    def get_context(
        self, container_tag: str, project_hint: str, limit: int = 10
    ) -> Dict[str, Any]:
        """Recent-plus-relevant memories for injecting into a new session."""
        if self.pull_before_read:
            self._sync_before_read()
        records = self._storage.get_context_memories(container_tag, project_hint, limit)
        return {"memories": [r.to_dict() for r in records], "total": len(records)}

    # === Profile ===

    def get_profile(
        self,
        container_tag: str,
        query: Optional[str] = None,
        max_items: int = DEFAULT_PROFILE_ITEMS,
    ) -> Dict[str, Any]:
        """Profile facts, plus a search envelope when ``query`` is given."""
        if self.pull_before_read:
            self._sync_before_read()
        profile = self._storage.get_profile(container_tag, max_items)
        search_results = None
        if query:
            search_results = self.search(query, container_tag, DEFAULT_SEARCH_LIMIT)
        return {"profile": profile.to_dict(), "searchResults": search_results}

    def add_profile_fact(
        self,
        container_tag: str,
        fact: str,
        fact_type: str = "static",
        fact_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        fact_id = fact_id or generate_id("fact")
        self._storage.add_profile_fact(fact_id, container_tag, fact, fact_type)
        return {"id": fact_id, "status": "saved", "containerTag": container_tag}

    def delete_profile_fact(self, fact_id: str) -> Dict[str, Any]:
        self._storage.delete_profile_fact(fact_id)
        return {"success": True}

    # === Status ===

    def get_status(self) -> Dict[str, Any]:
        """Local counts and sync backlog, for status displays."""
        status = self.get_sync_status()
        status["total"] = self._storage.count_memories()
        status["database"] = str(self._storage.db_path)
        repo_dir = getattr(self._sync, "repo_dir", None)
        status["checkout"] = str(repo_dir) if repo_dir else None
        return status

    def close(self) -> None:
        self._storage.close()

    def __enter__(self) -> "MemoryClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
