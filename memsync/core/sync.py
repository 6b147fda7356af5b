"""Synchronization operations for the memsync facade."""

import logging
import sqlite3
from typing import Any, Dict, Optional

from memsync.logging_config import log_import, log_sync
from memsync.protocols import DataIntegrityError, NotAuthenticatedError, RemoteUnavailableError
from memsync.types import now_ms

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = {"success": False, "error": "Not authenticated"}
NOT_CONFIGURED = {"success": False, "error": "Sync not configured"}


class SyncMixin:
    """Publish pending records to, and import records from, the backup repository.

    Expects ``self._storage``, ``self._credentials`` and ``self._sync`` on the
    host class.
    """

    def _sync_unavailable(self) -> Optional[Dict[str, Any]]:
        if not self._credentials.is_authenticated():
            return dict(NOT_AUTHENTICATED)
        if self._sync is None:
            return dict(NOT_CONFIGURED)
        return None

    def sync_to_github(self, include_profile_for: Optional[str] = None) -> Dict[str, Any]:
        """Push every pending record; mark them synced only once the push succeeded.

        Args:
            include_profile_for: Also export the profile snapshot of this tag.

        Returns:
            ``{"success": True, "synced": n}`` or ``{"success": False, "error": ...}``
        """
        blocked = self._sync_unavailable()
        if blocked:
            return blocked

        pending = self._storage.get_pending_sync()
        if not pending:
            return {"success": True, "synced": 0}

        profile = None
        if include_profile_for:
            profile = self._storage.get_profile(include_profile_for)

        try:
            outcome = self._sync.sync_to_github(pending, profile)
        except (NotAuthenticatedError, RemoteUnavailableError) as e:
            logger.warning(f"Sync to GitHub failed: {e}")
            log_sync("push", len(pending), False, str(e), data_dir=self._data_dir)
            return {"success": False, "error": str(e)}

        if outcome.success:
            self._storage.mark_synced([r.id for r in pending])
            self._storage.set_sync_state("last_push_at", str(now_ms()))
            self._remember_repo()
        log_sync("push", len(pending), outcome.success, outcome.error, data_dir=self._data_dir)
        return outcome.to_dict()

    def sync_from_github(self) -> Dict[str, Any]:
        """Merge the remote branch and import records whose id is not stored locally.

        Local records always win on an id collision.
        """
        blocked = self._sync_unavailable()
        if blocked:
            return blocked

        try:
            outcome = self._sync.pull_from_github()
        except (NotAuthenticatedError, RemoteUnavailableError) as e:
            logger.warning(f"Pull from GitHub failed: {e}")
            return {"success": False, "error": str(e)}

        if not outcome.success:
            log_sync("pull", 0, False, outcome.error, data_dir=self._data_dir)
            return outcome.to_dict()

        records = self._sync.import_memories()
        imported = 0
        for record in records:
            try:
                inserted = self._storage.import_memory(record)
            except (OverflowError, DataIntegrityError, sqlite3.IntegrityError) as e:
                logger.warning(f"Skipping remote memory {record.id}: {e}")
                continue
            if inserted:
                imported += 1

        outcome.imported = imported
        self._storage.set_sync_state("last_pull_at", str(now_ms()))
        self._remember_repo()
        log_import(imported, len(records) - imported, data_dir=self._data_dir)
        logger.info(f"Imported {imported} of {len(records)} remote memories")

        result = outcome.to_dict()
        result["total"] = len(records)
        return result

    def _remember_repo(self) -> None:
        full_name = getattr(self._sync, "full_name", None)
        if isinstance(full_name, str) and full_name:
            self._storage.set_sync_state("repo_full_name", full_name)

    def _sync_before_read(self) -> Dict[str, Any]:
        """Best-effort pull ahead of a read. Never raises for sync problems."""
        result = self.sync_from_github()
        if not result.get("success"):
            logger.debug(f"Pull before read skipped: {result.get('error')}")
        return result

    def get_sync_status(self) -> Dict[str, Any]:
        """Pending backlog, last successful publish and credential availability."""
        repo = self._storage.get_sync_state("repo_full_name")
        return {
            "pending": self._storage.get_pending_count(),
            "last_synced_at": self._storage.get_last_synced_at(),
            "authenticated": self._credentials.is_authenticated(),
            "repository": repo.value if repo else None,
        }
