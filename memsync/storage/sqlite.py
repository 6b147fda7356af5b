"""SQLite storage backend for memsync.

Local-first storage with:
- SQLite (WAL) for memory records, profile facts and sync bookkeeping
- FTS5 projection of memory content kept current by triggers
- Pending/synced state per record for remote backup
"""

import contextlib
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from memsync.protocols import (
    ConstraintViolationError,
    DataIntegrityError,
    MemoryNotFoundError,
    StorageUnavailableError,
)
from memsync.types import (
    MemoryRecord,
    Profile,
    ProfileFact,
    SyncStateEntry,
    SyncStatus,
    now_ms,
)

from . import profiles_crud
from .schema import init_db
from .search_impl import fts_search, merge_context

logger = logging.getLogger(__name__)


def _require_fields(**fields: Any) -> None:
    missing = [name for name, value in fields.items() if value is None]
    if missing:
        raise ValueError(f"Missing required field(s): {', '.join(missing)}")


def _row_to_memory(row: sqlite3.Row) -> MemoryRecord:
    """Convert a memories row, decoding its metadata document."""
    record_id = row["id"]
    raw_meta = row["metadata"]
    if raw_meta in (None, ""):
        metadata: Dict[str, Any] = {}
    else:
        try:
            metadata = json.loads(raw_meta)
        except (TypeError, json.JSONDecodeError) as e:
            raise DataIntegrityError(
                f"Stored metadata for {record_id} is not valid JSON: {e}", record_id=record_id
            ) from e
        if metadata is None:
            metadata = {}
        elif not isinstance(metadata, dict):
            raise DataIntegrityError(
                f"Stored metadata for {record_id} is not an object", record_id=record_id
            )

    try:
        status = SyncStatus(row["sync_status"] or SyncStatus.PENDING.value)
    except ValueError as e:
        raise DataIntegrityError(
            f"Unknown sync status {row['sync_status']!r} for {record_id}", record_id=record_id
        ) from e

    return MemoryRecord(
        id=record_id,
        content=row["content"],
        container_tag=row["container_tag"],
        metadata=metadata,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        synced_at=row["synced_at"] if status == SyncStatus.SYNCED else None,
        sync_status=status,
    )


class SQLiteStorage:
    """SQLite-based local store for memory records.

    Connections are opened per operation and closed afterwards; the file is
    in WAL mode so one writer can coexist with readers.

    Args:
        db_path: Location of the database file. The parent directory is
            created if needed.
    """

    BUSY_TIMEOUT_MS = 5000

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._clock_lock = threading.Lock()
        self._last_ts = 0

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot create {self.db_path.parent}: {e}") from e

        self._init_db()

    # === Connection handling ===

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(f"PRAGMA busy_timeout={self.BUSY_TIMEOUT_MS}")
        except sqlite3.DatabaseError as e:
            raise StorageUnavailableError(f"Cannot open database {self.db_path}: {e}") from e
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Yield a connection; commit on success, roll back on error, always close.

        Storage-medium errors surface as StorageUnavailableError. Integrity
        errors pass through so callers can map them to their own meaning.
        """
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.DatabaseError as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise StorageUnavailableError(f"Database operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            init_db(conn, self.db_path)

    def close(self) -> None:
        """No persistent connection is held; kept for API symmetry."""
        pass

    def _now(self) -> int:
        """Epoch milliseconds, strictly increasing within this instance."""
        with self._clock_lock:
            ts = max(now_ms(), self._last_ts + 1)
            self._last_ts = ts
            return ts

    @staticmethod
    def _to_json(data: Optional[Dict[str, Any]]) -> str:
        return json.dumps(data if data is not None else {})

    # === Memories ===

    def add_memory(
        self,
        memory_id: str,
        content: str,
        container_tag: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MemoryRecord:
        """Insert a new pending record.

        Raises:
            ConstraintViolationError: if ``memory_id`` is already stored.
            ValueError: if ``content`` or ``container_tag`` is missing.
        """
        _require_fields(content=content, container_tag=container_tag)
        now = self._now()
        try:
            with self._connect() as conn:
                conn.execute(
                    """INSERT INTO memories
                       (id, content, container_tag, metadata, created_at, updated_at,
                        synced_at, sync_status)
                       VALUES (?, ?, ?, ?, ?, ?, NULL, ?)""",
                    (
                        memory_id,
                        content,
                        container_tag,
                        self._to_json(metadata),
                        now,
                        now,
                        SyncStatus.PENDING.value,
                    ),
                )
        except sqlite3.IntegrityError as e:
            if "UNIQUE constraint failed" not in str(e):
                raise
            raise ConstraintViolationError(memory_id) from e

        return MemoryRecord(
            id=memory_id,
            content=content,
            container_tag=container_tag,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )

    def import_memory(self, record: MemoryRecord) -> bool:
        """Insert a record received from the remote, unless the id exists locally.

        The imported row keeps its original timestamps and is stored as
        synced. Returns True if a row was inserted.
        """
        synced_at = self._now()
        with self._connect() as conn:
            cursor = conn.execute(
                """INSERT INTO memories
                   (id, content, container_tag, metadata, created_at, updated_at,
                    synced_at, sync_status)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO NOTHING""",
                (
                    record.id,
                    record.content,
                    record.container_tag,
                    self._to_json(record.metadata),
                    record.created_at or synced_at,
                    record.updated_at or record.created_at or synced_at,
                    synced_at,
                    SyncStatus.SYNCED.value,
                ),
            )
            return cursor.rowcount > 0

    def get_memory(self, memory_id: str) -> Optional[MemoryRecord]:
        """Return the record, or None if it is not stored."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM memories WHERE id = ?", (memory_id,)).fetchone()
        return _row_to_memory(row) if row else None

    def update_memory(
        self, memory_id: str, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> MemoryRecord:
        """Rewrite content (and metadata if given); the record becomes pending again.

        Raises:
            MemoryNotFoundError: if no record has ``memory_id``.
            ValueError: if ``content`` is missing.
        """
        _require_fields(content=content)
        now = self._now()
        sets = ["content = ?", "updated_at = ?", "sync_status = ?", "synced_at = NULL"]
        params: List[Any] = [content, now, SyncStatus.PENDING.value]
        if metadata is not None:
            sets.append("metadata = ?")
            params.append(self._to_json(metadata))
        params.append(memory_id)

        with self._connect() as conn:
            cursor = conn.execute(f"UPDATE memories SET {', '.join(sets)} WHERE id = ?", params)
            if cursor.rowcount == 0:
                raise MemoryNotFoundError(memory_id)
            row = conn.execute("SELECT * FROM memories WHERE id = ?", (memory_id,)).fetchone()
        return _row_to_memory(row)

    def delete_memory(self, memory_id: str) -> bool:
        """Remove a record and its index entry. Deleting a missing id is not an error."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            return cursor.rowcount > 0

    def list_memories(self, container_tag: str, limit: int = 20) -> List[MemoryRecord]:
        """Most recent records for a tag."""
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM memories
                   WHERE container_tag = ?
                   ORDER BY created_at DESC, rowid DESC
                   LIMIT ?""",
                (container_tag, limit),
            ).fetchall()
        return [_row_to_memory(row) for row in rows]

    def count_memories(self, container_tag: Optional[str] = None) -> int:
        with self._connect() as conn:
            if container_tag:
                return conn.execute(
                    "SELECT COUNT(*) FROM memories WHERE container_tag = ?", (container_tag,)
                ).fetchone()[0]
            return conn.execute("SELECT COUNT(*) FROM memories").fetchone()[0]

    # === Sync bookkeeping ===

    def get_pending_sync(self) -> List[MemoryRecord]:
        """All pending records across every tag, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM memories WHERE sync_status = ? ORDER BY created_at, rowid",
                (SyncStatus.PENDING.value,),
            ).fetchall()
        return [_row_to_memory(row) for row in rows]

    def get_pending_count(self) -> int:
        with self._connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM memories WHERE sync_status = ?",
                (SyncStatus.PENDING.value,),
            ).fetchone()[0]

    def get_last_synced_at(self) -> Optional[int]:
        with self._connect() as conn:
            return conn.execute(
                "SELECT MAX(synced_at) FROM memories WHERE synced_at IS NOT NULL"
            ).fetchone()[0]

    def mark_synced(self, ids: Iterable[str]) -> int:
        """Mark the given ids synced. Unknown ids are ignored."""
        ids = list(ids)
        if not ids:
            return 0
        now = self._now()
        with self._connect() as conn:
            placeholders = ",".join("?" * len(ids))
            cursor = conn.execute(
                f"""UPDATE memories SET sync_status = ?, synced_at = ?
                    WHERE id IN ({placeholders})""",
                [SyncStatus.SYNCED.value, now, *ids],
            )
            return cursor.rowcount

    def get_sync_state(self, key: str) -> Optional[SyncStateEntry]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT key, value, updated_at FROM sync_state WHERE key = ?", (key,)
            ).fetchone()
        if not row:
            return None
        return SyncStateEntry(key=row["key"], value=row["value"], updated_at=row["updated_at"])

    def set_sync_state(self, key: str, value: Optional[str]) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, self._now()),
            )

    # === Search ===

    def search_memories(
        self, query: str, container_tag: Optional[str] = None, limit: int = 10
    ) -> List[MemoryRecord]:
        """Full-text search over content, best match first.

        Each result carries ``score`` in (0, 1), higher is better, or None
        when the index produced no usable rank.
        """
        with self._connect() as conn:
            return fts_search(conn, query, container_tag, limit, _row_to_memory)

    def get_context_memories(
        self, container_tag: str, project_hint: str, limit: int = 10
    ) -> List[MemoryRecord]:
        """Recent records for the tag followed by records relevant to ``project_hint``.

        The recency half gets the larger share of an odd ``limit``.
        """
        if limit <= 0:
            return []
        relevant_budget = limit // 2
        recent_budget = limit - relevant_budget

        recent = self.list_memories(container_tag, recent_budget)
        relevant: List[MemoryRecord] = []
        if relevant_budget and project_hint:
            relevant = self.search_memories(project_hint, container_tag, relevant_budget)
        return merge_context(recent, relevant, limit)

    # === Profile facts ===

    def add_profile_fact(
        self, fact_id: str, container_tag: str, fact: str, fact_type: str = "static"
    ) -> ProfileFact:
        with self._connect() as conn:
            return profiles_crud.add_profile_fact(
                conn, fact_id, container_tag, fact, fact_type, self._now()
            )

    def get_profile(self, container_tag: str, max_items: int = 5) -> Profile:
        with self._connect() as conn:
            return profiles_crud.get_profile(conn, container_tag, max_items)

    def list_profile_facts(self, container_tag: str) -> List[ProfileFact]:
        with self._connect() as conn:
            return profiles_crud.list_profile_facts(conn, container_tag)

    def delete_profile_fact(self, fact_id: str) -> bool:
        with self._connect() as conn:
            return profiles_crud.delete_profile_fact(conn, fact_id)
