"""Schema management for memsync storage.

- SCHEMA_VERSION and the allowed-table list
- Core DDL (memories, profiles, sync_state)
- FTS5 projection of memories with write-through triggers
- Migrations for databases created by earlier versions
"""

import logging
import os
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

ALLOWED_TABLES = frozenset({"memories", "profiles", "sync_state", "schema_version"})


def validate_table_name(table: str) -> str:
    """Reject table names that are not part of the schema."""
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    container_tag TEXT NOT NULL,
    metadata TEXT,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    synced_at INTEGER,
    sync_status TEXT NOT NULL DEFAULT 'pending'
);

CREATE TABLE IF NOT EXISTS profiles (
    id TEXT PRIMARY KEY,
    container_tag TEXT NOT NULL,
    fact TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'static',
    created_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS sync_state (
    key TEXT PRIMARY KEY,
    value TEXT,
    updated_at INTEGER
);

CREATE INDEX IF NOT EXISTS idx_memories_container ON memories(container_tag);
CREATE INDEX IF NOT EXISTS idx_memories_created ON memories(created_at);
CREATE INDEX IF NOT EXISTS idx_profiles_container ON profiles(container_tag);
"""

# External-content FTS5 table: the index stores no copy of the text, the
# triggers keep it aligned with memories.rowid on every write.
FTS_SCHEMA = """
CREATE VIRTUAL TABLE IF NOT EXISTS memories_fts USING fts5(
    content,
    container_tag,
    content=memories,
    content_rowid=rowid
);

CREATE TRIGGER IF NOT EXISTS memories_ai AFTER INSERT ON memories BEGIN
    INSERT INTO memories_fts(rowid, content, container_tag)
    VALUES (new.rowid, new.content, new.container_tag);
END;

CREATE TRIGGER IF NOT EXISTS memories_ad AFTER DELETE ON memories BEGIN
    INSERT INTO memories_fts(memories_fts, rowid, content, container_tag)
    VALUES ('delete', old.rowid, old.content, old.container_tag);
END;

CREATE TRIGGER IF NOT EXISTS memories_au AFTER UPDATE OF content, container_tag ON memories BEGIN
    INSERT INTO memories_fts(memories_fts, rowid, content, container_tag)
    VALUES ('delete', old.rowid, old.content, old.container_tag);
    INSERT INTO memories_fts(rowid, content, container_tag)
    VALUES (new.rowid, new.content, new.container_tag);
END;
"""


def init_db(conn: sqlite3.Connection, db_path: Path) -> None:
    """Create tables, the FTS projection, and run migrations.

    Args:
        conn: Open database connection.
        db_path: Path of the database file (for permission hardening).
    """
    conn.executescript(SCHEMA)
    migrate_schema(conn)
    ensure_memories_fts(conn)

    existing = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    if existing is None or existing < SCHEMA_VERSION:
        conn.execute("INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    conn.commit()

    # Owner read/write only
    try:
        os.chmod(db_path, 0o600)
    except OSError as e:
        logger.warning(f"Could not set secure permissions: {e}")


def ensure_memories_fts(conn: sqlite3.Connection) -> None:
    """Create the FTS5 table and triggers, rebuilding the index if it is new."""
    existed = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='memories_fts'"
    ).fetchone()

    # Triggers from version 1 used UPDATE/DELETE on the external-content
    # table, which corrupts the index. Replace them.
    conn.execute("DROP TRIGGER IF EXISTS memories_au")
    conn.execute("DROP TRIGGER IF EXISTS memories_ad")
    conn.executescript(FTS_SCHEMA)

    if existed is None:
        conn.execute("INSERT INTO memories_fts(memories_fts) VALUES('rebuild')")
        logger.info("Created memories_fts index")


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Add columns introduced after a database was first created."""

    def get_columns(table: str) -> set:
        validate_table_name(table)
        return {c[1] for c in conn.execute(f"PRAGMA table_info({table})").fetchall()}

    memory_cols = get_columns("memories")
    migrations = []
    if "synced_at" not in memory_cols:
        migrations.append("ALTER TABLE memories ADD COLUMN synced_at INTEGER")
    if "sync_status" not in memory_cols:
        migrations.append("ALTER TABLE memories ADD COLUMN sync_status TEXT NOT NULL DEFAULT 'pending'")

    for sql in migrations:
        logger.info(f"Migrating: {sql}")
        conn.execute(sql)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_sync_status ON memories(sync_status)")

    # synced_at must be set iff sync_status is synced
    conn.execute(
        "UPDATE memories SET synced_at = NULL WHERE sync_status != 'synced' AND synced_at IS NOT NULL"
    )
    conn.execute(
        "UPDATE memories SET synced_at = updated_at WHERE sync_status = 'synced' AND synced_at IS NULL"
    )
