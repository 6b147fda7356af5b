"""Profile fact CRUD for memsync storage.

Profile facts are keyed by caller-supplied id with insert-or-replace
semantics. They carry no sync columns.
"""

import logging
import sqlite3
from typing import List

from memsync.types import VALID_PROFILE_TYPES, Profile, ProfileFact, ProfileType

logger = logging.getLogger(__name__)


def row_to_profile_fact(row: sqlite3.Row) -> ProfileFact:
    return ProfileFact(
        id=row["id"],
        container_tag=row["container_tag"],
        fact=row["fact"],
        type=ProfileType(row["type"]),
        created_at=row["created_at"],
    )


def add_profile_fact(
    conn: sqlite3.Connection,
    fact_id: str,
    container_tag: str,
    fact: str,
    fact_type: str,
    now: int,
) -> ProfileFact:
    """Insert or replace a profile fact."""
    if fact_type not in VALID_PROFILE_TYPES:
        raise ValueError(f"Invalid profile fact type (expected one of {sorted(VALID_PROFILE_TYPES)})")
    fact_type = ProfileType(fact_type).value

    conn.execute(
        """INSERT OR REPLACE INTO profiles (id, container_tag, fact, type, created_at)
           VALUES (?, ?, ?, ?, ?)""",
        (fact_id, container_tag, fact, fact_type, now),
    )
    return ProfileFact(
        id=fact_id,
        container_tag=container_tag,
        fact=fact,
        type=ProfileType(fact_type),
        created_at=now,
    )


def _facts_of_type(
    conn: sqlite3.Connection, container_tag: str, fact_type: ProfileType, limit: int
) -> List[str]:
    rows = conn.execute(
        """SELECT fact FROM profiles
           WHERE container_tag = ? AND type = ?
           ORDER BY created_at DESC, rowid DESC
           LIMIT ?""",
        (container_tag, fact_type.value, limit),
    ).fetchall()
    return [row["fact"] for row in rows]


def get_profile(conn: sqlite3.Connection, container_tag: str, max_items: int = 5) -> Profile:
    """Static and dynamic facts for a tag, each capped at ``max_items``."""
    return Profile(
        static=_facts_of_type(conn, container_tag, ProfileType.STATIC, max_items),
        dynamic=_facts_of_type(conn, container_tag, ProfileType.DYNAMIC, max_items),
    )


def list_profile_facts(conn: sqlite3.Connection, container_tag: str) -> List[ProfileFact]:
    rows = conn.execute(
        "SELECT * FROM profiles WHERE container_tag = ? ORDER BY created_at DESC, rowid DESC",
        (container_tag,),
    ).fetchall()
    return [row_to_profile_fact(row) for row in rows]


def delete_profile_fact(conn: sqlite3.Connection, fact_id: str) -> bool:
    cursor = conn.execute("DELETE FROM profiles WHERE id = ?", (fact_id,))
    return cursor.rowcount > 0
