"""Full-text search helpers extracted from SQLiteStorage.

Contains FTS5 query preparation, rank normalisation and the hybrid
recent-plus-relevant merge used for context retrieval. All functions are
pure or take an open connection so they can be tested on their own.
"""

import logging
import re
import sqlite3
from typing import Callable, List, Optional

from memsync.types import RECENT_SCORE, MemoryRecord

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def build_match_query(query: str, column: Optional[str] = None) -> Optional[str]:
    """Turn free text into a safe FTS5 MATCH expression.

    Each word becomes a quoted term (optionally restricted to ``column``) and
    terms are ANDed, so punctuation in user input never reaches the FTS5
    query parser. Returns None when the query has no searchable words.
    """
    tokens = _TOKEN_RE.findall(query or "")
    if not tokens:
        return None
    prefix = f"{column}:" if column else ""
    return " ".join(f'{prefix}"{t}"' for t in tokens)


def normalize_rank(rank: Optional[float]) -> Optional[float]:
    """Map an FTS5 rank (more negative is better) onto (0, 1), higher is better."""
    if rank is None:
        return None
    relevance = -float(rank)
    if relevance <= 0:
        return None
    return relevance / (1.0 + relevance)


def fts_search(
    conn: sqlite3.Connection,
    query: str,
    container_tag: Optional[str],
    limit: int,
    row_converter: Callable[[sqlite3.Row], MemoryRecord],
) -> List[MemoryRecord]:
    """Ranked FTS5 match against memory content, optionally scoped to a tag."""
    match = build_match_query(query, column="content")
    if match is None or limit <= 0:
        return []

    sql = """
        SELECT m.*, f.rank AS fts_rank
        FROM memories_fts f
        JOIN memories m ON f.rowid = m.rowid
        WHERE memories_fts MATCH ?
    """
    params: list = [match]
    if container_tag:
        sql += " AND m.container_tag = ?"
        params.append(container_tag)
    sql += " ORDER BY f.rank LIMIT ?"
    params.append(limit)

    rows = conn.execute(sql, params).fetchall()
    results = []
    for row in rows:
        record = row_converter(row)
        record.score = normalize_rank(row["fts_rank"])
        results.append(record)
    return results


def merge_context(
    recent: List[MemoryRecord], relevant: List[MemoryRecord], limit: int
) -> List[MemoryRecord]:
    """Recent records first, then relevant ones not already present.

    Recent records carry the maximum score; on an id collision the recent
    copy wins.
    """
    seen = set()
    combined: List[MemoryRecord] = []
    for record in recent:
        record.score = RECENT_SCORE
        seen.add(record.id)
        combined.append(record)
    for record in relevant:
        if record.id in seen:
            continue
        seen.add(record.id)
        combined.append(record)
    return combined[:limit]
