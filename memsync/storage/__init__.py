"""memsync storage backends.

Local-first storage using SQLite with an FTS5 content index.
"""

from .schema import SCHEMA_VERSION
from .search_impl import build_match_query, merge_context, normalize_rank
from .sqlite import SQLiteStorage

__all__ = [
    "SCHEMA_VERSION",
    "SQLiteStorage",
    "build_match_query",
    "merge_context",
    "normalize_rank",
]
