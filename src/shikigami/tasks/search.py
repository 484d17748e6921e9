# src/shikigami/tasks/search.py

from __future__ import annotations

import sqlite3

from ..db import Database
from ..errors import InvalidArgumentError
from .task_models import Fuda
from .task_store import FudaStore


def search_fuda(db: Database, query: str, *, limit: int = 50) -> list[Fuda]:
    """
    Full-text search over live fuda title/description (FTS5 MATCH syntax).

    The index is maintained by triggers in Database; soft-deleted rows are
    not in it.
    """
    q = (query or "").strip()
    if not q:
        raise InvalidArgumentError("search query is required")
    if not db.fts_enabled:
        raise InvalidArgumentError("full-text search is not available in this SQLite build")

    conn = db.get_conn()
    try:
        try:
            cur = conn.execute(
                """
                SELECT f.*
                FROM fuda_fts
                JOIN fuda f ON f.id = fuda_fts.id
                WHERE fuda_fts MATCH ?
                  AND f.deleted_at IS NULL
                ORDER BY fuda_fts.rank
                LIMIT ?
                """,
                (q, int(limit)),
            )
        except sqlite3.OperationalError as e:
            raise InvalidArgumentError(f"Invalid search query: {q!r} ({e})") from e
        return [FudaStore.row_to_fuda(r) for r in cur.fetchall()]
    finally:
        conn.close()


def indexed_ids(db: Database) -> set[str]:
    """Ids currently present in the search index."""
    if not db.fts_enabled:
        return set()
    conn = db.get_conn()
    try:
        return {r["id"] for r in conn.execute("SELECT id FROM fuda_fts").fetchall()}
    finally:
        conn.close()
