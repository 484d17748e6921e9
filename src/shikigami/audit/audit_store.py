# src/shikigami/audit/audit_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from enum import StrEnum

from ..db import Database
from ..errors import InvalidArgumentError

logger = logging.getLogger(__name__)

UNKNOWN_ACTOR = "unknown"


class AuditOperation(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    id: int
    fuda_id: str
    operation: AuditOperation
    field: str | None
    old_value: str | None
    new_value: str | None
    actor: str
    timestamp: float


def _to_text(value: object | None) -> str | None:
    if value is None:
        return None
    return str(value)


class AuditRecorder:
    """
    Append-only audit log.

    Stores write through record(...) and pass their own connection so the
    audit row commits together with the change it describes. Nothing here
    edits an entry after insertion; purge() exists only for hard-delete
    cascades.
    """

    def __init__(self, db: Database, *, default_actor: str = UNKNOWN_ACTOR) -> None:
        self._db = db
        self._default_actor = default_actor or UNKNOWN_ACTOR

    def record(
        self,
        fuda_id: str,
        operation: AuditOperation,
        *,
        field: str | None = None,
        old_value: object | None = None,
        new_value: object | None = None,
        actor: str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        if not fuda_id:
            raise InvalidArgumentError("fuda_id is required")
        params = (
            fuda_id,
            AuditOperation(operation).value,
            field,
            _to_text(old_value),
            _to_text(new_value),
            (actor or "").strip() or self._default_actor,
            time.time(),
        )
        sql = (
            "INSERT INTO audit_log (fuda_id, operation, field, old_value, new_value, actor, timestamp) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)"
        )
        if conn is not None:
            conn.execute(sql, params)
        else:
            with self._db.connect() as own:
                own.execute(sql, params)
        logger.debug("Audit fuda=%s op=%s field=%s", fuda_id, params[1], field)

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> AuditEntry:
        return AuditEntry(
            id=int(row["id"]),
            fuda_id=row["fuda_id"],
            operation=AuditOperation(row["operation"]),
            field=row["field"],
            old_value=row["old_value"],
            new_value=row["new_value"],
            actor=row["actor"],
            timestamp=float(row["timestamp"]),
        )

    @staticmethod
    def _limit_clause(limit: int | None) -> tuple[str, tuple[int, ...]]:
        if limit is None:
            return "", ()
        if int(limit) < 0:
            raise InvalidArgumentError("limit must be >= 0")
        return " LIMIT ?", (int(limit),)

    def query(self, fuda_id: str, *, limit: int | None = None) -> list[AuditEntry]:
        """Entries for one fuda, newest first."""
        clause, extra = self._limit_clause(limit)
        conn = self._db.get_conn()
        try:
            cur = conn.execute(
                f"SELECT * FROM audit_log WHERE fuda_id = ? ORDER BY timestamp DESC, id DESC{clause}",
                (fuda_id, *extra),
            )
            return [self._row_to_entry(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def query_all(self, *, limit: int | None = None) -> list[AuditEntry]:
        clause, extra = self._limit_clause(limit)
        conn = self._db.get_conn()
        try:
            cur = conn.execute(f"SELECT * FROM audit_log ORDER BY timestamp DESC, id DESC{clause}", extra)
            return [self._row_to_entry(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def purge(self, fuda_id: str, *, conn: sqlite3.Connection | None = None) -> int:
        """Remove every entry of a hard-deleted fuda. Returns rows removed."""
        if conn is not None:
            return conn.execute("DELETE FROM audit_log WHERE fuda_id = ?", (fuda_id,)).rowcount
        with self._db.connect() as own:
            return own.execute("DELETE FROM audit_log WHERE fuda_id = ?", (fuda_id,)).rowcount
