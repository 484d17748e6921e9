# src/shikigami/ledger/ledger_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from enum import StrEnum

from ..db import Database, TableIds
from ..errors import InvalidArgumentError, NotFoundError
from ..tasks.ids import LEDGER_ID_PREFIX, generate_id
from ..tasks.task_models import parse_enum

logger = logging.getLogger(__name__)


class LedgerEntryType(StrEnum):
    HANDOFF = "handoff"
    LEARNING = "learning"

    @classmethod
    def parse(cls, raw: str | LedgerEntryType) -> LedgerEntryType:
        return parse_enum(cls, raw, "entry type")


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    id: str
    fuda_id: str
    entry_type: LedgerEntryType
    content: str
    spirit_id: str | None
    created_at: float


class LedgerStore:
    """
    Append-only notes attached to a fuda (handoffs, learnings).

    No state machine; entries are never edited.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> LedgerEntry:
        return LedgerEntry(
            id=row["id"],
            fuda_id=row["fuda_id"],
            entry_type=LedgerEntryType.parse(row["entry_type"]),
            content=row["content"],
            spirit_id=row["spirit_id"],
            created_at=float(row["created_at"]),
        )

    def add_entry(
        self,
        fuda_id: str,
        entry_type: LedgerEntryType | str,
        content: str,
        *,
        spirit_id: str | None = None,
    ) -> LedgerEntry:
        kind = LedgerEntryType.parse(entry_type)
        text = (content or "").strip()
        if not text:
            raise InvalidArgumentError("content is required")

        with self._db.connect(immediate=True) as conn:
            if conn.execute("SELECT 1 FROM fuda WHERE id = ?", (fuda_id,)).fetchone() is None:
                raise NotFoundError(fuda_id)
            entry_id = generate_id(TableIds(conn, "fuda_ledger"), prefix=LEDGER_ID_PREFIX)
            conn.execute(
                """
                INSERT INTO fuda_ledger (id, fuda_id, entry_type, content, spirit_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (entry_id, fuda_id, kind.value, text, spirit_id, time.time()),
            )
            row = conn.execute("SELECT * FROM fuda_ledger WHERE id = ?", (entry_id,)).fetchone()

        logger.debug("Ledger %s added to fuda=%s id=%s", kind.value, fuda_id, entry_id)
        return self._row_to_entry(row)

    def entries(self, fuda_id: str, entry_type: LedgerEntryType | str | None = None) -> list[LedgerEntry]:
        """Entries for one fuda, oldest first."""
        sql = "SELECT * FROM fuda_ledger WHERE fuda_id = ?"
        params: list[str] = [fuda_id]
        if entry_type is not None:
            sql += " AND entry_type = ?"
            params.append(LedgerEntryType.parse(entry_type).value)
        sql += " ORDER BY created_at ASC, rowid ASC"

        conn = self._db.get_conn()
        try:
            return [self._row_to_entry(r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()
