# src/shikigami/db.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path

logger = logging.getLogger(__name__)


class TableIds:
    """
    Container view of the primary keys of one table, on an open connection.

    `x in ids` runs a single indexed lookup, so id generation never loads
    the whole table.
    """

    def __init__(self, conn: sqlite3.Connection, table: str) -> None:
        self._conn = conn
        self._sql = f"SELECT 1 FROM {table} WHERE id = ?"

    def __contains__(self, candidate: object) -> bool:
        return self._conn.execute(self._sql, (str(candidate),)).fetchone() is not None


class Database:
    """
    Handle to the shiki SQLite file.

    Every store receives one of these in its constructor; nothing reads a
    global database. The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each operation opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = ".shiki/shiki.db", *, timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._timeout = float(timeout)
        self.fts_enabled = False
        self._ensure_schema()
        logger.info("Database ready db=%s fts=%s", self._db_path, self.fts_enabled)

    @property
    def path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- connections ----

    def get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def connect(self, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """
        One short unit of work: commit on success, roll back on error.

        immediate=True takes the write lock up front (BEGIN IMMEDIATE) so a
        read followed by a conditional write sees no interleaved writer.
        """
        conn = self.get_conn()
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ---- schema ----

    def _ensure_schema(self) -> None:
        conn = self.get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS fuda (
                    id                 TEXT PRIMARY KEY,
                    title              TEXT NOT NULL,
                    description        TEXT NOT NULL,
                    status             TEXT NOT NULL DEFAULT 'blocked',
                    worker_type        TEXT NOT NULL DEFAULT 'task',
                    assigned_spirit_id TEXT,
                    output_ref         TEXT,
                    retry_count        INTEGER NOT NULL DEFAULT 0,
                    failure_context    TEXT,
                    parent_task_id     TEXT,
                    group_id           TEXT,
                    priority           INTEGER NOT NULL DEFAULT 0,
                    created_at         REAL NOT NULL,
                    updated_at         REAL NOT NULL,
                    deleted_at         REAL,
                    deleted_by         TEXT,
                    delete_reason      TEXT
                )
                """
            )

            cur.execute("PRAGMA table_info(fuda)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE fuda ADD COLUMN {name} {decl}")
                logger.info("Database migration: added column fuda.%s", name)

            add_col("worker_type", "TEXT NOT NULL DEFAULT 'task'")
            add_col("output_ref", "TEXT")
            add_col("group_id", "TEXT")
            add_col("deleted_at", "REAL")
            add_col("deleted_by", "TEXT")
            add_col("delete_reason", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_fuda_status ON fuda(status, deleted_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_fuda_group ON fuda(group_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_fuda_priority ON fuda(priority DESC, created_at)")

            # Edges may point at deleted or missing fuda, so no foreign keys here.
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS fuda_dependencies (
                    fuda_id         TEXT NOT NULL,
                    depends_on_id   TEXT NOT NULL,
                    dependency_type TEXT NOT NULL DEFAULT 'blocks',
                    PRIMARY KEY (fuda_id, depends_on_id)
                )
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_deps_depends_on ON fuda_dependencies(depends_on_id)"
            )

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_log (
                    id        INTEGER PRIMARY KEY AUTOINCREMENT,
                    fuda_id   TEXT NOT NULL,
                    operation TEXT NOT NULL,
                    field     TEXT,
                    old_value TEXT,
                    new_value TEXT,
                    actor     TEXT NOT NULL,
                    timestamp REAL NOT NULL
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_audit_fuda_id ON audit_log(fuda_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp DESC)")

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS fuda_ledger (
                    id         TEXT PRIMARY KEY,
                    fuda_id    TEXT NOT NULL,
                    entry_type TEXT NOT NULL CHECK (entry_type IN ('handoff', 'learning')),
                    content    TEXT NOT NULL,
                    spirit_id  TEXT,
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_ledger_fuda_id ON fuda_ledger(fuda_id, entry_type)")

            conn.commit()
        finally:
            conn.close()

        self.fts_enabled = self._ensure_search_index()

    def _ensure_search_index(self) -> bool:
        """
        Derived FTS5 index over live fuda (title + description).

        Triggers keep it in step with inserts, edits, soft-delete/restore and
        hard-delete. Returns False when this SQLite build has no FTS5.
        """
        conn = self.get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'fuda_fts'")
            exists = cur.fetchone() is not None

            try:
                cur.execute("CREATE VIRTUAL TABLE IF NOT EXISTS fuda_fts USING fts5(id, title, description)")
            except sqlite3.OperationalError:
                logger.warning("SQLite has no FTS5 support; full-text search disabled db=%s", self._db_path)
                return False

            if not exists:
                cur.execute(
                    "INSERT INTO fuda_fts(id, title, description) "
                    "SELECT id, title, description FROM fuda WHERE deleted_at IS NULL"
                )
                logger.info("Database migration: built fuda_fts index")

            cur.execute(
                """
                CREATE TRIGGER IF NOT EXISTS fuda_fts_insert AFTER INSERT ON fuda
                WHEN NEW.deleted_at IS NULL
                BEGIN
                    INSERT INTO fuda_fts(id, title, description)
                    VALUES (NEW.id, NEW.title, NEW.description);
                END
                """
            )
            cur.execute(
                """
                CREATE TRIGGER IF NOT EXISTS fuda_fts_update
                AFTER UPDATE OF title, description, deleted_at ON fuda
                BEGIN
                    DELETE FROM fuda_fts WHERE id = OLD.id;
                    INSERT INTO fuda_fts(id, title, description)
                    SELECT NEW.id, NEW.title, NEW.description
                    WHERE NEW.deleted_at IS NULL;
                END
                """
            )
            cur.execute(
                """
                CREATE TRIGGER IF NOT EXISTS fuda_fts_delete AFTER DELETE ON fuda
                BEGIN
                    DELETE FROM fuda_fts WHERE id = OLD.id;
                END
                """
            )
            conn.commit()
            return True
        finally:
            conn.close()
