# src/shikigami/tasks/task_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Container, Iterable
from typing import Any

from ..audit.audit_store import AuditOperation, AuditRecorder
from ..db import Database, TableIds
from ..errors import InvalidArgumentError, NotFoundError
from .ids import generate_id
from .task_models import CLAIMABLE_STATUSES, CreateFudaInput, Fuda, TaskStatus, WorkerType

logger = logging.getLogger(__name__)

IdFactory = Callable[[Container[str]], str]

_ORDER = "ORDER BY priority DESC, created_at ASC"


class FudaStore:
    """
    SQLite fuda store.

    Owns fuda rows and their status. Every mutation:
    - runs in one short transaction
    - bumps updated_at
    - writes its audit entry in that same transaction

    Soft-deleted rows are invisible to every read unless include_deleted=True.
    """

    def __init__(
        self,
        db: Database,
        audit: AuditRecorder,
        *,
        id_factory: IdFactory = generate_id,
    ) -> None:
        self._db = db
        self._audit = audit
        self._id_factory = id_factory
        try:
            total = self.count_fuda()
        except sqlite3.Error:
            total = -1
        logger.info("FudaStore ready db=%s total=%s", db.path, total)

    # ---- low-level helpers ----

    @staticmethod
    def row_to_fuda(row: sqlite3.Row) -> Fuda:
        return Fuda(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            status=TaskStatus.parse(row["status"]),
            worker_type=WorkerType.parse(row["worker_type"] or WorkerType.TASK),
            assigned_spirit_id=row["assigned_spirit_id"],
            output_ref=row["output_ref"],
            retry_count=int(row["retry_count"] or 0),
            failure_context=row["failure_context"],
            parent_task_id=row["parent_task_id"],
            group_id=row["group_id"],
            priority=int(row["priority"] or 0),
            created_at=float(row["created_at"]),
            updated_at=float(row["updated_at"]),
            deleted_at=float(row["deleted_at"]) if row["deleted_at"] is not None else None,
            deleted_by=row["deleted_by"],
            delete_reason=row["delete_reason"],
        )

    @staticmethod
    def _fetch_row(conn: sqlite3.Connection, fuda_id: str, *, include_deleted: bool = False) -> sqlite3.Row | None:
        where = "" if include_deleted else " AND deleted_at IS NULL"
        cur = conn.execute(f"SELECT * FROM fuda WHERE id = ?{where}", (fuda_id,))
        return cur.fetchone()

    def _require_row(
        self, conn: sqlite3.Connection, fuda_id: str, *, include_deleted: bool = False
    ) -> sqlite3.Row:
        row = self._fetch_row(conn, fuda_id, include_deleted=include_deleted)
        if row is None:
            raise NotFoundError(fuda_id)
        return row

    @staticmethod
    def _next_updated_at(row: sqlite3.Row) -> float:
        # Never step backwards, even if the wall clock does.
        return max(time.time(), float(row["updated_at"]))

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[Fuda]:
        conn = self._db.get_conn()
        try:
            cur = conn.execute(sql, params)
            return [self.row_to_fuda(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def _update_field(self, fuda_id: str, column: str, value: Any, *, actor: str | None) -> Fuda:
        with self._db.connect() as conn:
            row = self._require_row(conn, fuda_id)
            conn.execute(
                f"UPDATE fuda SET {column} = ?, updated_at = ? WHERE id = ?",
                (value, self._next_updated_at(row), fuda_id),
            )
            self._audit.record(
                fuda_id,
                AuditOperation.UPDATE,
                field=column,
                old_value=row[column],
                new_value=value,
                actor=actor,
                conn=conn,
            )
            updated = self._require_row(conn, fuda_id)
        logger.debug("Fuda %s %s=%s", fuda_id, column, value)
        return self.row_to_fuda(updated)

    # ---- reads ----

    def count_fuda(self, *, include_deleted: bool = False) -> int:
        where = "" if include_deleted else " WHERE deleted_at IS NULL"
        conn = self._db.get_conn()
        try:
            (n,) = conn.execute(f"SELECT COUNT(*) FROM fuda{where}").fetchone()
            return int(n)
        finally:
            conn.close()

    def get(self, fuda_id: str, *, include_deleted: bool = False) -> Fuda:
        conn = self._db.get_conn()
        try:
            return self.row_to_fuda(self._require_row(conn, fuda_id, include_deleted=include_deleted))
        finally:
            conn.close()

    def find(self, fuda_id: str) -> Fuda | None:
        """Live fuda or None; used where a missing target is not an error."""
        conn = self._db.get_conn()
        try:
            row = self._fetch_row(conn, fuda_id)
            return self.row_to_fuda(row) if row else None
        finally:
            conn.close()

    def list_fuda(self, *, limit: int | None = None) -> list[Fuda]:
        if limit is None:
            return self._query(f"SELECT * FROM fuda WHERE deleted_at IS NULL {_ORDER}")
        return self._query(f"SELECT * FROM fuda WHERE deleted_at IS NULL {_ORDER} LIMIT ?", (int(limit),))

    def list_by_status(self, status: TaskStatus | str) -> list[Fuda]:
        st = TaskStatus.parse(status)
        return self._query(f"SELECT * FROM fuda WHERE status = ? AND deleted_at IS NULL {_ORDER}", (st.value,))

    def list_ready(self, *, limit: int | None = None) -> list[Fuda]:
        ready = self.list_by_status(TaskStatus.READY)
        return ready if limit is None else ready[: int(limit)]

    def list_by_group(self, group_id: str) -> list[Fuda]:
        return self._query(f"SELECT * FROM fuda WHERE group_id = ? AND deleted_at IS NULL {_ORDER}", (group_id,))

    def list_deleted(self) -> list[Fuda]:
        return self._query("SELECT * FROM fuda WHERE deleted_at IS NOT NULL ORDER BY deleted_at DESC")

    def ids_with_prefix(self, prefix: str, *, include_deleted: bool = False) -> list[str]:
        """Ids that start with prefix (case-sensitive, no wildcards)."""
        where = "" if include_deleted else " AND deleted_at IS NULL"
        conn = self._db.get_conn()
        try:
            cur = conn.execute(
                f"SELECT id FROM fuda WHERE substr(id, 1, ?) = ?{where} ORDER BY id",
                (len(prefix), prefix),
            )
            return [r["id"] for r in cur.fetchall()]
        finally:
            conn.close()

    # ---- create ----

    def create(self, data: CreateFudaInput, *, actor: str | None = None) -> Fuda:
        """
        Insert a new fuda with status BLOCKED.

        Readiness is not computed here: callers attach dependencies first and
        then run the readiness propagator.
        """
        title = (data.title or "").strip()
        description = (data.description or "").strip()
        if not title:
            raise InvalidArgumentError("title is required")
        if not description:
            raise InvalidArgumentError("description is required")
        worker_type = WorkerType.parse(data.worker_type)
        try:
            priority = int(data.priority)
        except (TypeError, ValueError):
            raise InvalidArgumentError(f"priority must be an integer, got {data.priority!r}") from None

        now = time.time()
        with self._db.connect(immediate=True) as conn:
            existing = TableIds(conn, "fuda")
            fuda_id = self._id_factory(existing)
            if fuda_id in existing:
                raise InvalidArgumentError(f"id factory returned an id already in use: {fuda_id}")

            conn.execute(
                """
                INSERT INTO fuda(
                    id, title, description, status, worker_type,
                    retry_count, parent_task_id, group_id, priority,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?)
                """,
                (
                    fuda_id,
                    title,
                    description,
                    TaskStatus.BLOCKED.value,
                    worker_type.value,
                    data.parent_task_id,
                    data.group_id,
                    priority,
                    now,
                    now,
                ),
            )
            self._audit.record(fuda_id, AuditOperation.CREATE, actor=actor, conn=conn)
            row = self._require_row(conn, fuda_id)

        logger.info("Fuda created id=%s worker=%s priority=%s", fuda_id, worker_type.value, priority)
        return self.row_to_fuda(row)

    # ---- field updates ----

    def set_status(self, fuda_id: str, status: TaskStatus | str, *, actor: str | None = None) -> Fuda:
        """Unconditional status write; state-machine checks belong to the caller."""
        new_status = TaskStatus.parse(status)
        return self._update_field(fuda_id, "status", new_status.value, actor=actor)

    def set_assignment(self, fuda_id: str, spirit_id: str | None, *, actor: str | None = None) -> Fuda:
        spirit = (spirit_id or "").strip() or None
        return self._update_field(fuda_id, "assigned_spirit_id", spirit, actor=actor)

    def set_output_ref(self, fuda_id: str, output_ref: str | None, *, actor: str | None = None) -> Fuda:
        return self._update_field(fuda_id, "output_ref", output_ref, actor=actor)

    def set_failure_context(self, fuda_id: str, context: str | None, *, actor: str | None = None) -> Fuda:
        return self._update_field(fuda_id, "failure_context", context, actor=actor)

    def set_priority(self, fuda_id: str, priority: int, *, actor: str | None = None) -> Fuda:
        return self._update_field(fuda_id, "priority", int(priority), actor=actor)

    # ---- conditional transitions ----

    def try_transition(
        self,
        fuda_id: str,
        *,
        expected: Iterable[TaskStatus],
        new_status: TaskStatus | str,
        actor: str | None = None,
    ) -> bool:
        """
        Compare-and-swap on status.

        Atomically transitions:
          status IN expected -> status = new_status

        Returns True if this caller made the change.
        """
        target = TaskStatus.parse(new_status)
        exp = [TaskStatus.parse(e).value for e in expected]
        if not exp:
            return False

        placeholders = ",".join("?" for _ in exp)
        with self._db.connect(immediate=True) as conn:
            row = self._fetch_row(conn, fuda_id)
            if row is None:
                return False
            cur = conn.execute(
                f"""
                UPDATE fuda
                SET status = ?, updated_at = ?
                WHERE id = ?
                  AND deleted_at IS NULL
                  AND status IN ({placeholders})
                """,
                (target.value, self._next_updated_at(row), fuda_id, *exp),
            )
            if cur.rowcount != 1:
                return False
            self._audit.record(
                fuda_id,
                AuditOperation.UPDATE,
                field="status",
                old_value=row["status"],
                new_value=target.value,
                actor=actor,
                conn=conn,
            )
        return True

    def try_claim(self, fuda_id: str, spirit_id: str | None, *, actor: str | None = None) -> Fuda | None:
        """
        Hand a claimable fuda to a spirit in a single conditioned UPDATE.

        Returns the updated fuda, or None when the row was not in a claimable
        state (the caller decides which error that is).
        """
        spirit = (spirit_id or "").strip() or None
        claimable = [s.value for s in CLAIMABLE_STATUSES]
        placeholders = ",".join("?" for _ in claimable)

        with self._db.connect(immediate=True) as conn:
            row = self._fetch_row(conn, fuda_id)
            if row is None:
                return None
            cur = conn.execute(
                f"""
                UPDATE fuda
                SET status = ?, assigned_spirit_id = ?, updated_at = ?
                WHERE id = ?
                  AND deleted_at IS NULL
                  AND status IN ({placeholders})
                """,
                (TaskStatus.IN_PROGRESS.value, spirit, self._next_updated_at(row), fuda_id, *claimable),
            )
            if cur.rowcount != 1:
                return None
            self._audit.record(
                fuda_id,
                AuditOperation.UPDATE,
                field="status",
                old_value=row["status"],
                new_value=TaskStatus.IN_PROGRESS.value,
                actor=actor or spirit,
                conn=conn,
            )
            self._audit.record(
                fuda_id,
                AuditOperation.UPDATE,
                field="assigned_spirit_id",
                old_value=row["assigned_spirit_id"],
                new_value=spirit,
                actor=actor or spirit,
                conn=conn,
            )
            updated = self._require_row(conn, fuda_id)
        return self.row_to_fuda(updated)

    def increment_retry(self, fuda_id: str, *, actor: str | None = None) -> int:
        with self._db.connect() as conn:
            row = self._require_row(conn, fuda_id)
            old = int(row["retry_count"] or 0)
            conn.execute(
                "UPDATE fuda SET retry_count = retry_count + 1, updated_at = ? WHERE id = ?",
                (self._next_updated_at(row), fuda_id),
            )
            self._audit.record(
                fuda_id,
                AuditOperation.UPDATE,
                field="retry_count",
                old_value=old,
                new_value=old + 1,
                actor=actor,
                conn=conn,
            )
        return old + 1

    # ---- deletion ----

    def soft_delete(
        self,
        fuda_id: str,
        *,
        deleted_by: str | None = None,
        reason: str | None = None,
        actor: str | None = None,
    ) -> Fuda:
        with self._db.connect() as conn:
            row = self._require_row(conn, fuda_id)
            conn.execute(
                """
                UPDATE fuda
                SET deleted_at = ?, deleted_by = ?, delete_reason = ?, updated_at = ?
                WHERE id = ? AND deleted_at IS NULL
                """,
                (time.time(), deleted_by, reason, self._next_updated_at(row), fuda_id),
            )
            self._audit.record(
                fuda_id,
                AuditOperation.DELETE,
                new_value=reason,
                actor=actor or deleted_by,
                conn=conn,
            )
            updated = self._require_row(conn, fuda_id, include_deleted=True)
        logger.info("Fuda soft-deleted id=%s by=%s", fuda_id, deleted_by)
        return self.row_to_fuda(updated)

    def restore(self, fuda_id: str, *, actor: str | None = None) -> Fuda:
        """Clear the deletion triple. Restoring a live fuda changes nothing."""
        with self._db.connect() as conn:
            row = self._require_row(conn, fuda_id, include_deleted=True)
            if row["deleted_at"] is None:
                return self.row_to_fuda(row)
            conn.execute(
                """
                UPDATE fuda
                SET deleted_at = NULL, deleted_by = NULL, delete_reason = NULL, updated_at = ?
                WHERE id = ?
                """,
                (self._next_updated_at(row), fuda_id),
            )
            self._audit.record(
                fuda_id,
                AuditOperation.UPDATE,
                field="deleted_at",
                old_value="(deleted)",
                new_value="(restored)",
                actor=actor,
                conn=conn,
            )
            updated = self._require_row(conn, fuda_id)
        logger.info("Fuda restored id=%s", fuda_id)
        return self.row_to_fuda(updated)

    def hard_delete(self, fuda_id: str, *, actor: str | None = None, cascade_audit: bool = False) -> None:
        """
        Physically remove the row (live or soft-deleted).

        The search index row goes with it (trigger). Dependency edges stay.
        Audit entries stay unless cascade_audit=True.
        """
        with self._db.connect() as conn:
            self._require_row(conn, fuda_id, include_deleted=True)
            if cascade_audit:
                self._audit.purge(fuda_id, conn=conn)
            else:
                self._audit.record(fuda_id, AuditOperation.DELETE, field="hard_delete", actor=actor, conn=conn)
            conn.execute("DELETE FROM fuda WHERE id = ?", (fuda_id,))
        logger.info("Fuda hard-deleted id=%s cascade_audit=%s", fuda_id, cascade_audit)
