# src/shikigami/tasks/dependency_store.py

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from ..audit.audit_store import AuditOperation, AuditRecorder
from ..db import Database
from ..errors import InvalidArgumentError, NotFoundError
from .task_models import BLOCKING_TYPES, Dependency, DependencyType, TaskStatus

logger = logging.getLogger(__name__)

_BLOCKING_SQL = ",".join(f"'{t.value}'" for t in BLOCKING_TYPES)


@dataclass(frozen=True, slots=True)
class EdgePolicy:
    """
    Write-time rules for new edges.

    The defaults accept self-edges and edges whose endpoints are missing or
    soft-deleted, matching how existing databases were populated.
    """

    allow_self_edges: bool = True
    allow_dangling: bool = True


class DependencyStore:
    """
    Directed edges (fuda_id -> depends_on_id), one row per ordered pair.

    Re-adding a pair replaces its type. Edges are never cascaded when a fuda
    is deleted.
    """

    def __init__(self, db: Database, audit: AuditRecorder, *, policy: EdgePolicy | None = None) -> None:
        self._db = db
        self._audit = audit
        self.policy = policy or EdgePolicy()

    @staticmethod
    def _row_to_dependency(row: sqlite3.Row) -> Dependency:
        return Dependency(
            task_id=row["fuda_id"],
            depends_on_id=row["depends_on_id"],
            type=DependencyType.parse(row["dependency_type"]),
        )

    @staticmethod
    def _edge_label(depends_on_id: str, dep_type: str) -> str:
        return f"{depends_on_id}:{dep_type}"

    def _check_policy(self, conn: sqlite3.Connection, task_id: str, depends_on_id: str) -> None:
        if task_id == depends_on_id and not self.policy.allow_self_edges:
            raise InvalidArgumentError(f"Fuda {task_id} cannot depend on itself")
        if self.policy.allow_dangling:
            return
        for ref in (task_id, depends_on_id):
            row = conn.execute("SELECT 1 FROM fuda WHERE id = ? AND deleted_at IS NULL", (ref,)).fetchone()
            if row is None:
                raise NotFoundError(ref)

    def _select(self, sql: str, params: tuple[str, ...]) -> list[Dependency]:
        conn = self._db.get_conn()
        try:
            return [self._row_to_dependency(r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    # ---- writes ----

    def add_edge(
        self,
        task_id: str,
        depends_on_id: str,
        dep_type: DependencyType | str = DependencyType.BLOCKS,
        *,
        actor: str | None = None,
    ) -> Dependency:
        if not task_id or not depends_on_id:
            raise InvalidArgumentError("task_id and depends_on_id are required")
        kind = DependencyType.parse(dep_type)

        with self._db.connect() as conn:
            self._check_policy(conn, task_id, depends_on_id)
            prev = conn.execute(
                "SELECT dependency_type FROM fuda_dependencies WHERE fuda_id = ? AND depends_on_id = ?",
                (task_id, depends_on_id),
            ).fetchone()
            conn.execute(
                """
                INSERT INTO fuda_dependencies (fuda_id, depends_on_id, dependency_type)
                VALUES (?, ?, ?)
                ON CONFLICT(fuda_id, depends_on_id) DO UPDATE SET dependency_type = excluded.dependency_type
                """,
                (task_id, depends_on_id, kind.value),
            )
            if prev is None or prev["dependency_type"] != kind.value:
                self._audit.record(
                    task_id,
                    AuditOperation.UPDATE,
                    field="dependency",
                    old_value=self._edge_label(depends_on_id, prev["dependency_type"]) if prev else None,
                    new_value=self._edge_label(depends_on_id, kind.value),
                    actor=actor,
                    conn=conn,
                )

        logger.debug("Edge %s -> %s (%s)", task_id, depends_on_id, kind.value)
        return Dependency(task_id=task_id, depends_on_id=depends_on_id, type=kind)

    def remove_edge(self, task_id: str, depends_on_id: str, *, actor: str | None = None) -> bool:
        """Delete the edge if present. Returns False (no error) when absent."""
        with self._db.connect() as conn:
            prev = conn.execute(
                "SELECT dependency_type FROM fuda_dependencies WHERE fuda_id = ? AND depends_on_id = ?",
                (task_id, depends_on_id),
            ).fetchone()
            if prev is None:
                return False
            conn.execute(
                "DELETE FROM fuda_dependencies WHERE fuda_id = ? AND depends_on_id = ?",
                (task_id, depends_on_id),
            )
            self._audit.record(
                task_id,
                AuditOperation.UPDATE,
                field="dependency",
                old_value=self._edge_label(depends_on_id, prev["dependency_type"]),
                new_value=None,
                actor=actor,
                conn=conn,
            )
        logger.debug("Edge removed %s -> %s", task_id, depends_on_id)
        return True

    # ---- reads ----

    def list_all(self, task_id: str) -> list[Dependency]:
        return self._select(
            "SELECT * FROM fuda_dependencies WHERE fuda_id = ? ORDER BY depends_on_id",
            (task_id,),
        )

    def list_blocking(self, task_id: str) -> list[Dependency]:
        return self._select(
            f"SELECT * FROM fuda_dependencies WHERE fuda_id = ? AND dependency_type IN ({_BLOCKING_SQL}) "
            "ORDER BY depends_on_id",
            (task_id,),
        )

    def list_dependents(self, depends_on_id: str) -> list[Dependency]:
        """Edges pointing at depends_on_id (who waits on it)."""
        return self._select(
            "SELECT * FROM fuda_dependencies WHERE depends_on_id = ? ORDER BY fuda_id",
            (depends_on_id,),
        )

    def unresolved_blockers(self, task_id: str) -> list[Dependency]:
        """
        Blocking edges whose target is a live fuda not yet DONE.

        Targets that are missing or soft-deleted do not count.
        """
        return self._select(
            f"""
            SELECT fd.*
            FROM fuda_dependencies fd
            JOIN fuda f ON f.id = fd.depends_on_id
            WHERE fd.fuda_id = ?
              AND fd.dependency_type IN ({_BLOCKING_SQL})
              AND f.deleted_at IS NULL
              AND f.status != '{TaskStatus.DONE.value}'
            ORDER BY fd.depends_on_id
            """,
            (task_id,),
        )
