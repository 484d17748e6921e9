# tests/fakes.py

from __future__ import annotations

import time
from collections.abc import Container, Iterable
from dataclasses import dataclass, field, replace

from shikigami.tasks.ids import generate_id
from shikigami.tasks.task_models import Dependency, Fuda, TaskStatus, WorkerType


class QueuedIds:
    """
    Id factory for tests: hands out queued ids first, then random ones.
    """

    def __init__(self, *queued: str) -> None:
        self.queued: list[str] = list(queued)

    def push(self, *queued: str) -> None:
        self.queued.extend(queued)

    def __call__(self, existing: Container[str]) -> str:
        if self.queued:
            return self.queued.pop(0)
        return generate_id(existing)


def make_fuda(fuda_id: str, status: TaskStatus = TaskStatus.BLOCKED, **kw) -> Fuda:
    now = time.time()
    base = Fuda(
        id=fuda_id,
        title=f"title {fuda_id}",
        description=f"description {fuda_id}",
        status=status,
        worker_type=WorkerType.TASK,
        assigned_spirit_id=None,
        output_ref=None,
        retry_count=0,
        failure_context=None,
        parent_task_id=None,
        group_id=None,
        priority=0,
        created_at=now,
        updated_at=now,
    )
    return replace(base, **kw)


class FakeFudaRepo:
    """
    In-memory FudaRepo for propagation tests.

    Keeps tests purely about the promotion rules: no SQLite, no audit.
    """

    def __init__(self, fuda: Iterable[Fuda]) -> None:
        self.fuda = {f.id: f for f in fuda}
        self.transitions: list[tuple[str, TaskStatus]] = []

    def get(self, fuda_id: str, *, include_deleted: bool = False) -> Fuda:
        return self.fuda[fuda_id]

    def find(self, fuda_id: str) -> Fuda | None:
        f = self.fuda.get(fuda_id)
        if f is None or f.is_deleted:
            return None
        return f

    def list_by_status(self, status: TaskStatus) -> list[Fuda]:
        return [f for f in self.fuda.values() if f.status == status and not f.is_deleted]

    def ids_with_prefix(self, prefix: str, *, include_deleted: bool = False) -> list[str]:
        return sorted(
            fid for fid, f in self.fuda.items() if fid.startswith(prefix) and (include_deleted or not f.is_deleted)
        )

    def set_status(self, fuda_id: str, status: TaskStatus, *, actor: str | None = None) -> Fuda:
        self.fuda[fuda_id] = replace(self.fuda[fuda_id], status=status, updated_at=time.time())
        self.transitions.append((fuda_id, status))
        return self.fuda[fuda_id]

    def set_assignment(self, fuda_id: str, spirit_id: str | None, *, actor: str | None = None) -> Fuda:
        self.fuda[fuda_id] = replace(self.fuda[fuda_id], assigned_spirit_id=spirit_id)
        return self.fuda[fuda_id]

    def try_transition(self, fuda_id: str, *, expected, new_status, actor: str | None = None) -> bool:
        f = self.find(fuda_id)
        if f is None or f.status not in list(expected):
            return False
        self.set_status(fuda_id, new_status, actor=actor)
        return True


@dataclass(slots=True)
class FakeDependencyRepo:
    edges: list[Dependency] = field(default_factory=list)

    def list_all(self, task_id: str) -> list[Dependency]:
        return [e for e in self.edges if e.task_id == task_id]

    def list_blocking(self, task_id: str) -> list[Dependency]:
        return [e for e in self.edges if e.task_id == task_id and e.is_blocking]
