# src/shikigami/tasks/readiness.py

from __future__ import annotations

"""
Readiness propagation.

One pass over BLOCKED fuda: a fuda becomes READY when it has no blocking
edges, or when every blocking edge points at a DONE fuda. Edges whose target
is missing or soft-deleted are ignored.

The pass is deliberately not transitive. Completing a fuda can only free the
fuda that wait on it directly, so running promote_ready() once after every
completion (and after creation / edge insertion) is enough for chains to
unblock one level at a time. Call it per event, not on a timer.
"""

import logging

from ..core.ports import DependencyRepo, FudaRepo
from .task_models import TaskStatus

logger = logging.getLogger(__name__)


def _is_satisfied(fuda_repo: FudaRepo, dep_repo: DependencyRepo, fuda_id: str) -> bool:
    for edge in dep_repo.list_blocking(fuda_id):
        target = fuda_repo.find(edge.depends_on_id)
        if target is None:
            continue
        if target.status != TaskStatus.DONE:
            return False
    return True


def promote_ready(
    fuda_repo: FudaRepo,
    dep_repo: DependencyRepo,
    *,
    actor: str | None = None,
) -> list[str]:
    """
    Promote every eligible BLOCKED fuda to READY.

    Returns the promoted ids. Idempotent: a second call right after the
    first promotes nothing.
    """
    promoted: list[str] = []
    for fuda in fuda_repo.list_by_status(TaskStatus.BLOCKED):
        if not _is_satisfied(fuda_repo, dep_repo, fuda.id):
            continue
        # Conditional: a fuda claimed meanwhile must not be pulled back to READY.
        if fuda_repo.try_transition(
            fuda.id,
            expected=[TaskStatus.BLOCKED],
            new_status=TaskStatus.READY,
            actor=actor,
        ):
            promoted.append(fuda.id)

    if promoted:
        logger.info("Promoted %d fuda to ready: %s", len(promoted), ", ".join(promoted))
    return promoted
