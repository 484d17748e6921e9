# src/shikigami/tasks/task_api.py

from __future__ import annotations

"""
Task-level operations over an AppState.

These are what a CLI, TUI or importer calls. They resolve user-typed id
prefixes, keep the readiness propagator in step with every event that can
free a fuda (creation, edge insertion, completion), and route lifecycle
changes through the state machine.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..audit.audit_store import AuditEntry
from ..core.state import AppState
from ..errors import InvalidStatusError
from ..ledger.ledger_store import LedgerEntry, LedgerEntryType
from .readiness import promote_ready
from .task_models import CreateFudaInput, Dependency, DependencyTree, DependencyType, Fuda, TaskStatus
from .tree import expand

logger = logging.getLogger(__name__)

_UNSET: object = object()


@dataclass(slots=True)
class StartResult:
    fuda: Fuda
    handoffs: list[LedgerEntry] = field(default_factory=list)
    learnings: list[LedgerEntry] = field(default_factory=list)


def refresh_ready(state: AppState, *, actor: str | None = None) -> list[str]:
    return promote_ready(state.fuda, state.deps, actor=actor)


def _transition(state: AppState, fuda_id: str, new_status: TaskStatus, *, actor: str | None) -> Fuda:
    current = state.fuda.get(fuda_id)
    if not current.status.can_transition_to(new_status):
        raise InvalidStatusError(
            fuda_id,
            current.status.value,
            f"Cannot move fuda {fuda_id} from '{current.status.value}' to '{new_status.value}'",
        )
    if not state.fuda.try_transition(fuda_id, expected=[current.status], new_status=new_status, actor=actor):
        # Someone else changed it between our read and the conditional write.
        latest = state.fuda.get(fuda_id)
        raise InvalidStatusError(fuda_id, latest.status.value)
    return state.fuda.get(fuda_id)


# ---- creation and edges ----

def add_fuda(
    state: AppState,
    data: CreateFudaInput,
    *,
    depends_on: Iterable[str] = (),
    dep_type: DependencyType | str = DependencyType.BLOCKS,
    actor: str | None = None,
) -> Fuda:
    """Create a fuda, attach its dependencies, then run readiness once."""
    # Everything that can reject the call is checked before the insert.
    kind = DependencyType.parse(dep_type)
    targets = [state.resolver.resolve(ref) for ref in depends_on]
    fuda = state.fuda.create(data, actor=actor)
    for target in targets:
        state.deps.add_edge(fuda.id, target, kind, actor=actor)
    refresh_ready(state, actor=actor)
    return state.fuda.get(fuda.id)


def add_dependency(
    state: AppState,
    fuda_ref: str,
    depends_on_ref: str,
    dep_type: DependencyType | str = DependencyType.BLOCKS,
    *,
    actor: str | None = None,
) -> Dependency:
    """
    Attach an edge, then re-check readiness on both sides.

    A READY fuda that gains a blocking edge to a live fuda not yet DONE goes
    back to BLOCKED. Fuda already past READY are left alone.
    """
    fuda_id = state.resolver.resolve(fuda_ref)
    target_id = state.resolver.resolve(depends_on_ref)
    edge = state.deps.add_edge(fuda_id, target_id, dep_type, actor=actor)
    if edge.is_blocking:
        target = state.fuda.find(target_id)
        if target is not None and target.status != TaskStatus.DONE:
            if state.fuda.try_transition(
                fuda_id,
                expected=[TaskStatus.READY],
                new_status=TaskStatus.BLOCKED,
                actor=actor,
            ):
                logger.info("Fuda %s blocked again by %s", fuda_id, target_id)
    refresh_ready(state, actor=actor)
    return edge


def remove_dependency(state: AppState, fuda_ref: str, depends_on_ref: str, *, actor: str | None = None) -> bool:
    fuda_id = state.resolver.resolve(fuda_ref)
    target_id = state.resolver.resolve(depends_on_ref, include_deleted=True)
    return state.deps.remove_edge(fuda_id, target_id, actor=actor)


def blocked_by(state: AppState, fuda_ref: str) -> list[Fuda]:
    """Live fuda that still block fuda_ref (blocking edges, target not DONE)."""
    fuda_id = state.resolver.resolve(fuda_ref)
    out: list[Fuda] = []
    for edge in state.deps.unresolved_blockers(fuda_id):
        target = state.fuda.find(edge.depends_on_id)
        if target is not None:
            out.append(target)
    return out


def dependency_tree(state: AppState, fuda_ref: str, *, max_depth: int | None = None) -> DependencyTree:
    fuda_id = state.resolver.resolve(fuda_ref)
    depth = state.tree_max_depth if max_depth is None else max_depth
    return expand(state.deps, fuda_id, depth)


# ---- lifecycle ----

def start_fuda(state: AppState, fuda_ref: str, *, spirit_id: str | None = None, actor: str | None = None) -> StartResult:
    """Claim a fuda and hand back the notes left by earlier spirits."""
    fuda_id = state.resolver.resolve(fuda_ref)
    claimed = state.claims.claim(fuda_id, spirit_id, actor=actor)
    return StartResult(
        fuda=claimed,
        handoffs=state.ledger.entries(fuda_id, LedgerEntryType.HANDOFF),
        learnings=state.ledger.entries(fuda_id, LedgerEntryType.LEARNING),
    )


def update_status(
    state: AppState,
    fuda_ref: str,
    status: TaskStatus | str,
    *,
    assigned_spirit_id: str | None | object = _UNSET,
    actor: str | None = None,
) -> Fuda:
    """
    Direct status edit (no state-machine check).

    assigned_spirit_id: leave unset to keep the assignment, "" or None to clear it.
    """
    new_status = TaskStatus.parse(status)
    fuda_id = state.resolver.resolve(fuda_ref)
    fuda = state.fuda.set_status(fuda_id, new_status, actor=actor)
    if assigned_spirit_id is not _UNSET:
        fuda = state.fuda.set_assignment(fuda_id, assigned_spirit_id or None, actor=actor)  # type: ignore[arg-type]
    if new_status == TaskStatus.DONE:
        refresh_ready(state, actor=actor)
    return fuda


def submit_for_review(state: AppState, fuda_ref: str, *, actor: str | None = None) -> Fuda:
    fuda_id = state.resolver.resolve(fuda_ref)
    return _transition(state, fuda_id, TaskStatus.IN_REVIEW, actor=actor)


def rework_fuda(state: AppState, fuda_ref: str, *, actor: str | None = None) -> Fuda:
    """IN_REVIEW / FAILED -> IN_PROGRESS."""
    fuda_id = state.resolver.resolve(fuda_ref)
    current = state.fuda.get(fuda_id)
    if current.status not in (TaskStatus.IN_REVIEW, TaskStatus.FAILED):
        raise InvalidStatusError(
            fuda_id,
            current.status.value,
            f"Only 'in_review' or 'failed' fuda can be reworked, {fuda_id} is '{current.status.value}'",
        )
    return _transition(state, fuda_id, TaskStatus.IN_PROGRESS, actor=actor)


def finish_fuda(
    state: AppState,
    fuda_ref: str,
    *,
    output_ref: str | None = None,
    handoff: str | None = None,
    actor: str | None = None,
) -> Fuda:
    """
    Mark DONE, record the optional artifact and handoff note, then re-run
    readiness so fuda waiting directly on this one can move to READY.
    """
    fuda_id = state.resolver.resolve(fuda_ref)
    done = _transition(state, fuda_id, TaskStatus.DONE, actor=actor)
    if output_ref:
        done = state.fuda.set_output_ref(fuda_id, output_ref, actor=actor)
    if handoff and handoff.strip():
        state.ledger.add_entry(fuda_id, LedgerEntryType.HANDOFF, handoff, spirit_id=done.assigned_spirit_id)

    freed = refresh_ready(state, actor=actor)
    logger.info("Fuda %s done; %d fuda became ready", fuda_id, len(freed))
    return done


def fail_fuda(
    state: AppState,
    fuda_ref: str,
    *,
    context: str | None = None,
    learning: str | None = None,
    actor: str | None = None,
) -> Fuda:
    """Mark FAILED, keep the failure context and bump retry_count."""
    fuda_id = state.resolver.resolve(fuda_ref)
    failed = _transition(state, fuda_id, TaskStatus.FAILED, actor=actor)
    if context:
        state.fuda.set_failure_context(fuda_id, context, actor=actor)
    state.fuda.increment_retry(fuda_id, actor=actor)
    if learning and learning.strip():
        state.ledger.add_entry(fuda_id, LedgerEntryType.LEARNING, learning, spirit_id=failed.assigned_spirit_id)
    logger.info("Fuda %s failed", fuda_id)
    return state.fuda.get(fuda_id)


# ---- deletion ----

def delete_fuda(
    state: AppState,
    fuda_ref: str,
    *,
    deleted_by: str | None = None,
    reason: str | None = None,
    actor: str | None = None,
) -> Fuda:
    fuda_id = state.resolver.resolve(fuda_ref)
    return state.fuda.soft_delete(fuda_id, deleted_by=deleted_by, reason=reason, actor=actor)


def restore_fuda(state: AppState, fuda_ref: str, *, actor: str | None = None) -> Fuda:
    fuda_id = state.resolver.resolve(fuda_ref, include_deleted=True)
    return state.fuda.restore(fuda_id, actor=actor)


def purge_fuda(state: AppState, fuda_ref: str, *, cascade_audit: bool = False, actor: str | None = None) -> str:
    fuda_id = state.resolver.resolve(fuda_ref, include_deleted=True)
    state.fuda.hard_delete(fuda_id, actor=actor, cascade_audit=cascade_audit)
    return fuda_id


# ---- history ----

def audit_log(state: AppState, fuda_ref: str, *, limit: int | None = None) -> list[AuditEntry]:
    fuda_id = state.resolver.resolve(fuda_ref, include_deleted=True)
    return state.audit.query(fuda_id, limit=limit)
