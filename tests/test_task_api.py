# tests/test_task_api.py

from __future__ import annotations

import pytest

from shikigami.errors import InvalidArgumentError, InvalidStatusError, NotFoundError
from shikigami.tasks import task_api
from shikigami.tasks.task_models import CreateFudaInput, TaskStatus


def _add(state, title: str, *, depends_on=(), **kw):
    api_kw = {k: kw.pop(k) for k in ("dep_type",) if k in kw}
    return task_api.add_fuda(
        state,
        CreateFudaInput(title=title, description=f"{title} work", **kw),
        depends_on=depends_on,
        actor="planner",
        **api_kw,
    )


def test_add_fuda_with_dependencies(state) -> None:
    prd = _add(state, "PRD")
    assert prd.status == TaskStatus.READY

    impl = _add(state, "Implement", depends_on=[prd.id])
    assert impl.status == TaskStatus.BLOCKED
    assert [f.id for f in task_api.blocked_by(state, impl.id)] == [prd.id]


def test_add_fuda_with_unknown_dependency_creates_nothing(state) -> None:
    with pytest.raises(NotFoundError):
        _add(state, "Orphan", depends_on=["sk-none"])
    assert state.fuda.count_fuda() == 0


def test_add_fuda_with_invalid_edge_type_creates_nothing(state) -> None:
    b = _add(state, "B")
    with pytest.raises(InvalidArgumentError):
        _add(state, "A", depends_on=[b.id], dep_type="bogus")
    assert [f.id for f in state.fuda.list_fuda()] == [b.id]


def test_full_lifecycle_promotes_dependents(state) -> None:
    prd = _add(state, "PRD")
    impl = _add(state, "Implement", depends_on=[prd.id])

    started = task_api.start_fuda(state, prd.id, spirit_id="agent-1")
    assert started.fuda.status == TaskStatus.IN_PROGRESS
    assert started.handoffs == []

    task_api.submit_for_review(state, prd.id)
    done = task_api.finish_fuda(state, prd.id, output_ref="docs/prd.md", handoff="PRD lives in docs/prd.md")

    assert done.status == TaskStatus.DONE
    assert done.output_ref == "docs/prd.md"
    assert state.fuda.get(impl.id).status == TaskStatus.READY
    assert task_api.blocked_by(state, impl.id) == []


def test_fail_records_context_and_learning(state) -> None:
    f = _add(state, "Flaky")
    task_api.start_fuda(state, f.id, spirit_id="agent-1")

    failed = task_api.fail_fuda(state, f.id, context="timeout in step 3", learning="raise the step timeout")
    assert failed.status == TaskStatus.FAILED
    assert failed.failure_context == "timeout in step 3"
    assert failed.retry_count == 1

    # FAILED is not claimable; it goes back through rework.
    with pytest.raises(InvalidStatusError):
        task_api.start_fuda(state, f.id, spirit_id="agent-2")

    again = task_api.rework_fuda(state, f.id)
    assert again.status == TaskStatus.IN_PROGRESS
    assert again.retry_count == 1

    learnings = state.ledger.entries(f.id, "learning")
    assert [e.content for e in learnings] == ["raise the step timeout"]
    assert learnings[0].spirit_id == "agent-1"


def test_start_returns_handoff_notes(state) -> None:
    f = _add(state, "Continue me")
    state.ledger.add_entry(f.id, "handoff", "half done, see branch wip", spirit_id="agent-0")
    state.ledger.add_entry(f.id, "learning", "tests need a fresh db")

    result = task_api.start_fuda(state, f.id[3:], spirit_id="agent-1")
    assert [e.content for e in result.handoffs] == ["half done, see branch wip"]
    assert [e.content for e in result.learnings] == ["tests need a fresh db"]


def test_state_machine_rejects_skips(state) -> None:
    f = _add(state, "Skip ahead")

    with pytest.raises(InvalidStatusError):
        task_api.finish_fuda(state, f.id)
    with pytest.raises(InvalidStatusError):
        task_api.submit_for_review(state, f.id)
    with pytest.raises(InvalidStatusError):
        task_api.rework_fuda(state, f.id)
    assert state.fuda.get(f.id).status == TaskStatus.READY


def test_rework_from_review(state) -> None:
    f = _add(state, "Review me")
    task_api.start_fuda(state, f.id, spirit_id="agent-1")
    task_api.submit_for_review(state, f.id)

    reworked = task_api.rework_fuda(state, f.id)
    assert reworked.status == TaskStatus.IN_PROGRESS
    assert reworked.assigned_spirit_id == "agent-1"


def test_update_status_is_a_direct_edit(state) -> None:
    blocker = _add(state, "Blocker")
    waiting = _add(state, "Waiting", depends_on=[blocker.id])

    task_api.update_status(state, blocker.id, "in_progress", assigned_spirit_id="agent-9")
    assert state.fuda.get(blocker.id).assigned_spirit_id == "agent-9"

    task_api.update_status(state, blocker.id, TaskStatus.DONE, assigned_spirit_id=None)
    assert state.fuda.get(blocker.id).assigned_spirit_id is None
    assert state.fuda.get(waiting.id).status == TaskStatus.READY


def test_dependency_edits_through_prefixes(state, ids) -> None:
    ids.push("sk-aaaa", "sk-bbbb")
    a = _add(state, "A")
    b = _add(state, "B")
    assert a.status == TaskStatus.READY

    task_api.add_dependency(state, "aaaa", "bbbb")
    assert state.fuda.get(a.id).status == TaskStatus.BLOCKED

    tree = task_api.dependency_tree(state, "aaaa")
    assert [e.depends_on_id for e in tree.edges[a.id]] == [b.id]

    assert task_api.remove_dependency(state, "aaaa", "bbbb") is True
    assert task_api.remove_dependency(state, "aaaa", "bbbb") is False


def test_delete_restore_purge(state) -> None:
    f = _add(state, "Temp")

    task_api.delete_fuda(state, f.id, deleted_by="bob", reason="duplicate")
    with pytest.raises(NotFoundError):
        task_api.start_fuda(state, f.id, spirit_id="agent-1")

    restored = task_api.restore_fuda(state, f.id)
    assert restored.deleted_at is None

    purged = task_api.purge_fuda(state, f.id, cascade_audit=True)
    assert purged == f.id
    assert state.audit.query(f.id) == []


def test_rejected_finish_writes_nothing(state) -> None:
    f = _add(state, "Not started")
    before = state.audit.query(f.id)

    with pytest.raises(InvalidStatusError):
        task_api.finish_fuda(state, f.id, output_ref="artifact.txt", handoff="should not land")

    got = state.fuda.get(f.id)
    assert got.status == TaskStatus.READY
    assert got.output_ref is None
    assert state.audit.query(f.id) == before
    assert state.ledger.entries(f.id) == []


def _assert_ready_invariant(state) -> None:
    for f in state.fuda.list_by_status(TaskStatus.READY):
        for edge in state.deps.list_blocking(f.id):
            target = state.fuda.find(edge.depends_on_id)
            assert target is None or target.status == TaskStatus.DONE


def test_new_blocking_edge_sends_ready_fuda_back_to_blocked(state) -> None:
    a = _add(state, "A")
    b = _add(state, "B")
    task_api.start_fuda(state, b.id, spirit_id="agent-1")

    task_api.add_dependency(state, a.id, b.id)
    assert state.fuda.get(a.id).status == TaskStatus.BLOCKED
    _assert_ready_invariant(state)

    task_api.finish_fuda(state, b.id)
    assert state.fuda.get(a.id).status == TaskStatus.READY
    _assert_ready_invariant(state)


def test_edge_to_done_or_informational_keeps_ready(state) -> None:
    a = _add(state, "A")
    done = _add(state, "Done")
    other = _add(state, "Other")
    task_api.update_status(state, done.id, TaskStatus.DONE)

    task_api.add_dependency(state, a.id, done.id)
    task_api.add_dependency(state, a.id, other.id, "related")
    assert state.fuda.get(a.id).status == TaskStatus.READY


def test_new_edge_leaves_claimed_fuda_alone(state) -> None:
    a = _add(state, "A")
    b = _add(state, "B")
    task_api.start_fuda(state, a.id, spirit_id="agent-1")

    task_api.add_dependency(state, a.id, b.id)
    assert state.fuda.get(a.id).status == TaskStatus.IN_PROGRESS
