# tests/test_audit.py

from __future__ import annotations

import pytest

from shikigami.audit.audit_store import UNKNOWN_ACTOR, AuditOperation
from shikigami.errors import InvalidArgumentError
from shikigami.tasks.task_models import CreateFudaInput


def test_entries_are_newest_first(state, make_fuda) -> None:
    f = make_fuda()
    state.fuda.set_status(f.id, "ready")
    state.fuda.set_priority(f.id, 4)

    entries = state.audit.query(f.id)
    assert [e.field for e in entries] == ["priority", "status", None]
    assert entries[0].old_value == "0"
    assert entries[0].new_value == "4"
    ids = [e.id for e in entries]
    assert ids == sorted(ids, reverse=True)


def test_missing_actor_falls_back_to_default(state) -> None:
    f = state.fuda.create(CreateFudaInput(title="No actor", description="created anonymously"))
    entry = state.audit.query(f.id)[0]
    assert entry.operation == AuditOperation.CREATE
    assert entry.actor == UNKNOWN_ACTOR


def test_limit_and_query_all(state, make_fuda) -> None:
    a = make_fuda(title="A")
    b = make_fuda(title="B")
    state.fuda.set_status(a.id, "ready")

    assert len(state.audit.query(a.id, limit=1)) == 1
    assert state.audit.query(a.id, limit=0) == []

    everything = state.audit.query_all()
    assert {e.fuda_id for e in everything} == {a.id, b.id}
    assert everything[0].fuda_id == a.id
    assert len(state.audit.query_all(limit=2)) == 2

    with pytest.raises(InvalidArgumentError):
        state.audit.query(a.id, limit=-1)


def test_failed_write_leaves_no_audit_entry(state, make_fuda) -> None:
    f = make_fuda()
    before = state.audit.query_all()

    with pytest.raises(InvalidArgumentError):
        state.fuda.set_status(f.id, "nope")
    with pytest.raises(InvalidArgumentError):
        state.deps.add_edge(f.id, "sk-x", "nope")

    assert state.audit.query_all() == before


def test_values_are_stored_as_text(state, make_fuda) -> None:
    f = make_fuda()
    state.audit.record(f.id, AuditOperation.UPDATE, field="retry_count", old_value=0, new_value=1, actor=" ")

    entry = state.audit.query(f.id, limit=1)[0]
    assert (entry.old_value, entry.new_value) == ("0", "1")
    assert entry.actor == UNKNOWN_ACTOR
