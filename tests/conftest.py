# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from shikigami.bootstrap import create_initial_state
from shikigami.core.state import AppState
from shikigami.tasks.task_models import CreateFudaInput, Fuda

from .fakes import QueuedIds


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Settings stand-in for bootstrap, rooted in tmp_path.

    A SimpleNamespace keeps tests independent of SHIKI_* variables and .env.
    """
    return SimpleNamespace(
        data_dir=tmp_path / ".shiki",
        db_path=tmp_path / ".shiki" / "shiki.db",
        log_dir=tmp_path / ".shiki" / "logs",
        default_actor="unknown",
        sqlite_timeout=30.0,
        tree_max_depth=10,
        allow_self_edges=True,
        allow_dangling_edges=True,
    )


@pytest.fixture()
def ids() -> QueuedIds:
    """Deterministic ids; falls back to random ones once the queue is empty."""
    return QueuedIds()


@pytest.fixture()
def state(settings: SimpleNamespace, ids: QueuedIds) -> AppState:
    """
    AppState over a real SQLite file in tmp_path.

    The stores' SQL is part of what we want to test, so no fakes here.
    """
    st = create_initial_state(settings=settings, id_factory=ids)
    yield st
    st.close()


@pytest.fixture()
def make_fuda(state: AppState):
    def _make(title: str = "Write docs", description: str = "Document the engine", **kw) -> Fuda:
        return state.fuda.create(CreateFudaInput(title=title, description=description, **kw), actor="tester")

    return _make
