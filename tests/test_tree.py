# tests/test_tree.py

from __future__ import annotations

import pytest

from shikigami.errors import InvalidArgumentError
from shikigami.tasks.task_models import Dependency, DependencyType
from shikigami.tasks.tree import expand

from .fakes import FakeDependencyRepo


def _edges(*pairs: tuple[str, str]) -> FakeDependencyRepo:
    return FakeDependencyRepo([Dependency(a, b, DependencyType.BLOCKS) for a, b in pairs])


class CountingRepo(FakeDependencyRepo):
    def __init__(self, edges: list[Dependency]) -> None:
        super().__init__(edges)
        self.calls: list[str] = []

    def list_all(self, task_id: str) -> list[Dependency]:
        self.calls.append(task_id)
        return super().list_all(task_id)


def test_cycle_through_root_terminates() -> None:
    repo = _edges(("a", "b"), ("b", "c"), ("c", "a"))
    tree = expand(repo, "a", max_depth=50)

    assert set(tree.edges) == {"a", "b", "c"}
    assert tree.circular == {("c", "a")}
    assert tree.is_circular("c", "a")
    assert not tree.is_circular("a", "b")


def test_self_edge_is_circular() -> None:
    tree = expand(_edges(("a", "a")), "a")
    assert tree.circular == {("a", "a")}


def test_depth_bound_is_respected() -> None:
    repo = _edges(("n0", "n1"), ("n1", "n2"), ("n2", "n3"), ("n3", "n4"))

    tree = expand(repo, "n0", max_depth=2)
    assert set(tree.edges) == {"n0", "n1", "n2"}
    assert tree.circular == set()

    assert set(expand(repo, "n0", max_depth=0).edges) == {"n0"}


def test_diamond_is_expanded_once() -> None:
    repo = CountingRepo(
        [
            Dependency("top", "left", DependencyType.BLOCKS),
            Dependency("top", "right", DependencyType.RELATED),
            Dependency("left", "bottom", DependencyType.BLOCKS),
            Dependency("right", "bottom", DependencyType.BLOCKS),
        ]
    )
    tree = expand(repo, "top")

    assert sorted(repo.calls) == ["bottom", "left", "right", "top"]
    assert tree.edges["bottom"] == []
    assert tree.circular == set()


def test_cycle_off_the_first_path_is_marked() -> None:
    repo = _edges(("a", "b"), ("a", "c"), ("b", "c"), ("c", "b"))
    tree = expand(repo, "a")

    assert set(tree.edges) == {"a", "b", "c"}
    assert tree.circular == {("b", "c"), ("c", "b")}


def test_negative_depth_is_invalid() -> None:
    with pytest.raises(InvalidArgumentError):
        expand(_edges(), "a", max_depth=-1)


def test_tree_over_real_store(state, make_fuda) -> None:
    a = make_fuda(title="A")
    b = make_fuda(title="B")
    state.deps.add_edge(a.id, b.id)
    state.deps.add_edge(b.id, a.id, "related")

    tree = expand(state.deps, a.id)
    assert [e.depends_on_id for e in tree.edges[a.id]] == [b.id]
    assert tree.circular == {(b.id, a.id)}
