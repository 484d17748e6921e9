# src/shikigami/tasks/tree.py

from __future__ import annotations

import logging
from collections import deque

from ..core.ports import DependencyRepo
from ..errors import InvalidArgumentError
from .task_models import Dependency, DependencyTree

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


def _reaches(edges: dict[str, list[Dependency]], start: str, goal: str) -> bool:
    """True if goal is reachable from start over the expanded edges."""
    seen = {start}
    queue = deque([start])
    while queue:
        node = queue.popleft()
        if node == goal:
            return True
        for edge in edges.get(node, ()):
            if edge.depends_on_id not in seen:
                seen.add(edge.depends_on_id)
                queue.append(edge.depends_on_id)
    return False


def expand(dep_repo: DependencyRepo, root_id: str, max_depth: int = DEFAULT_MAX_DEPTH) -> DependencyTree:
    """
    Breadth-first walk over outgoing edges starting at root_id.

    - nodes up to depth max_depth (root is depth 0) get their edges listed
    - each node is expanded at most once, from the first path that reaches it
    - an edge pointing back at an ancestor on the current path is recorded
      in tree.circular and not followed
    - an edge into an already-queued node is recorded in tree.circular too
      when that node leads back to the edge's source, so a renderer following
      tree.edges down any path stops at every cycle
    """
    if not root_id:
        raise InvalidArgumentError("root_id is required")
    if int(max_depth) < 0:
        raise InvalidArgumentError("max_depth must be >= 0")

    tree = DependencyTree(root_id=root_id)
    queued = {root_id}
    queue: deque[tuple[str, int, frozenset[str]]] = deque([(root_id, 0, frozenset())])
    cross: list[tuple[str, str]] = []

    while queue:
        node_id, depth, ancestors = queue.popleft()
        edges = dep_repo.list_all(node_id)
        tree.edges[node_id] = edges

        path = ancestors | {node_id}
        for edge in edges:
            target = edge.depends_on_id
            if target in path:
                tree.circular.add((node_id, target))
                continue
            if target in queued:
                cross.append((node_id, target))
                continue
            if depth + 1 > max_depth:
                continue
            queued.add(target)
            queue.append((target, depth + 1, path))

    # Cross edges can only be judged once every reachable node is expanded.
    for node_id, target in cross:
        if _reaches(tree.edges, target, node_id):
            tree.circular.add((node_id, target))

    if tree.circular:
        logger.debug("Dependency cycle(s) under %s: %s", root_id, sorted(tree.circular))
    return tree
