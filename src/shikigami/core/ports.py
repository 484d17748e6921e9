# src/shikigami/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the engine.

The propagation, claim and tree code depend on Protocols instead of the
SQLite stores. This keeps storage swappable and makes testing easier.
"""

from collections.abc import Iterable
from typing import Any, Protocol


class FudaRepo(Protocol):
    def get(self, fuda_id: str, *, include_deleted: bool = False) -> Any: ...
    def find(self, fuda_id: str) -> Any | None: ...
    def list_by_status(self, status: Any) -> list[Any]: ...
    def ids_with_prefix(self, prefix: str, *, include_deleted: bool = False) -> list[str]: ...
    def set_status(self, fuda_id: str, status: Any, *, actor: str | None = None) -> Any: ...
    def set_assignment(self, fuda_id: str, spirit_id: str | None, *, actor: str | None = None) -> Any: ...
    def try_transition(
        self,
        fuda_id: str,
        *,
        expected: Iterable[Any],
        new_status: Any,
        actor: str | None = None,
    ) -> bool: ...


class DependencyRepo(Protocol):
    def list_all(self, task_id: str) -> list[Any]: ...
    def list_blocking(self, task_id: str) -> list[Any]: ...

