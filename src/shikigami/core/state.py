# src/shikigami/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..audit.audit_store import AuditRecorder
from ..db import Database
from ..ledger.ledger_store import LedgerStore
from ..tasks.claim import ClaimCoordinator
from ..tasks.dependency_store import DependencyStore
from ..tasks.prefix import PrefixResolver
from ..tasks.task_store import FudaStore


@dataclass
class AppState:
    """
    One open handle on a shiki database plus the components wired to it.

    Callers open it (bootstrap.create_initial_state), run operations from
    tasks.task_api, then close it. No pooling or session semantics.
    """

    # Store Settings on the state for easy access in other modules later.
    settings: object

    db: Database
    audit: AuditRecorder
    fuda: FudaStore
    deps: DependencyStore
    claims: ClaimCoordinator
    resolver: PrefixResolver
    ledger: LedgerStore

    @property
    def default_actor(self) -> str:
        return str(getattr(self.settings, "default_actor", "") or "unknown")

    @property
    def tree_max_depth(self) -> int:
        return int(getattr(self.settings, "tree_max_depth", 10))

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> AppState:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
