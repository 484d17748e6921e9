# src/shikigami/bootstrap.py

"""
Composition root:
- loads settings once (unless injected),
- ensures the local data directory exists,
- wires the SQLite stores into AppState around one Database handle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Container

from .audit.audit_store import AuditRecorder
from .config import get_settings
from .core.state import AppState
from .db import Database
from .ledger.ledger_store import LedgerStore
from .logging_setup import setup_logging
from .tasks.claim import ClaimCoordinator
from .tasks.dependency_store import DependencyStore, EdgePolicy
from .tasks.ids import generate_id
from .tasks.prefix import PrefixResolver
from .tasks.task_store import FudaStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings=None,
    id_factory: Callable[[Container[str]], str] = generate_id,
    configure_logging: bool = False,
) -> AppState:
    """
    Open the database named by settings and wire every component to it.

    Keeping settings injectable makes the engine easy to test against a
    temporary file. If settings is None, falls back to get_settings().

    configure_logging=True installs the console + file handlers first; embedders
    that own logging leave it off.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)
    if configure_logging:
        setup_logging(
            log_dir=getattr(settings, "log_dir", settings.data_dir / "logs"),
            console_level=getattr(settings, "log_level", logging.INFO),
        )

    db = Database(settings.db_path, timeout=getattr(settings, "sqlite_timeout", 30.0))
    audit = AuditRecorder(db, default_actor=getattr(settings, "default_actor", "unknown"))
    fuda = FudaStore(db, audit, id_factory=id_factory)
    policy = EdgePolicy(
        allow_self_edges=getattr(settings, "allow_self_edges", True),
        allow_dangling=getattr(settings, "allow_dangling_edges", True),
    )

    state = AppState(
        settings=settings,
        db=db,
        audit=audit,
        fuda=fuda,
        deps=DependencyStore(db, audit, policy=policy),
        claims=ClaimCoordinator(fuda),
        resolver=PrefixResolver(fuda),
        ledger=LedgerStore(db),
    )
    logger.debug("AppState wired db=%s policy=%s", settings.db_path, policy)
    return state
